"""Outcome: the lightweight success/failure value returned by fallible code.

An ``Outcome`` carries either a value or a ``FailureID``; never both. The
detail of a failure lives in the error channel, keyed by that id, so
intermediate callers can relay failures without naming a single error type:

    def load_settings(path: str) -> Outcome[Settings]:
        text = read_file(path)
        if not text:
            return text.propagate()
        return parse(text.value())
"""

from __future__ import annotations

import functools
import inspect
from typing import TYPE_CHECKING, Any, Final, Generic, NewType, TypeVar, cast, overload

from sidechannel.errors import HINTS, BadOutcomeAccessError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sidechannel.channel import ErrorChannel

T = TypeVar("T")
U = TypeVar("U")
_F = TypeVar("_F", bound="Callable[..., Any]")

FailureID = NewType("FailureID", int)

_MISSING: Final = object()


class Outcome(Generic[T]):
    """Discriminated success/failure value.

    Use the ``success``/``failure`` constructors rather than ``__init__``.
    Instances are immutable and compare by discriminant and payload.
    """

    __slots__ = ("_failure_id", "_value")

    _value: T
    _failure_id: FailureID | None

    def __init__(self, value: Any = _MISSING, failure_id: FailureID | None = None):
        if (value is _MISSING) == (failure_id is None):
            raise TypeError("Outcome holds exactly one of a value or a failure id")
        object.__setattr__(self, "_value", value)
        object.__setattr__(self, "_failure_id", failure_id)

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, failure_id: FailureID | int) -> Outcome[Any]:
        return cls(failure_id=FailureID(int(failure_id)))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __reduce__(self) -> tuple[Any, ...]:
        if self._failure_id is not None:
            return (_rebuild, (False, self._failure_id))
        return (_rebuild, (True, self._value))

    # -- Discriminant --

    def is_success(self) -> bool:
        return self._failure_id is None

    def __bool__(self) -> bool:
        return self._failure_id is None

    # -- Access --

    def value(self) -> T:
        """Return the contained value; reading a failure is a contract violation."""
        if self._failure_id is not None:
            raise BadOutcomeAccessError(
                f"value() called on failed outcome (failure {self._failure_id})",
                hint=HINTS["bad_value_access"],
            )
        return self._value

    def failure_id(self) -> FailureID:
        if self._failure_id is None:
            raise BadOutcomeAccessError(
                "failure_id() called on a successful outcome",
                hint=HINTS["bad_failure_access"],
            )
        return self._failure_id

    def value_or(self, default: U) -> T | U:
        return self._value if self._failure_id is None else default

    # -- Propagation --

    def propagate(self) -> Outcome[Any]:
        """Relay this failure as an ``Outcome`` of any other value type.

        Outcomes are immutable, so the same instance is returned and the
        failure id is preserved exactly.
        """
        if self._failure_id is None:
            raise BadOutcomeAccessError(
                "propagate() called on a successful outcome",
                hint=HINTS["bad_failure_access"],
            )
        return cast("Outcome[Any]", self)

    def bail(self) -> T:
        """Return the value, or unwind to the nearest ``@propagates`` function.

        The enclosing function then returns this failure unchanged.
        """
        if self._failure_id is not None:
            raise Propagate(self)
        return self._value

    def load(self, *objects: Any, channel: ErrorChannel | None = None) -> Outcome[T]:
        """Attach more diagnostic objects to this failure; no-op on success."""
        if self._failure_id is not None:
            from sidechannel.capture import load

            load(self._failure_id, *objects, channel=channel)
        return self

    # -- Dunder --

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Outcome):
            return NotImplemented
        if self._failure_id is not None or other._failure_id is not None:
            return self._failure_id == other._failure_id
        return bool(self._value == other._value)

    def __hash__(self) -> int:
        if self._failure_id is not None:
            return hash(("failure", self._failure_id))
        return hash(("success", self._value))

    def __repr__(self) -> str:
        if self._failure_id is not None:
            return f"Outcome.failure({self._failure_id})"
        return f"Outcome.success({self._value!r})"


def _rebuild(is_success: bool, payload: Any) -> Outcome[Any]:
    """Reconstruct a pickled or copied ``Outcome``."""
    return Outcome.success(payload) if is_success else Outcome.failure(payload)


class Propagate(BaseException):  # noqa: N818
    """Signal raised by ``Outcome.bail()`` to unwind to ``@propagates``.

    Derives from ``BaseException`` so ``except Exception`` blocks between
    the bail site and the decorated function leave it alone.
    """

    __slots__ = ("outcome",)

    def __init__(self, outcome: Outcome[Any]) -> None:
        self.outcome = outcome
        super().__init__(f"Propagate({outcome!r})")


@overload
def propagates(func: _F) -> _F: ...


@overload
def propagates(func: None = None) -> Callable[[_F], _F]: ...


def propagates(func: _F | None = None) -> _F | Callable[[_F], _F]:
    """Let ``bail()`` inside ``func`` return the failure from ``func``.

    Works on sync and async functions; usable with or without parentheses.
    """

    def decorate(fn: _F) -> _F:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await fn(*args, **kwargs)
                except Propagate as signal:
                    return signal.outcome

            return cast("_F", async_wrapper)

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except Propagate as signal:
                return signal.outcome

        return cast("_F", sync_wrapper)

    if func is None:
        return decorate
    return decorate(func)
