"""Attaching diagnostic objects to failures.

Two forms:

- ``new_error(*objects)`` mints a failure and deposits the objects now.
- ``on_error(*objects)`` holds objects and deposits them when the block it
  guards exits with a failure that arose inside it:

      for lineno, line in enumerate(lines, 1):
          with on_error(Line(lineno)) as guard:
              parsed = guard.settle(parse_line(line))
          if not parsed:
              return parsed.propagate()

Plain functions, lambdas, bound methods and ``functools.partial`` objects
passed as objects are factories: they are called at deposit time and only
when a failure actually needs the result.
"""

from __future__ import annotations

from dataclasses import dataclass
import functools
import inspect
import logging
import traceback
import types
from typing import TYPE_CHECKING, Any, Final, Self, TypeVar, cast

from sidechannel.channel import ErrorChannel, resolve_channel
from sidechannel.outcome import FailureID, Outcome, Propagate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

log = logging.getLogger(__name__)

_F = TypeVar("_F", bound="Callable[..., Any]")

_UNSETTLED: Final = object()


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Where a failure was created."""

    file: str
    line: int
    function: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line} in {self.function}"


@dataclass(frozen=True, slots=True)
class Accumulate:
    """Deferred update of an object already attached to the failure.

    At deposit time ``fn`` receives the current object of ``slot_type`` for
    the failing id (or None) and its return value replaces it.
    """

    slot_type: type
    fn: Callable[[Any | None], Any]

    def apply(self, channel: ErrorChannel, failure_id: FailureID) -> None:
        current = channel.fetch(self.slot_type, failure_id)
        channel.deposit(self.slot_type, self.fn(current), failure_id)


def accumulate(slot_type: type, fn: Callable[[Any | None], Any]) -> Accumulate:
    """Build an ``on_error`` item that updates the attached ``slot_type``."""
    return Accumulate(slot_type, fn)


def _is_factory(obj: Any) -> bool:
    return isinstance(obj, (types.FunctionType, types.MethodType, functools.partial))


def _deposit_all(
    channel: ErrorChannel, failure_id: FailureID, objects: Iterable[Any]
) -> None:
    for obj in objects:
        if isinstance(obj, Accumulate):
            obj.apply(channel, failure_id)
            continue
        if _is_factory(obj):
            obj = obj()
        channel.deposit(type(obj), obj, failure_id)


def _caller_location(depth: int) -> SourceLocation | None:
    frame = inspect.currentframe()
    try:
        for _ in range(depth + 1):
            if frame is None:
                return None
            frame = frame.f_back
        if frame is None:
            return None
        code = frame.f_code
        return SourceLocation(code.co_filename, frame.f_lineno, code.co_qualname)
    finally:
        del frame


# --- Immediate ---


def new_error(*objects: Any, channel: ErrorChannel | None = None) -> Outcome[Any]:
    """Mint a failure, attach ``objects`` to it and return it.

    Example:
        if not text.strip():
            return new_error(ParseError.EMPTY, Line(lineno))
    """
    ch = resolve_channel(channel)
    failure_id = ch.next_id()
    if ch.config.capture_location:
        location = _caller_location(1)
        if location is not None:
            ch.deposit(SourceLocation, location, failure_id)
    _deposit_all(ch, failure_id, objects)
    log.debug("New failure %s with %d object(s)", failure_id, len(objects))
    return Outcome.failure(failure_id)


def load(
    failure_id: FailureID, *objects: Any, channel: ErrorChannel | None = None
) -> None:
    """Attach ``objects`` to an existing failure."""
    _deposit_all(resolve_channel(channel), failure_id, objects)


# --- Deferred ---


class ErrorCapture:
    """Guard that attaches objects to a failure arising while it is active.

    On exit the guard deposits its objects when:

    - an outcome handed to ``settle()`` failed with an id other than the one
      observed on entry; or
    - the block is unwinding through ``bail()`` with such a failure; or
    - without ``settle()``, the channel minted a new failure id during the
      block and no handling scope has resolved it.

    Otherwise the objects are dropped; deferred factories never run.
    """

    __slots__ = ("_channel", "_explicit_channel", "_objects", "_observed", "_settled")

    def __init__(self, objects: tuple[Any, ...], channel: ErrorChannel | None = None):
        self._objects = objects
        self._explicit_channel = channel
        self._channel: ErrorChannel | None = None
        self._observed: FailureID | None = None
        self._settled: Any = _UNSETTLED

    def settle(self, outcome: Outcome[Any]) -> Outcome[Any]:
        """Record the outcome of the guarded work; returns it unchanged."""
        self._settled = outcome
        return outcome

    # -- Context manager protocol --

    def __enter__(self) -> Self:
        self._channel = resolve_channel(self._explicit_channel)
        self._observed = self._channel.last_id
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> bool:
        self._attach(exc_value)
        return False

    async def __aenter__(self) -> Self:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> bool:
        self._attach(exc_value)
        return False

    # -- Core logic --

    def _new_failure(self, exc_value: BaseException | None) -> FailureID | None:
        """Return the failure that arose during the guard's lifetime, if any."""
        assert self._channel is not None
        candidate: FailureID | None
        if isinstance(exc_value, Propagate):
            candidate = exc_value.outcome.failure_id()
        elif exc_value is not None:
            return None
        elif self._settled is not _UNSETTLED:
            settled = cast("Outcome[Any]", self._settled)
            candidate = None if settled.is_success() else settled.failure_id()
        else:
            candidate = self._channel.last_id
            # A failure resolved inside the block is not unwinding through it.
            if candidate is not None and self._channel.was_handled(candidate):
                return None
        if candidate is None or candidate == self._observed:
            return None
        return candidate

    def _attach(self, exc_value: BaseException | None) -> None:
        failure_id = self._new_failure(exc_value)
        if failure_id is None or self._channel is None:
            return
        _deposit_all(self._channel, failure_id, self._objects)


def on_error(*objects: Any, channel: ErrorChannel | None = None) -> ErrorCapture:
    """Create a guard attaching ``objects`` to failures raised inside it."""
    return ErrorCapture(objects, channel)


# --- Exception bridge ---


def _failure_from_exception(
    exc: BaseException,
    exc_types: tuple[type[BaseException], ...],
    channel: ErrorChannel | None,
) -> Outcome[Any]:
    ch = resolve_channel(channel)
    failure_id = ch.next_id()
    if ch.config.capture_location and exc.__traceback__ is not None:
        frame = traceback.extract_tb(exc.__traceback__)[-1]
        ch.deposit(
            SourceLocation,
            SourceLocation(frame.filename, frame.lineno or 0, frame.name),
            failure_id,
        )
    # Deposit under the concrete type and every listed type it satisfies, so
    # handlers may name either.
    targets = dict.fromkeys(
        [type(exc), *(t for t in exc_types if isinstance(exc, t))]
    )
    for target in targets:
        ch.deposit(target, exc, failure_id)
    log.debug("Captured %s as failure %s", type(exc).__qualname__, failure_id)
    return Outcome.failure(failure_id)


def capture_exceptions(
    *exc_types: type[BaseException], channel: ErrorChannel | None = None
) -> Callable[[_F], _F]:
    """Turn exceptions raised by the decorated function into failures.

    The exception object itself becomes the diagnostic object. Plain return
    values are wrapped in ``Outcome.success``; returned outcomes pass
    through. Exceptions not listed keep propagating.
    """
    caught: tuple[type[BaseException], ...] = exc_types or (Exception,)

    def decorate(fn: _F) -> _F:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Outcome[Any]:
                try:
                    result = await fn(*args, **kwargs)
                except caught as exc:
                    return _failure_from_exception(exc, caught, channel)
                return result if isinstance(result, Outcome) else Outcome.success(result)

            return cast("_F", async_wrapper)

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Outcome[Any]:
            try:
                result = fn(*args, **kwargs)
            except caught as exc:
                return _failure_from_exception(exc, caught, channel)
            return result if isinstance(result, Outcome) else Outcome.success(result)

        return cast("_F", sync_wrapper)

    return decorate
