"""Handling scopes: run an attempt, and on failure pick a handler.

Handlers are plain functions whose annotations describe the objects they
need:

    def missing(e: Match[IoError, IoError.NOT_FOUND]) -> Settings:
        return Settings()

    def bad_line(p: ParseError, line: Line) -> Settings:
        raise SystemExit(f"syntax error on line {line.value}")

    def anything_else(info: DiagnosticInfo) -> Settings:
        raise SystemExit(str(info))

    settings = try_handle_all(
        lambda: load_settings(path), missing, bad_line, anything_else
    )

A scope registers one slot per type its handlers mention before the attempt
runs and releases them, innermost first, on every exit path. The chosen
handler runs after the scope's slots are released, so failures it creates
travel to enclosing scopes.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import TYPE_CHECKING, Any, Self, TypeVar, cast

from sidechannel.channel import ErrorChannel, SlotHandle, resolve_channel
from sidechannel.errors import HINTS, ContractViolation, UnhandledFailureError
from sidechannel.outcome import FailureID, Outcome
from sidechannel.resolver import HandlerResolver, Resolution

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

log = logging.getLogger(__name__)

R = TypeVar("R")
_F = TypeVar("_F", bound="Callable[..., Any]")


class HandlingScope:
    """Slot registration for one set of handlers.

    Entering registers interest in every type the handlers reference;
    ``settle()`` resolves a failure and releases the slots. Leaving the
    ``with`` block releases anything still registered, so slot nesting
    stays balanced even when the attempt raises.
    """

    def __init__(self, handlers: Any, *, channel: ErrorChannel | None = None):
        self.resolver = (
            handlers
            if isinstance(handlers, HandlerResolver)
            else HandlerResolver(handlers)
        )
        self._explicit_channel = channel
        self._channel: ErrorChannel | None = None
        self._handles: list[SlotHandle] = []
        self._tracking = False
        self._propagating: FailureID | None = None

    @property
    def channel(self) -> ErrorChannel:
        if self._channel is None:
            raise ContractViolation(
                "HandlingScope used outside its with block",
                hint=HINTS["inactive_scope"],
            )
        return self._channel

    def __enter__(self) -> Self:
        self._channel = resolve_channel(self._explicit_channel)
        if self.resolver.wants_diagnostics:
            self._channel.begin_tracking()
            self._tracking = True
        try:
            for slot_type in self.resolver.slot_types:
                self._handles.append(self._channel.register_interest(slot_type))
        except BaseException:
            self._release_all()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self._release_all()
        return False

    def _release_all(self) -> None:
        """Release registered slots, innermost first; idempotent."""
        channel = self.channel
        try:
            while self._handles:
                channel.release(self._handles.pop(), propagating=self._propagating)
        finally:
            if self._tracking:
                self._tracking = False
                channel.end_tracking()

    def settle(self, outcome: Outcome[Any]) -> Resolution | None:
        """Resolve a failed ``outcome`` and release this scope's slots.

        When nothing matches, slot contents for the failure are re-offered
        to enclosing scopes as the slots are released.
        """
        resolution = self.resolver.resolve(outcome, self.channel)
        if resolution is None:
            self._propagating = outcome.failure_id()
            log.debug("Failure %s propagates past this scope", self._propagating)
        else:
            self.channel.mark_handled(outcome.failure_id())
        self._release_all()
        return resolution


def _checked(outcome: Any) -> Outcome[Any]:
    if not isinstance(outcome, Outcome):
        raise TypeError(
            f"attempt must return an Outcome, got {type(outcome).__qualname__}"
        )
    return outcome


def _as_outcome(result: Any) -> Outcome[Any]:
    return result if isinstance(result, Outcome) else Outcome.success(result)


def _unhandled(outcome: Outcome[Any]) -> UnhandledFailureError:
    failure_id = outcome.failure_id()
    return UnhandledFailureError(
        f"No handler matched failure {failure_id}",
        failure_id=failure_id,
        hint=HINTS["unhandled"],
    )


# --- Sync ---


def try_handle_some(
    attempt: Callable[[], Outcome[Any]],
    *handlers: Any,
    channel: ErrorChannel | None = None,
) -> Outcome[Any]:
    """Run ``attempt``; handle its failure if one of ``handlers`` matches.

    Returns the attempt's success unchanged, the chosen handler's result as
    a success (or as is, when the handler returns an ``Outcome``), or the
    original failure when no handler matches.
    """
    with HandlingScope(handlers, channel=channel) as scope:
        outcome = _checked(attempt())
        if outcome.is_success():
            return outcome
        resolution = scope.settle(outcome)
    if resolution is None:
        return outcome
    return _as_outcome(resolution.invoke())


def try_handle_all(
    attempt: Callable[[], Outcome[R]],
    *handlers: Any,
    channel: ErrorChannel | None = None,
) -> Any:
    """Like ``try_handle_some`` but returns a plain value.

    Raises:
        UnhandledFailureError: The attempt failed and no handler matched.
    """
    with HandlingScope(handlers, channel=channel) as scope:
        outcome = _checked(attempt())
        if outcome.is_success():
            return outcome.value()
        resolution = scope.settle(outcome)
    if resolution is None:
        raise _unhandled(outcome)
    return resolution.invoke()


# --- Async ---


async def _invoke_async(resolution: Resolution) -> Any:
    result = resolution.invoke()
    if inspect.isawaitable(result):
        result = await result
    return result


async def try_handle_some_async(
    attempt: Callable[[], Awaitable[Outcome[Any]]],
    *handlers: Any,
    channel: ErrorChannel | None = None,
) -> Outcome[Any]:
    """Async ``try_handle_some``: awaits the attempt and async handlers."""
    with HandlingScope(handlers, channel=channel) as scope:
        outcome = _checked(await attempt())
        if outcome.is_success():
            return outcome
        resolution = scope.settle(outcome)
    if resolution is None:
        return outcome
    return _as_outcome(await _invoke_async(resolution))


async def try_handle_all_async(
    attempt: Callable[[], Awaitable[Outcome[R]]],
    *handlers: Any,
    channel: ErrorChannel | None = None,
) -> Any:
    """Async ``try_handle_all``."""
    with HandlingScope(handlers, channel=channel) as scope:
        outcome = _checked(await attempt())
        if outcome.is_success():
            return outcome.value()
        resolution = scope.settle(outcome)
    if resolution is None:
        raise _unhandled(outcome)
    return await _invoke_async(resolution)


# --- Decorator form ---


def handled_by(*handlers: Any, channel: ErrorChannel | None = None) -> Callable[[_F], _F]:
    """Wrap a function returning ``Outcome`` in ``try_handle_some``.

    Auto-detects sync vs async functions.
    """
    resolver = HandlerResolver(handlers)

    def decorate(fn: _F) -> _F:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Outcome[Any]:
                return await try_handle_some_async(
                    lambda: fn(*args, **kwargs), *resolver.handlers, channel=channel
                )

            return cast("_F", async_wrapper)

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Outcome[Any]:
            return try_handle_some(
                lambda: fn(*args, **kwargs), *resolver.handlers, channel=channel
            )

        return cast("_F", sync_wrapper)

    return decorate
