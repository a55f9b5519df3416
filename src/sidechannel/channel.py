"""Per-context error channel: failure ids and type-indexed slot stacks.

A channel belongs to one logical thread of control. Handling scopes push a
slot for every diagnostic type they care about; failures deposit objects
into the innermost slot of each type; handling scopes later fetch the
objects that belong to the failure they are examining.

Lookup through ``current_channel()`` is bound to the running asyncio task
(or the OS thread outside an event loop), so tasks interleaved on one loop
never see each other's slots, even when a child task inherits its parent's
context.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import contextmanager
import contextvars
from dataclasses import dataclass, field
import itertools
import logging
import threading
from typing import TYPE_CHECKING, Any
import weakref

from sidechannel.config import Config, current_config
from sidechannel.errors import HINTS, ScopeNestingError
from sidechannel.outcome import FailureID

if TYPE_CHECKING:
    from collections.abc import Generator

log = logging.getLogger(__name__)

# Ids come from one process-wide counter: strictly increasing on every
# channel, and never equal across channels.
_FAILURE_IDS = itertools.count(1)
_HANDLE_SERIALS = itertools.count(1)

# Recently handled failure ids remembered per channel.
_HANDLED_MEMORY = 64


@dataclass(slots=True)
class Slot:
    """Storage cell for one diagnostic type in one handling scope."""

    slot_type: type
    value: Any = None
    failure_id: FailureID | None = None

    def holds(self, failure_id: FailureID) -> bool:
        return self.failure_id is not None and self.failure_id == failure_id


@dataclass(slots=True, eq=False)
class SlotHandle:
    """Receipt for a registered slot; give it back to ``release``."""

    slot_type: type
    serial: int
    _slot: Slot = field(repr=False)
    released: bool = False


class ErrorChannel:
    """Failure-id counter and per-type slot stacks for one execution context."""

    def __init__(self, *, config: Config | None = None) -> None:
        self.config = config if config is not None else current_config()
        self._last_id: FailureID | None = None
        self._stacks: dict[type, list[Slot]] = {}
        self._handles: list[SlotHandle] = []
        self._diagnostic_requests = 0
        self._unclaimed: deque[tuple[FailureID, Any]] = deque(
            maxlen=self.config.diagnostic_limit
        )
        self._handled: deque[FailureID] = deque(maxlen=_HANDLED_MEMORY)

    # -- Failure ids --

    def next_id(self) -> FailureID:
        """Mint a fresh id, strictly larger than any issued before."""
        self._last_id = FailureID(next(_FAILURE_IDS))
        return self._last_id

    def mark_handled(self, failure_id: FailureID) -> None:
        """Record that a handling scope resolved ``failure_id``."""
        self._handled.append(failure_id)

    def was_handled(self, failure_id: FailureID) -> bool:
        return failure_id in self._handled

    @property
    def last_id(self) -> FailureID | None:
        """The most recently minted id on this channel, if any."""
        return self._last_id

    # -- Slot registration --

    def register_interest(self, slot_type: type) -> SlotHandle:
        """Push a slot for ``slot_type``; it becomes the write target."""
        if not isinstance(slot_type, type):
            raise TypeError(f"slot type must be a class, got {slot_type!r}")
        slot = Slot(slot_type)
        self._stacks.setdefault(slot_type, []).append(slot)
        handle = SlotHandle(slot_type, next(_HANDLE_SERIALS), slot)
        self._handles.append(handle)
        return handle

    def release(
        self, handle: SlotHandle, *, propagating: FailureID | None = None
    ) -> None:
        """Pop the slot behind ``handle``.

        When ``propagating`` names the failure the releasing scope is
        passing on, the slot's content for that failure is re-offered to
        the next-outer slot of the same type.

        Raises:
            ScopeNestingError: ``handle`` is not the most recently
                registered live handle, or was already released.
        """
        if handle.released:
            raise ScopeNestingError(
                f"Slot for {handle.slot_type.__qualname__} released twice",
                slot_type=handle.slot_type,
                hint=HINTS["scope_nesting"],
            )
        if not self._handles or self._handles[-1] is not handle:
            raise ScopeNestingError(
                f"Slot for {handle.slot_type.__qualname__} released out of order",
                slot_type=handle.slot_type,
                hint=HINTS["scope_nesting"],
            )

        self._handles.pop()
        handle.released = True
        stack = self._stacks[handle.slot_type]
        slot = stack.pop()
        if not stack:
            del self._stacks[handle.slot_type]

        if propagating is None or not slot.holds(propagating):
            return
        if stack:
            outer = stack[-1]
            outer.value = slot.value
            outer.failure_id = slot.failure_id
            log.debug(
                "Re-offered %s for failure %s to enclosing scope",
                handle.slot_type.__qualname__,
                propagating,
            )
        else:
            self._record_unclaimed(propagating, slot.value)

    @property
    def open_handles(self) -> int:
        """Number of registered slots not yet released."""
        return len(self._handles)

    def is_interested(self, slot_type: type) -> bool:
        return bool(self._stacks.get(slot_type))

    # -- Deposit / fetch --

    def deposit(self, slot_type: type, obj: Any, failure_id: FailureID) -> bool:
        """Write ``obj`` into the innermost slot for ``slot_type``.

        Returns False, discarding ``obj``, when no scope is interested.
        """
        stack = self._stacks.get(slot_type)
        if not stack:
            self._record_unclaimed(failure_id, obj)
            log.debug(
                "Discarded %s for failure %s: no interested scope",
                slot_type.__qualname__,
                failure_id,
            )
            return False
        slot = stack[-1]
        slot.value = obj
        slot.failure_id = failure_id
        return True

    def fetch(self, slot_type: type, failure_id: FailureID) -> Any | None:
        """Return the innermost slot's object if it belongs to ``failure_id``.

        Reading does not consume the object.
        """
        stack = self._stacks.get(slot_type)
        if not stack:
            return None
        slot = stack[-1]
        return slot.value if slot.holds(failure_id) else None

    # -- Unclaimed deposits (for DiagnosticInfo) --

    def begin_tracking(self) -> None:
        """Start remembering deposits nobody registered for."""
        self._diagnostic_requests += 1

    def end_tracking(self) -> None:
        self._diagnostic_requests -= 1
        if not self._diagnostic_requests:
            self._unclaimed.clear()

    @contextmanager
    def track_unclaimed(self) -> Generator[None]:
        """Remember deposits nobody registered for while the block runs."""
        self.begin_tracking()
        try:
            yield
        finally:
            self.end_tracking()

    def unclaimed(self, failure_id: FailureID) -> tuple[Any, ...]:
        return tuple(obj for fid, obj in self._unclaimed if fid == failure_id)

    def _record_unclaimed(self, failure_id: FailureID, obj: Any) -> None:
        if self._diagnostic_requests and self._unclaimed.maxlen:
            self._unclaimed.append((failure_id, obj))

    def __repr__(self) -> str:
        types = ", ".join(
            f"{t.__qualname__}x{len(s)}" for t, s in self._stacks.items()
        )
        return f"ErrorChannel(last_id={self._last_id}, slots=[{types}])"


# --- Context-local lookup ---


@dataclass(frozen=True, slots=True)
class _Binding:
    channel: ErrorChannel
    owner: weakref.ref[asyncio.Task[Any]] | int

    def owned_by(self, owner: asyncio.Task[Any] | int) -> bool:
        if isinstance(self.owner, int):
            return self.owner == owner
        return self.owner() is owner


_CURRENT: contextvars.ContextVar[_Binding | None] = contextvars.ContextVar(
    "sidechannel_channel", default=None
)


def _current_owner() -> asyncio.Task[Any] | int:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return task if task is not None else threading.get_ident()


def _bind(channel: ErrorChannel, owner: asyncio.Task[Any] | int) -> _Binding:
    ref = owner if isinstance(owner, int) else weakref.ref(owner)
    return _Binding(channel, ref)


def current_channel() -> ErrorChannel:
    """Return the channel of the running task or thread, creating it lazily."""
    owner = _current_owner()
    binding = _CURRENT.get()
    if binding is not None and binding.owned_by(owner):
        return binding.channel
    channel = ErrorChannel()
    _CURRENT.set(_bind(channel, owner))
    return channel


def resolve_channel(channel: ErrorChannel | None) -> ErrorChannel:
    return channel if channel is not None else current_channel()


@contextmanager
def channel_scope(channel: ErrorChannel | None = None) -> Generator[ErrorChannel]:
    """Bind ``channel`` (or a fresh one) as current for the block.

    The previous binding is restored on exit.
    """
    ch = channel if channel is not None else ErrorChannel()
    token = _CURRENT.set(_bind(ch, _current_owner()))
    try:
        yield ch
    finally:
        _CURRENT.reset(token)
