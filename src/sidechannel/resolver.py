"""Ordered handler resolution.

Given a failure and the objects attached to it, pick the first handler
whose requirements are all met. Resolution is deterministic: the same
objects and the same handler list always select the same handler, and the
list is never reordered to find a "better" match.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from sidechannel.handlers import (
    DiagnosticInfo,
    ErrorInfo,
    Handler,
    ParamKind,
    as_handlers,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sidechannel.channel import ErrorChannel
    from sidechannel.outcome import FailureID, Outcome

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    """The chosen handler and the arguments to call it with."""

    handler: Handler
    args: tuple[Any, ...]
    index: int

    def invoke(self) -> Any:
        return self.handler.invoke(self.args)


class HandlerResolver:
    """Match a failure against an ordered list of handlers."""

    __slots__ = ("handlers", "slot_types", "wants_diagnostics")

    def __init__(self, handlers: Iterable[Any]):
        self.handlers: tuple[Handler, ...] = as_handlers(handlers)
        # Union of referenced types, first-mention order.
        self.slot_types: tuple[type, ...] = tuple(
            dict.fromkeys(t for h in self.handlers for t in h.slot_types)
        )
        self.wants_diagnostics = any(h.wants_diagnostics for h in self.handlers)

    def resolve(
        self, outcome: Outcome[Any], channel: ErrorChannel
    ) -> Resolution | None:
        """Return the first satisfiable handler for ``outcome``, or None."""
        failure_id = outcome.failure_id()
        fetched = {t: channel.fetch(t, failure_id) for t in self.slot_types}
        trace = channel.config.trace_resolution

        for index, candidate in enumerate(self.handlers):
            args, reason = self._bind(candidate, outcome, failure_id, fetched, channel)
            if args is None:
                if trace:
                    log.debug(
                        "Failure %s: skipped handler #%d %s (%s)",
                        failure_id,
                        index,
                        candidate,
                        reason,
                    )
                continue
            log.debug(
                "Failure %s: selected handler #%d %s", failure_id, index, candidate.name
            )
            return Resolution(candidate, args, index)

        log.debug(
            "Failure %s: none of %d handler(s) matched", failure_id, len(self.handlers)
        )
        return None

    @staticmethod
    def _bind(
        candidate: Handler,
        outcome: Outcome[Any],
        failure_id: FailureID,
        fetched: Mapping[type, Any],
        channel: ErrorChannel,
    ) -> tuple[tuple[Any, ...] | None, str]:
        args: list[Any] = []
        for req in candidate.requirements:
            match req.kind:
                case ParamKind.REQUIRED:
                    obj = fetched.get(req.slot_type)  # type: ignore[arg-type]
                    if obj is None:
                        return None, f"{req.name}: no object attached"
                    if not req.accepts(obj):
                        return None, f"{req.name}: predicate rejected {obj!r}"
                    args.append(obj)
                case ParamKind.OPTIONAL:
                    obj = fetched.get(req.slot_type)  # type: ignore[arg-type]
                    args.append(obj if obj is not None and req.accepts(obj) else None)
                case ParamKind.ERROR_INFO:
                    args.append(ErrorInfo(failure_id, outcome))
                case ParamKind.DIAGNOSTIC_INFO:
                    args.append(
                        DiagnosticInfo(
                            failure_id,
                            tuple(o for o in fetched.values() if o is not None),
                            channel.unclaimed(failure_id),
                        )
                    )
        return tuple(args), "ok"
