"""Handler records built from callables and their annotations.

A handler's parameters say what it needs:

- ``E``: a diagnostic object of type ``E`` must be attached to the failure.
- ``Annotated[E, pred, ...]`` / ``Match[E, v, ...]``: as above, and every
  predicate must accept the object.
- ``E | None``: optional; ``None`` is passed when absent or rejected.
- ``ErrorInfo``: the failure id and outcome; always available.
- ``DiagnosticInfo``: everything known about the failure; always available.

A handler without parameters matches every failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import enum
import functools
import inspect
import types
import typing
from typing import TYPE_CHECKING, Annotated, Any, get_args, get_origin

from sidechannel.errors import HINTS, HandlerSignatureError
from sidechannel.predicates import Predicate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from sidechannel.outcome import FailureID, Outcome


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Identity of the failure being handled."""

    failure_id: FailureID
    outcome: Outcome[Any]


@dataclass(frozen=True, slots=True)
class DiagnosticInfo:
    """Every object known for the failure being handled.

    ``objects`` are those attached in slots the handling scope registered;
    ``unclaimed`` are deposits no scope was interested in (kept only while
    a scope asks for ``DiagnosticInfo``).
    """

    failure_id: FailureID
    objects: tuple[Any, ...] = ()
    unclaimed: tuple[Any, ...] = ()

    def __str__(self) -> str:
        lines = [f"Failure {self.failure_id}"]
        lines.extend(f"  {type(o).__qualname__}: {o!r}" for o in self.objects)
        if self.unclaimed:
            lines.append("  unclaimed:")
            lines.extend(f"    {type(o).__qualname__}: {o!r}" for o in self.unclaimed)
        return "\n".join(lines)


class ParamKind(enum.Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    ERROR_INFO = "error_info"
    DIAGNOSTIC_INFO = "diagnostic_info"


@dataclass(frozen=True, slots=True)
class Requirement:
    """One handler parameter."""

    name: str
    kind: ParamKind
    slot_type: type | None = None
    predicates: tuple[Predicate, ...] = ()
    keyword: bool = False

    def accepts(self, obj: Any) -> bool:
        return all(p(obj) for p in self.predicates)

    def __str__(self) -> str:
        if self.slot_type is None:
            return f"{self.name}: {self.kind.value}"
        label = self.slot_type.__qualname__
        if self.kind is ParamKind.OPTIONAL:
            label += " | None"
        if self.predicates:
            label += f" [{', '.join(map(str, self.predicates))}]"
        return f"{self.name}: {label}"


@dataclass(frozen=True)
class Handler:
    """Required types, per-type predicates and the action to run."""

    action: Callable[..., Any]
    requirements: tuple[Requirement, ...]
    name: str = field(default="<handler>")

    @property
    def slot_types(self) -> tuple[type, ...]:
        """Diagnostic types this handler reads, in parameter order."""
        return tuple(
            r.slot_type
            for r in self.requirements
            if r.slot_type is not None
        )

    @property
    def wants_diagnostics(self) -> bool:
        return any(r.kind is ParamKind.DIAGNOSTIC_INFO for r in self.requirements)

    @property
    def is_catch_all(self) -> bool:
        return all(r.kind is not ParamKind.REQUIRED for r in self.requirements)

    def invoke(self, args: Sequence[Any]) -> Any:
        """Call the action with one argument per requirement."""
        positional = [a for r, a in zip(self.requirements, args, strict=True) if not r.keyword]
        keywords = {r.name: a for r, a in zip(self.requirements, args, strict=True) if r.keyword}
        return self.action(*positional, **keywords)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(map(str, self.requirements))})"


# --- Construction ---


def _callable_name(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or type(fn).__qualname__


def _resolve_hints(fn: Callable[..., Any], name: str) -> dict[str, Any]:
    target: Any = fn
    if isinstance(target, functools.partial):
        target = target.func
    elif not inspect.isroutine(target):
        target = type(target).__call__
    try:
        return typing.get_type_hints(target, include_extras=True)
    except NameError:
        pass
    except TypeError as e:
        raise HandlerSignatureError(
            f"cannot read annotations: {e}", handler_name=name, hint=HINTS["annotation"]
        ) from e
    # Annotations naming types local to an enclosing function are reachable
    # through the closure.
    try:
        localns = dict(inspect.getclosurevars(target).nonlocals)
        return typing.get_type_hints(target, localns=localns, include_extras=True)
    except (NameError, TypeError) as e:
        raise HandlerSignatureError(
            f"cannot resolve annotations: {e}",
            handler_name=name,
            hint=HINTS["annotation"],
        ) from e


def _parse_annotation(param: str, annotation: Any, handler_name: str) -> Requirement:
    def fail(message: str) -> HandlerSignatureError:
        return HandlerSignatureError(
            message, handler_name=handler_name, parameter=param, hint=HINTS["annotation"]
        )

    if annotation is ErrorInfo:
        return Requirement(param, ParamKind.ERROR_INFO)
    if annotation is DiagnosticInfo:
        return Requirement(param, ParamKind.DIAGNOSTIC_INFO)

    origin = get_origin(annotation)
    if origin is Annotated:
        base, *metadata = get_args(annotation)
        inner = _parse_annotation(param, base, handler_name)
        if inner.slot_type is None:
            raise fail(f"parameter {param!r}: predicates need a diagnostic type")
        extra: list[Predicate] = []
        for item in metadata:
            if not isinstance(item, Predicate):
                raise fail(f"parameter {param!r}: unsupported metadata {item!r}")
            extra.append(item)
        return replace(inner, predicates=(*inner.predicates, *extra))

    if origin is typing.Union or origin is types.UnionType:
        members = get_args(annotation)
        present = [m for m in members if m is not type(None)]
        if len(present) != 1 or len(members) != 2:
            raise fail(f"parameter {param!r}: only 'T | None' unions are supported")
        inner = _parse_annotation(param, present[0], handler_name)
        if inner.kind is not ParamKind.REQUIRED:
            raise fail(f"parameter {param!r}: {present[0]!r} cannot be optional")
        return replace(inner, kind=ParamKind.OPTIONAL)

    if isinstance(annotation, type) and origin is None:
        return Requirement(param, ParamKind.REQUIRED, slot_type=annotation)

    raise fail(f"parameter {param!r}: unsupported annotation {annotation!r}")


def _requirements_from_signature(
    fn: Callable[..., Any], name: str
) -> tuple[Requirement, ...]:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        raise HandlerSignatureError(
            "signature is not introspectable", handler_name=name, hint=HINTS["annotation"]
        ) from e
    params = list(sig.parameters.values())
    hints = _resolve_hints(fn, name) if params else {}

    out: list[Requirement] = []
    for p in params:
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            raise HandlerSignatureError(
                f"parameter {p.name!r}: *args/**kwargs are not supported",
                handler_name=name,
                parameter=p.name,
            )
        if p.name not in hints:
            raise HandlerSignatureError(
                f"parameter {p.name!r} has no annotation",
                handler_name=name,
                parameter=p.name,
                hint=HINTS["annotation"],
            )
        req = _parse_annotation(p.name, hints[p.name], name)
        if p.kind is p.KEYWORD_ONLY:
            req = replace(req, keyword=True)
        out.append(req)
    return tuple(out)


def handler(
    fn: Callable[..., Any], *, requires: Iterable[Any] | None = None
) -> Handler:
    """Build a ``Handler`` from a callable.

    Args:
        fn: The action. Its annotations describe what it needs unless
            ``requires`` is given.
        requires: Annotation-style entries, one per positional parameter of
            ``fn``, for callables without annotations (e.g. lambdas).

    Raises:
        HandlerSignatureError: A parameter cannot be interpreted.
    """
    if isinstance(fn, Handler):
        return fn
    if not callable(fn):
        raise HandlerSignatureError(
            f"handler must be callable, got {fn!r}", hint=HINTS["annotation"]
        )
    name = _callable_name(fn)
    if requires is None:
        return Handler(fn, _requirements_from_signature(fn, name), name)
    reqs = tuple(
        _parse_annotation(f"arg{i}", annotation, name)
        for i, annotation in enumerate(requires)
    )
    return Handler(fn, reqs, name)


def as_handlers(items: Iterable[Any]) -> tuple[Handler, ...]:
    return tuple(handler(item) for item in items)
