"""Value-level predicates that narrow when a handler fires.

Predicates ride on handler annotations:

    def on_eof(e: Match[ReadError, ReadError.EOF]) -> str: ...
    def on_code(e: Annotated[HttpStatus, match_value(404, 410)]) -> str: ...

List narrowed handlers ahead of the general handler for the same type; the
resolver never reorders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:
    from collections.abc import Callable


class Predicate:
    """Base class for handler-parameter predicates."""

    __slots__ = ()

    def __call__(self, obj: Any) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class MatchValues(Predicate):
    """True when the object equals one of ``values``."""

    values: tuple[Any, ...]

    def __call__(self, obj: Any) -> bool:
        return any(obj == v for v in self.values)

    def __str__(self) -> str:
        return f"match({', '.join(map(repr, self.values))})"


@dataclass(frozen=True, slots=True)
class MatchMember(Predicate):
    """True when ``getattr(obj, attr)`` equals one of ``values``."""

    attr: str
    values: tuple[Any, ...]

    def __call__(self, obj: Any) -> bool:
        try:
            member = getattr(obj, self.attr)
        except AttributeError:
            return False
        return any(member == v for v in self.values)

    def __str__(self) -> str:
        return f"match_member({self.attr!r}, {', '.join(map(repr, self.values))})"


@dataclass(frozen=True, slots=True)
class Not(Predicate):
    inner: Predicate

    def __call__(self, obj: Any) -> bool:
        return not self.inner(obj)

    def __str__(self) -> str:
        return f"if_not({self.inner})"


@dataclass(frozen=True, slots=True)
class Satisfies(Predicate):
    fn: Callable[[Any], bool]

    def __call__(self, obj: Any) -> bool:
        return bool(self.fn(obj))

    def __str__(self) -> str:
        return f"satisfies({getattr(self.fn, '__qualname__', repr(self.fn))})"


def _require_values(values: tuple[Any, ...], name: str) -> None:
    if not values:
        raise ValueError(f"{name}() needs at least one value to compare against")


def match(*values: Any) -> MatchValues:
    _require_values(values, "match")
    return MatchValues(values)


def match_value(*values: Any) -> MatchMember:
    """Compare the object's ``value`` attribute (wrapper-style diagnostics)."""
    _require_values(values, "match_value")
    return MatchMember("value", values)


def match_member(attr: str, *values: Any) -> MatchMember:
    _require_values(values, "match_member")
    return MatchMember(attr, values)


def if_not(predicate: Predicate) -> Not:
    if not isinstance(predicate, Predicate):
        raise TypeError(f"if_not() expects a predicate, got {predicate!r}")
    return Not(predicate)


def satisfies(fn: Callable[[Any], bool]) -> Satisfies:
    if not callable(fn):
        raise TypeError(f"satisfies() expects a callable, got {fn!r}")
    return Satisfies(fn)


class Match:
    """Annotation shorthand: ``Match[E, v1, v2]`` is ``Annotated[E, match(v1, v2)]``."""

    __slots__ = ()

    def __init__(self) -> None:
        raise TypeError("Match is used as an annotation: Match[Type, value, ...]")

    def __class_getitem__(cls, params: Any) -> Any:
        if not isinstance(params, tuple) or len(params) < 2:
            raise TypeError("Match needs a type and at least one value: Match[E, v]")
        slot_type, *values = params
        if not isinstance(slot_type, type):
            raise TypeError(f"Match[...] first argument must be a type, got {slot_type!r}")
        return Annotated[slot_type, MatchValues(tuple(values))]
