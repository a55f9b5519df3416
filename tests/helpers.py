"""Test helpers: shared diagnostic types and small fallible functions.

Keep this file tiny and purpose-built: it exists so test modules agree on
one set of diagnostic types instead of each declaring their own.
"""

from __future__ import annotations

from dataclasses import dataclass
import enum

from sidechannel import Outcome, new_error, on_error


class Err1(enum.Enum):
    E1 = 1
    E2 = 2


class Err2(enum.Enum):
    E1 = 1
    E2 = 2


class ParseError(enum.Enum):
    BAD_SYNTAX = "bad syntax"
    EMPTY = "empty"


@dataclass(frozen=True)
class Line:
    value: int


@dataclass(frozen=True)
class FileName:
    value: str


def parse_line(text: str) -> Outcome[int]:
    """Parse a decimal integer, failing with a ParseError."""
    stripped = text.strip()
    if not stripped:
        return new_error(ParseError.EMPTY)
    if not stripped.isdigit():
        return new_error(ParseError.BAD_SYNTAX)
    return Outcome.success(int(stripped))


def parse_lines(lines: list[str]) -> Outcome[list[int]]:
    """Parse every line, attaching the 1-based line number on failure."""
    values: list[int] = []
    for number, text in enumerate(lines, 1):
        with on_error(Line(number)):
            parsed = parse_line(text)
        if not parsed:
            return parsed.propagate()
        values.append(parsed.value())
    return Outcome.success(values)
