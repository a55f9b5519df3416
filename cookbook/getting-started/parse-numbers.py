#!/usr/bin/env python3
"""Recipe: Attach line numbers to parse failures and handle them at the top.

Problem:
    A parser deep in the call stack knows *what* went wrong; the loop around
    it knows *where*; only the caller knows what to do about it.

Run:
    python -m cookbook getting-started/parse-numbers
    python -m cookbook getting-started/parse-numbers --input numbers.txt
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
import enum
from pathlib import Path

from cookbook.utils.presentation import (
    print_header,
    print_kv_rows,
    print_learning_hints,
    print_section,
)
from sidechannel import (
    DiagnosticInfo,
    Match,
    Outcome,
    new_error,
    on_error,
    try_handle_all,
)

SAMPLE = ["10", "20", "", "forty"]


class ParseError(enum.Enum):
    BAD_SYNTAX = "bad syntax"
    EMPTY = "empty line"


@dataclass(frozen=True)
class Line:
    value: int


@dataclass(frozen=True)
class Source:
    value: str


def parse_line(text: str) -> Outcome[int]:
    stripped = text.strip()
    if not stripped:
        return new_error(ParseError.EMPTY)
    if not stripped.lstrip("-").isdigit():
        return new_error(ParseError.BAD_SYNTAX)
    return Outcome.success(int(stripped))


def parse_all(lines: list[str]) -> Outcome[list[int]]:
    # Knows line numbers, never names ParseError.
    values = []
    for number, text in enumerate(lines, 1):
        with on_error(Line(number)):
            parsed = parse_line(text)
        if not parsed:
            return parsed.propagate()
        values.append(parsed.value())
    return Outcome.success(values)


def load(lines: list[str], source: str) -> Outcome[list[int]]:
    with on_error(Source(source)):
        result = parse_all(lines)
    return result


def on_empty(e: Match[ParseError, ParseError.EMPTY], line: Line, src: Source) -> str:
    return f"{src.value}:{line.value}: empty line"


def on_parse(e: ParseError, line: Line, src: Source) -> str:
    return f"{src.value}:{line.value}: {e.value}"


def on_anything(info: DiagnosticInfo) -> str:
    return f"unexpected failure\n{info}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Parse numbers, one per line")
    parser.add_argument("--input", type=Path, default=None, help="Text file to parse")
    args = parser.parse_args()

    if args.input is not None:
        lines = args.input.read_text().splitlines()
        source = str(args.input)
    else:
        lines, source = SAMPLE, "<sample>"

    print_header("Parse numbers")
    print_section("Result")

    def attempt() -> Outcome[str]:
        result = load(lines, source)
        if not result:
            return result.propagate()
        return Outcome.success(f"sum = {sum(result.value())}")

    print_kv_rows(
        [
            ("Input", source),
            ("Lines", len(lines)),
            ("Outcome", try_handle_all(attempt, on_empty, on_parse, on_anything)),
        ]
    )
    print_learning_hints(
        [
            "Reorder on_empty after on_parse and notice it never runs.",
            "Set SIDECHANNEL_CAPTURE_LOCATION=1 and print DiagnosticInfo.",
        ]
    )


if __name__ == "__main__":
    main()
