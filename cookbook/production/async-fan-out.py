#!/usr/bin/env python3
"""Recipe: Handle failures per task when fanning out with asyncio.gather.

Problem:
    Many fetches run concurrently. Each one can fail with an exception from
    a library you do not control, and each failure should be reported with
    the item that caused it, without tasks seeing each other's details.

Run:
    python -m cookbook production/async-fan-out --items 8
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass

from cookbook.utils.presentation import (
    print_header,
    print_kv_rows,
    print_learning_hints,
    print_section,
)
from sidechannel import (
    Outcome,
    capture_exceptions,
    on_error,
    try_handle_all_async,
)


@dataclass(frozen=True)
class Item:
    value: int


@capture_exceptions(TimeoutError, ConnectionError)
async def fetch(n: int) -> int:
    await asyncio.sleep(0.01 * (n % 3))
    if n % 5 == 4:
        raise TimeoutError(f"item {n} timed out")
    if n % 7 == 6:
        raise ConnectionError("connection reset")
    return n * n


async def fetch_item(n: int) -> Outcome[int]:
    async with on_error(Item(n)):
        result = await fetch(n)
    return result


def on_timeout(e: TimeoutError, item: Item) -> str:
    return f"timeout (item {item.value})"


def on_connection(e: ConnectionError, item: Item) -> str:
    return f"connection error on item {item.value}: {e}"


async def one(n: int) -> object:
    return await try_handle_all_async(lambda: fetch_item(n), on_timeout, on_connection)


async def main_async(count: int) -> None:
    results = await asyncio.gather(*(one(n) for n in range(count)))

    print_section("Results")
    print_kv_rows([(f"item {n}", r) for n, r in enumerate(results)])
    print_learning_hints(
        [
            "Each gathered task has its own error channel; items never mix.",
            "Remove on_connection to see UnhandledFailureError for item 6.",
        ]
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Concurrent fetches with per-task handling")
    parser.add_argument("--items", type=int, default=8, help="Number of items to fetch")
    args = parser.parse_args()

    print_header("Async fan-out")
    asyncio.run(main_async(max(1, int(args.items))))


if __name__ == "__main__":
    main()
