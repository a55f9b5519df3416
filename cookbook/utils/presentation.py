"""Shared output helpers for cookbook recipe terminal presentation."""

from __future__ import annotations

from sidechannel import current_config


def print_header(title: str) -> None:
    """Print recipe title with the active sidechannel configuration."""
    print(title)
    print("=" * len(title))
    cfg = current_config()
    print(
        f"capture_location={cfg.capture_location} "
        f"trace_resolution={cfg.trace_resolution}"
    )


def print_section(title: str) -> None:
    """Print a named section heading."""
    print(f"\n{title}")
    print("-" * len(title))


def print_kv_rows(rows: list[tuple[str, object]]) -> None:
    """Print compact key/value rows using a uniform bullet style."""
    for key, value in rows:
        # Indent continuation lines of multi-line values.
        lines = str(value).splitlines() or [""]
        print(f"- {key}: {lines[0]}")
        for cont in lines[1:]:
            print(f"  {' ' * len(key)}  {cont}")


def print_learning_hints(hints: list[str]) -> None:
    """Print short next-step hints after a run."""
    if not hints:
        return
    print_section("Next steps")
    for hint in hints:
        print(f"- {hint}")
