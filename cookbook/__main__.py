"""Cookbook runner module.

Run cookbook recipes from a dev install, supporting path-like specs
relative to the cookbook folder.

Requires ``pip install -e .`` so that ``import sidechannel`` resolves
through the package manager.

Examples:
- python -m cookbook getting-started/parse-numbers
- python -m cookbook production.async_fan_out --items 4
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
import runpy
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


COOKBOOK_DIRNAME = "cookbook"
EXCLUDE_DIRS = {"utils", "__pycache__"}

START_HERE_DISPLAY = "getting-started/parse-numbers.py"


@dataclass(frozen=True)
class RecipeSpec:
    """A resolved recipe specification.

    Attributes:
        path: Absolute path to the recipe Python file.
        display: Human-readable identifier shown to the user.
    """

    path: Path
    display: str


def cookbook_root() -> Path:
    return Path(__file__).resolve().parent


def is_recipe_file(path: Path) -> bool:
    """True if the path looks like a runnable recipe file."""
    name = path.name
    return name.endswith(".py") and name not in {"__init__.py", "__main__.py"}


def list_recipes() -> list[RecipeSpec]:
    """Discover recipe files under the cookbook directory."""
    root = cookbook_root()
    results: list[RecipeSpec] = []
    for path in root.rglob("*.py"):
        rel = path.relative_to(root)
        if any(part in EXCLUDE_DIRS for part in rel.parts):
            continue
        if not is_recipe_file(path):
            continue
        results.append(RecipeSpec(path=path, display=rel.as_posix()))
    results.sort(key=lambda s: s.display)
    return results


def dotted_to_path(spec: str) -> str:
    """Convert ``a.b_c`` to ``a/b-c.py`` to match on-disk naming."""
    candidate = spec.replace(".", "/").replace("_", "-")
    if not candidate.endswith(".py"):
        candidate += ".py"
    return candidate


def resolve_spec(spec: str) -> RecipeSpec:
    """Resolve a user-provided spec into a recipe under the cookbook.

    Accepts ``cookbook/production/foo.py``, ``production/foo`` or the
    dotted form ``production.foo``.

    Raises:
        FileNotFoundError: No recipe matches, or the path leaves the cookbook.
    """
    croot = cookbook_root()
    rel = spec.removeprefix(COOKBOOK_DIRNAME + "/")
    candidates = [rel if rel.endswith(".py") else rel + ".py", dotted_to_path(rel)]

    for candidate in candidates:
        path = (croot / candidate).resolve()
        if path.is_file() and path.is_relative_to(croot) and is_recipe_file(path):
            return RecipeSpec(path=path, display=path.relative_to(croot).as_posix())

    raise FileNotFoundError(
        f"Recipe not found: {spec!r}. Use --list to view available recipes."
    )


def _extract_description(recipe: RecipeSpec) -> str:
    """Return the ``Recipe: <description>`` line of a recipe's docstring."""
    try:
        first_lines = recipe.path.read_text().split("\n", 10)
    except OSError:
        return ""
    for line in first_lines:
        stripped = line.strip().strip('"').strip("'")
        if stripped.startswith("Recipe:"):
            return stripped[len("Recipe:") :].strip().rstrip(".")
    return ""


def print_recipe_list(recipes: Iterable[RecipeSpec]) -> None:
    for spec in recipes:
        name = spec.display.removesuffix(".py")
        marker = "  ← start here" if spec.display == START_HERE_DISPLAY else ""
        print(f"  {name:<40s} {_extract_description(spec)}{marker}")


def run_recipe(recipe: RecipeSpec, passthrough: Sequence[str]) -> int:
    """Execute the recipe in-process using runpy.

    Sets sys.argv to mimic direct script execution.
    """
    try:
        import sidechannel as _sidechannel  # noqa: F401
    except ImportError:
        print(
            "Error: could not import sidechannel. Run 'pip install -e .' first.",
            file=sys.stderr,
        )
        return 1

    prev_argv = list(sys.argv)
    sys.argv = [str(recipe.path), *passthrough]
    try:
        runpy.run_path(str(recipe.path), run_name="__main__")
    finally:
        sys.argv = prev_argv
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m cookbook",
        description="sidechannel cookbook: runnable error-handling recipes.",
    )
    parser.add_argument("spec", nargs="?", help="Recipe to run")
    parser.add_argument("--list", action="store_true", help="List recipes and exit")
    # Recipe flags pass through without a ``--`` separator.
    args, passthrough = parser.parse_known_args(
        list(argv) if argv is not None else sys.argv[1:]
    )

    if args.list or not args.spec:
        print_recipe_list(list_recipes())
        return 0

    try:
        spec = resolve_spec(args.spec)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    return run_recipe(spec, passthrough)


if __name__ == "__main__":  # pragma: no cover - direct execution guard
    raise SystemExit(main())
