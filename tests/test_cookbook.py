"""Cookbook boundary tests.

Tests for the cookbook runner CLI and a smoke run of each recipe.
"""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

# Ensure project root is in path for cookbook import
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import cookbook.__main__ as runner

pytestmark = [pytest.mark.unit, pytest.mark.cookbook]


class TestCookbookRunner:
    def test_dotted_spec_resolves_to_hyphenated_path(self) -> None:
        spec = runner.resolve_spec("production.async_fan_out")
        assert spec.path.as_posix().endswith("cookbook/production/async-fan-out.py")

    def test_path_spec_with_cookbook_prefix(self) -> None:
        spec = runner.resolve_spec("cookbook/getting-started/parse-numbers.py")
        assert spec.display == "getting-started/parse-numbers.py"

    def test_path_outside_cookbook_is_rejected(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = runner.main(["../src/sidechannel/scope.py"])
        assert code == 2
        assert "Recipe not found" in capsys.readouterr().err

    def test_list_excludes_helpers(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert runner.main(["--list"]) == 0
        out = capsys.readouterr().out
        assert "getting-started/parse-numbers" in out
        assert "start here" in out
        assert "utils/" not in out


class TestRecipes:
    def test_parse_numbers_reports_the_failing_line(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert runner.main(["getting-started/parse-numbers"]) == 0
        assert "<sample>:3: empty line" in capsys.readouterr().out

    def test_parse_numbers_sums_a_clean_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        f = tmp_path / "numbers.txt"
        f.write_text("1\n2\n3\n")

        assert runner.main(["getting-started/parse-numbers", "--input", str(f)]) == 0
        assert "sum = 6" in capsys.readouterr().out

    def test_async_fan_out_reports_each_item(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert runner.main(["production/async-fan-out", "--items", "8"]) == 0
        out = capsys.readouterr().out
        assert "item 3: 9" in out
        assert "timeout (item 4)" in out
        assert "connection error on item 6" in out
