"""Unit tests for CLI entry point."""

import io
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from tree_composer import __version__
from tree_composer.cli import _resolve_group_arg, main

FIXTURE = str(Path(__file__).parent.parent / "fixtures" / "categories.ndjson")


def _write_records(path: Path, records: list[dict]) -> str:
    path.write_text("".join(json.dumps(r) + "\n" for r in records))
    return str(path)


class TestArgumentParsing:
    """Test CLI argument parsing and defaults."""

    def test_minimal_arguments_write_stdout(self, capsys):
        """CLI with only an input file prints JSON to stdout."""
        exit_code = main([FIXTURE])

        assert exit_code == 0
        captured = capsys.readouterr()
        data = json.loads(captured.out)
        assert list(data) == ["blog", "product"]
        assert "Forest composed" in captured.err

    def test_output_argument(self, tmp_path, capsys):
        """CLI with -o writes the JSON file."""
        output_file = tmp_path / "forest.json"

        exit_code = main([FIXTURE, "-o", str(output_file)])

        assert exit_code == 0
        data = json.loads(output_file.read_text())
        assert [r["id"] for r in data["product"]] == [1, 3]
        assert capsys.readouterr().out == ""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_reads_sys_argv(self, monkeypatch, tmp_path):
        output_file = tmp_path / "out.json"
        monkeypatch.setattr("sys.argv", ["tree-compose", FIXTURE, "-o", str(output_file)])

        assert main() == 0
        assert output_file.exists()

    def test_stdin_input(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO('{"id": 1, "group": "g"}\n'))

        assert main(["-"]) == 0
        assert json.loads(capsys.readouterr().out)["g"][0]["id"] == 1


class TestOptions:
    def test_group_filter(self, capsys):
        assert main([FIXTURE, "--group", "blog"]) == 0
        assert list(json.loads(capsys.readouterr().out)) == ["blog"]

    def test_numeric_group_argument(self, tmp_path, capsys):
        path = _write_records(tmp_path / "r.ndjson", [{"id": 1, "group": 7}, {"id": 2, "group": 8}])

        assert main([path, "-g", "7"]) == 0
        assert list(json.loads(capsys.readouterr().out)) == ["7"]

    def test_unknown_group(self, capsys):
        assert main([FIXTURE, "--group", "nope"]) == 1
        assert "Unknown group key" in capsys.readouterr().err

    def test_max_depth_exceeded(self, capsys):
        assert main([FIXTURE, "--max-depth", "2"]) == 1
        assert "max_depth=2" in capsys.readouterr().err

    def test_max_depth_within_bound(self, capsys):
        assert main([FIXTURE, "--max-depth", "3"]) == 0

    def test_indent(self, capsys):
        assert main([FIXTURE, "--indent", "2"]) == 0
        assert '\n  "blog"' in capsys.readouterr().out

    def test_flatten_payload(self, capsys):
        assert main([FIXTURE, "--flatten-payload", "-g", "product"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["product"][0]["name"] == "Electronics"

    def test_reject_cross_group(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "group": "a"}, {"id": 2, "parent": 1, "group": "b"}],
        )

        assert main([path]) == 0
        capsys.readouterr()
        assert main([path, "--reject-cross-group"]) == 1
        assert "different group" in capsys.readouterr().err

    def test_strict_rejects_malformed(self, tmp_path, capsys):
        path = tmp_path / "r.ndjson"
        path.write_text('{"id": 1, "group": "g"}\n{oops\n')

        assert main([path.as_posix(), "--strict"]) == 1
        assert "Malformed line 2" in capsys.readouterr().err

    def test_lenient_skips_malformed(self, tmp_path, capsys):
        path = tmp_path / "r.ndjson"
        path.write_text('{"id": 1, "group": "g"}\n{oops\n')

        with pytest.warns(UserWarning):
            assert main([path.as_posix()]) == 0


class TestErrorHandling:
    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.ndjson")]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_cycle_writes_no_output(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "parent": 2, "group": "g"}, {"id": 2, "parent": 1, "group": "g"}],
        )
        output_file = tmp_path / "out.json"

        assert main([path, "-o", str(output_file)]) == 1
        assert not output_file.exists()
        assert "Cycle detected" in capsys.readouterr().err

    def test_duplicate_ids(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "group": "a"}, {"id": 1, "group": "b"}],
        )

        assert main([path]) == 1
        assert "Duplicate node id" in capsys.readouterr().err

    def test_mixed_id_types_in_group(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "group": "g"}, {"id": "a", "group": "g"}],
        )

        assert main([path]) == 1
        err = capsys.readouterr().err
        assert err.startswith("Error:")
        assert "cannot be ordered" in err

    def test_mixed_group_key_types(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "group": 1}, {"id": 2, "group": "g"}],
        )

        assert main([path]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_unhashable_id_strict(self, tmp_path, capsys):
        path = _write_records(tmp_path / "r.ndjson", [{"id": [1], "group": "g"}])

        assert main([path, "--strict"]) == 1
        assert "Malformed line 1" in capsys.readouterr().err

    def test_unhashable_parent_skipped(self, tmp_path, capsys):
        path = _write_records(
            tmp_path / "r.ndjson",
            [{"id": 1, "group": "g"}, {"id": 2, "parent": {"id": 1}, "group": "g"}],
        )

        with pytest.warns(UserWarning, match="Skipping malformed line 2"):
            assert main([path]) == 0
        assert [r["id"] for r in json.loads(capsys.readouterr().out)["g"]] == [1]

    def test_nan_order_strict(self, tmp_path, capsys):
        path = tmp_path / "r.ndjson"
        path.write_text('{"id": 1, "group": "g", "order": NaN}\n')

        assert main([path.as_posix(), "--strict"]) == 1
        assert "Invalid order value" in capsys.readouterr().err

    def test_permission_error(self, capsys):
        with patch("tree_composer.cli.parse_file", side_effect=PermissionError("locked")):
            assert main([FIXTURE]) == 1
        assert "Permission denied" in capsys.readouterr().err


class TestResolveGroupArg:
    def test_exact_string_match_wins(self):
        assert _resolve_group_arg("1", {"1", 1}) == "1"

    def test_json_number(self):
        assert _resolve_group_arg("3", {3}) == 3

    def test_plain_string(self):
        assert _resolve_group_arg("menu", set()) == "menu"

    def test_structured_json_stays_string(self):
        assert _resolve_group_arg("[1]", set()) == "[1]"
