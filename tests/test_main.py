"""
tests/test_main.py

Command-line entry point, run against pre-rendered SVG files.
"""

from __future__ import annotations

import json
from pathlib import Path

from drawio import load_document
from main import main, output_path

from samples import EMPTY_SVG, FLOWCHART_SVG


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _settings(tmp_path: Path) -> list:
    return ["--settings", str(tmp_path / "settings.toml")]


class TestMain:
    def test_list_types(self, capsys):
        assert main(["--list-types"]) == 0
        out = capsys.readouterr().out
        assert "flowchart" in out
        assert "layout=always" in out

    def test_converts_svg_file(self, tmp_path, capsys):
        src = _write(tmp_path, "flow.svg", FLOWCHART_SVG)
        assert main([str(src)] + _settings(tmp_path)) == 0
        doc = load_document((tmp_path / "flow.drawio").read_text(encoding="utf-8"))
        assert [c.value for c in doc.vertices()] == ["Start", "OK?"]
        assert "1 succeeded, 0 failed" in capsys.readouterr().out

    def test_json_output(self, tmp_path):
        src = _write(tmp_path, "flow.svg", FLOWCHART_SVG)
        dest = tmp_path / "out" / "doc.json"
        assert main([str(src), "-o", str(dest), "--json"] + _settings(tmp_path)) == 0
        data = json.loads(dest.read_text(encoding="utf-8"))
        assert data["cells"][0]["id"] == "0"

    def test_failure_exit_code(self, tmp_path, capsys):
        good = _write(tmp_path, "good.svg", FLOWCHART_SVG)
        bad = _write(tmp_path, "bad.svg", EMPTY_SVG)
        assert main([str(good), str(bad), "-o", str(tmp_path / "out")] + _settings(tmp_path)) == 1
        assert (tmp_path / "out" / "good.drawio").is_file()
        assert not (tmp_path / "out" / "bad.drawio").exists()
        assert "[extract]" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.svg")] + _settings(tmp_path)) == 2
        assert "no such file" in capsys.readouterr().err


class TestOutputPath:
    def test_beside_source(self):
        assert output_path(Path("a/b.mmd"), None, True, False) == Path("a/b.drawio")

    def test_explicit_file(self, tmp_path):
        assert output_path(Path("b.mmd"), str(tmp_path / "x.drawio"), True, False) == tmp_path / "x.drawio"

    def test_directory_for_many(self, tmp_path):
        assert output_path(Path("b.mmd"), str(tmp_path), False, True) == tmp_path / "b.json"
