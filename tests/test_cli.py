"""
Tests for the numscript command line.
"""

import json

import pytest
from numscript.__main__ import main


class TestEval:
    """The eval command."""

    def test_prints_value(self, capsys):
        assert main(["eval", "1 + 2"]) == 0
        assert capsys.readouterr().out == "3\n"

    def test_matrix_output(self, capsys):
        assert main(["eval", "[1,2;3,4] * [1;1]"]) == 0
        assert capsys.readouterr().out == "3\n7\n"

    def test_error_exit_status(self, capsys):
        assert main(["eval", "x + 1"]) == 1
        captured = capsys.readouterr()
        assert "error[E401]" in captured.err
        assert "Line 001, Pos. 001" in captured.err

    def test_long_format(self, capsys):
        assert main(["eval", "pi", "--format", "long"]) == 0
        assert capsys.readouterr().out.strip() == "3.14159265358979"

    def test_format_statement(self, capsys):
        assert main(["eval", "format long; pi"]) == 0
        assert capsys.readouterr().out.strip() == "3.14159265358979"

    def test_json(self, capsys):
        assert main(["eval", "x = 2; x * 3", "--json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["success"] is True
        assert [r["value"] for r in payload["results"]] == ["2", "6"]

    def test_json_error(self, capsys):
        assert main(["eval", "()", "--json"]) == 1
        payload = json.loads(capsys.readouterr().out)
        diagnostic = payload["results"][0]["diagnostics"][0]
        assert diagnostic["code"] == "E103"
        assert diagnostic["column"] == 1

    def test_config_file(self, tmp_path, capsys):
        config = tmp_path / "format.yaml"
        config.write_text("mode: long\nlong_precision: 6\n", encoding="utf-8")
        assert main(["eval", "pi", "--config", str(config)]) == 0
        assert capsys.readouterr().out.strip() == "3.14159"

    def test_bad_config_file(self, tmp_path, capsys):
        config = tmp_path / "format.yaml"
        config.write_text("speed: 11\n", encoding="utf-8")
        assert main(["eval", "pi", "--config", str(config)]) == 1
        assert "speed" in capsys.readouterr().err

    def test_verbose(self, capsys):
        assert main(["-v", "eval", "1"]) == 0


class TestRun:
    """The run command."""

    def test_script(self, tmp_path, capsys):
        script = tmp_path / "script.num"
        script.write_text("function sq(x) = x^2\ny = sq(3);\ndisp(y + 1)\n", encoding="utf-8")
        assert main(["run", str(script)]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert "9" in lines
        assert "10" in lines

    def test_missing_file(self, tmp_path, capsys):
        assert main(["run", str(tmp_path / "nope.num")]) == 1
        assert "File not found" in capsys.readouterr().err


class TestCheck:
    """The check command."""

    def test_valid(self, tmp_path, capsys):
        script = tmp_path / "ok.num"
        script.write_text("x = 1\ny = x + 2\n", encoding="utf-8")
        assert main(["check", str(script)]) == 0
        assert "2 statement(s)" in capsys.readouterr().out

    def test_does_not_evaluate(self, tmp_path, capsys):
        script = tmp_path / "undefined.num"
        script.write_text("undefined_name + 1\n", encoding="utf-8")
        assert main(["check", str(script)]) == 0

    def test_syntax_error(self, tmp_path, capsys):
        script = tmp_path / "bad.num"
        script.write_text("x = (1 +\n", encoding="utf-8")
        assert main(["check", str(script)]) == 1
        assert "error[E102]" in capsys.readouterr().err

    def test_ast(self, tmp_path, capsys):
        script = tmp_path / "ast.num"
        script.write_text("1 + 2\n", encoding="utf-8")
        assert main(["check", str(script), "--ast"]) == 0
        assert "BinaryOp" in capsys.readouterr().out

    def test_json(self, tmp_path, capsys):
        script = tmp_path / "bad.num"
        script.write_text("1 + 2)\n", encoding="utf-8")
        assert main(["check", str(script), "--json"]) == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload["diagnostics"][0]["code"] == "E105"
