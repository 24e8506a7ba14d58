"""Tests for the command line entry point."""

import pytest

from textflow.main import main


class TestFilterCommand:

    def test_rules_only(self, capsys):
        assert main(["filter", "This is a damn stupid message", "--rules-only"]) == 0
        assert "Filtered text: This is a **** ****** message" in capsys.readouterr().out

    def test_rules_only_chunked(self, capsys):
        code = main(["filter", "damn one two three stupid four", "--rules-only", "--chunk-size", "10"])
        assert code == 0
        out = capsys.readouterr().out
        assert "Filtered text: **** one two three ****** four" in out
        assert "Chunks: 3" in out

    @pytest.mark.parametrize("flag, value", [
        ("--chunk-size", "-3"),
        ("--chunk-size", "0"),
        ("--chunk-size", "big"),
        ("--max-concurrent", "0"),
    ])
    def test_non_positive_knob_is_usage_error(self, capsys, flag, value):
        with pytest.raises(SystemExit) as excinfo:
            main(["filter", "some text", "--rules-only", flag, value])
        assert excinfo.value.code == 2
        assert f"argument {flag}" in capsys.readouterr().err
