from __future__ import annotations

from circuit_services.diagnostics import (
    SubstringClassifier,
    classify_lines,
    format_diagnostics,
    group_diagnostics,
    strip_ansi,
)


def test_grouping_folds_detail_lines_into_error_blocks():
    lines = ["info: start", "error[P1001]: foo", "  detail1", "error[P1002]: bar", "  detail2"]
    out = format_diagnostics(lines)
    assert out == "info: start\n\nerror[P1001]: foo\n  detail1\n\nerror[P1002]: bar\n  detail2"

    blocks = group_diagnostics(lines)
    assert [b.kind for b in blocks] == ["info", "error", "error"]
    assert blocks[1].text == "error[P1001]: foo\n  detail1"
    assert blocks[2].text == "error[P1002]: bar\n  detail2"


def test_plain_error_line_opens_a_block():
    lines = ["previous errors were found", "Error: Assert Failed.", "    at line 9"]
    blocks = group_diagnostics(lines)
    # "errors" in the first line already makes it a marker.
    assert len(blocks) == 2
    assert blocks[1].lines == ["Error: Assert Failed.", "    at line 9"]


def test_warning_wins_over_error_substring():
    c = SubstringClassifier()
    assert c.classify("warning: this pattern is error-prone") == "warning"
    assert c.classify("warning[CA02]: unused signal") == "warning"
    assert c.classify("error[T3001]: Non quadratic constraints are not allowed!") == "error"
    assert c.classify("template instances: 1") == "info"
    assert not c.is_marker("warning[CA02]: unused signal")


def test_classify_lines_splits_and_strips_ansi():
    raw = ["\x1b[31merror[P1012]\x1b[0m: illegal expression", "", "warning: something", "Everything went okay"]
    errors, warnings = classify_lines(raw)
    assert errors == ["error[P1012]: illegal expression"]
    assert warnings == ["warning: something"]


def test_strip_ansi():
    assert strip_ansi("\x1b[1;32mOK!\x1b[0m") == "OK!"


def test_empty_input_formats_to_empty_string():
    assert format_diagnostics([]) == ""
    assert format_diagnostics(["", "   "]) == ""
