"""Tests for run-aware placeholder scanning."""

from __future__ import annotations

from builders import slide_xml
from slidefill.config import DEFAULT_CONFIG, EngineConfig
from slidefill.scanner import BOUNDARY, TextIndex, paragraph_texts, parse_markup, scan


def _scan(*paragraphs, config=DEFAULT_CONFIG):
    root = parse_markup(slide_xml(*paragraphs).encode("utf-8"))
    return scan(root, config)


def test_token_inside_one_run():
    _, spans = _scan(["Dear {{NAME}},"])
    [span] = spans
    assert span.text == "{{NAME}}"
    assert span.token.field == "NAME"
    assert not span.crosses_runs
    assert (span.start_offset, span.end_offset) == (5, 13)


def test_token_split_across_three_runs():
    index, spans = _scan(["{{", "NA", "ME}} and more"])
    [span] = spans
    assert span.crosses_runs
    assert (span.start_run, span.start_offset) == (0, 0)
    assert (span.end_run, span.end_offset) == (2, 4)
    assert len(index.runs) == 3


def test_tokens_do_not_cross_paragraphs_or_breaks():
    _, spans = _scan(["{{NA"], ["ME}}"])
    assert spans == []

    _, spans = _scan(["{{NA", "<a:br/>", "ME}}"])
    assert spans == []


def test_field_element_is_a_boundary():
    field = '<a:fld id="{A}" type="slidenum"><a:t>NA</a:t></a:fld>'
    _, spans = _scan(["{{", field, "ME}}"])
    assert spans == []


def test_unknown_token_is_reported_with_its_body():
    _, spans = _scan(["{{FOO}} and {{NAME}}"])
    assert [(s.body, s.known) for s in spans] == [("FOO", False), ("NAME", True)]


def test_spans_are_ordered_and_disjoint():
    _, spans = _scan(["{{NAME}}{{ROLE}}", "{{ {{COMPANY}}}}"], ["{{EMAIL}}"])
    assert [s.body for s in spans] == ["NAME", "ROLE", "COMPANY", "EMAIL"]
    for a, b in zip(spans, spans[1:]):
        assert a.char_end <= b.char_start
        assert not a.overlaps(b)


def test_long_delimited_prose_is_not_a_token():
    _, spans = _scan(["{{" + "x" * 100 + "}}"])
    assert spans == []


def test_custom_delimiters():
    config = EngineConfig.from_fields(["CITY"], open="[[", close="]]")
    _, spans = _scan(["From [[CI", "TY]] with {{NAME}}"], config=config)
    assert [s.text for s in spans] == ["[[CITY]]"]


def test_index_marks_paragraph_ends():
    root = parse_markup(slide_xml(["ab"], ["c"]).encode("utf-8"))
    index = TextIndex.build(root)
    assert index.text == f"ab{BOUNDARY}c{BOUNDARY}"
    assert index.positions == [(0, 0), (0, 1), None, (1, 0), None]
    assert index.locate(0, 2) == ((0, 0), (0, 1))
    assert index.locate(1, 4) is None


def test_paragraph_texts_renders_breaks():
    root = parse_markup(slide_xml(["one", "<a:br/>", "two"], ["three"]).encode("utf-8"))
    assert paragraph_texts(root) == ["one\ntwo", "three"]
