import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from captions import CaptionItem
from response_parser import (
    align_by_position,
    extract_records,
    extract_records_strict,
    has_usable_text,
    parse,
    slice_json_array,
    strip_code_fence,
    strip_think_block,
)
from translator_errors import ParseError


def originals(*texts):
    return [CaptionItem(float(i), float(i + 1), t) for i, t in enumerate(texts)]


def test_fenced_json_reply_is_parsed():
    raw = '```json\n[{"id":"00:00:02","text":"가"}]\n```'
    out = parse(raw, [CaptionItem(2, 4, "hi")])
    assert out == [CaptionItem(2, 4, "가")]


def test_untagged_fence_and_surrounding_prose():
    raw = 'Here you go:\n```\n[{"id": "x", "text": "A"}]\n```\nHope this helps!'
    assert [c.text for c in parse(raw, originals("a"))] == ["A"]


def test_array_embedded_in_commentary_without_fence():
    raw = 'Sure! [{"text": "A"}, {"text": "B"}] Let me know.'
    assert [c.text for c in parse(raw, originals("a", "b"))] == ["A", "B"]


def test_no_array_span_falls_back_to_original_text():
    items = originals("one", "two")
    assert parse("I cannot translate this.", items) == items


def test_invalid_json_falls_back_to_original_text():
    items = originals("one", "two")
    assert parse('[{"text": "A"}, {"text": ', items) == items
    assert parse("[not json]", items) == items


def test_positional_mapping_ignores_echoed_ids():
    raw = '[{"id": "00:09:99", "text": "A"}, {"id": "00:00:00", "text": "B"}]'
    out = parse(raw, originals("first", "second"))
    assert [c.text for c in out] == ["A", "B"]


def test_short_reply_fills_tail_with_original():
    out = parse('[{"text": "A"}]', originals("x", "y", "z"))
    assert [c.text for c in out] == ["A", "y", "z"]


def test_long_reply_extra_entries_dropped():
    out = parse('[{"text": "A"}, {"text": "B"}, {"text": "C"}]', originals("x", "y"))
    assert [c.text for c in out] == ["A", "B"]


def test_empty_or_missing_text_keeps_original():
    out = parse('[{"id": "1", "text": ""}, {"id": "2"}, {"text": "   "}, {"text": 7}]',
                originals("a", "b", "c", "d"))
    assert [c.text for c in out] == ["a", "b", "c", "d"]


def test_bare_string_records_are_accepted():
    out = parse('["A", "B"]', originals("a", "b"))
    assert [c.text for c in out] == ["A", "B"]


def test_timestamps_are_retained():
    items = [CaptionItem(10.5, 12.0, "x"), CaptionItem(12.0, 15.25, "y")]
    out = parse('[{"text": "X"}, {"text": "Y"}]', items)
    assert [(c.start_in_seconds, c.end_in_seconds) for c in out] == [(10.5, 12.0), (12.0, 15.25)]


def test_think_block_is_dropped_before_parsing():
    raw = '<think>maybe ["wrong"]</think>\n[{"text": "A"}]'
    assert strip_think_block(raw) == '[{"text": "A"}]'
    assert [c.text for c in parse(raw, originals("a"))] == ["A"]


def test_strip_code_fence_without_fence_is_identity():
    assert strip_code_fence('[{"text": "A"}]') == '[{"text": "A"}]'


def test_strip_code_fence_with_language_tag():
    assert strip_code_fence("```JSON\n[1, 2]\n```") == "[1, 2]"


@pytest.mark.parametrize("text,expected", [
    ("abc [1, 2] def", "[1, 2]"),
    ("[[1], [2]] tail", "[[1], [2]]"),
    ("no brackets", ""),
    ("] backwards [", ""),
])
def test_slice_json_array(text, expected):
    assert slice_json_array(text) == expected


def test_extract_records_strict_raises_on_non_array():
    with pytest.raises(ParseError):
        extract_records_strict("nothing here")
    with pytest.raises(ParseError):
        extract_records_strict("[broken")


def test_extract_records_swallows_parse_errors():
    assert extract_records("nothing here") == []
    assert extract_records(None) == []


def test_align_by_position_with_no_records_is_pure_fallback():
    items = originals("a", "b")
    assert align_by_position([], items) == items


def test_has_usable_text_only_counts_records_for_existing_lines():
    assert has_usable_text([{"text": ""}, {"text": "B"}], 2) is True
    assert has_usable_text([], 2) is False
    assert has_usable_text([{"id": "1"}, "  ", {"text": None}], 3) is False
    assert has_usable_text([{"text": ""}, {"text": "extra"}], 1) is False
