import pytest

from scoring.errors import JSONRecoveryError
from scoring.json_recovery import (
    match_brackets,
    parse_balanced,
    parse_direct,
    parse_fenced,
    recover_json,
    repair_truncated,
)


def test_direct_parse():
    assert parse_direct('  {"fake_percentage": 12, "confidence": "high"} ') == {
        'fake_percentage': 12, 'confidence': 'high'}
    assert parse_direct('Here you go: {"a": 1}') is None
    assert parse_direct('42') is None


def test_fenced_block():
    text = 'Sure, here is the analysis:\n```json\n{"fake_percentage": 30, "key_patterns": ["generic"]}\n```\nThanks'
    assert parse_fenced(text) == {'fake_percentage': 30, 'key_patterns': ['generic']}


def test_truncated_fence_is_repaired():
    text = '```json\n{"fake_percentage": 18, "confidence": "medium", "fake_examples": [{"review_number": 3, "text": "Best ev'
    value = parse_fenced(text)
    assert value['fake_percentage'] == 18
    assert value['confidence'] == 'medium'


def test_balanced_scan_ignores_braces_in_strings():
    text = 'Analysis {not json} then {"explanation": "uses } and { inside", "fake_percentage": 5} trailing'
    assert parse_balanced(text) == {'explanation': 'uses } and { inside', 'fake_percentage': 5}


def test_match_brackets_handles_nesting_and_escapes():
    text = '{"a": [1, {"b": "quote \\" }"}], "c": 2} tail'
    end = match_brackets(text, 0)
    assert text[end] == '}'
    assert text[end + 1:] == ' tail'
    assert match_brackets('{"open": [1, 2', 0) is None


def test_repair_drops_half_written_member():
    value = repair_truncated('{"fake_percentage": 40, "explanation": "ok", "key_patterns": ["a", "b"], "product_ins')
    assert value == {'fake_percentage': 40, 'explanation': 'ok', 'key_patterns': ['a', 'b']}


def test_recover_json_tiers_in_order():
    assert recover_json('{"x": 1}') == {'x': 1}
    assert recover_json('```\n{"x": 2}\n```') == {'x': 2}
    assert recover_json('prefix {"x": 3} suffix') == {'x': 3}
    assert recover_json('result: {"x": 4, "y": [1, 2') == {'x': 4, 'y': [1, 2]}


@pytest.mark.parametrize('text', ['', '   ', 'no json here at all'])
def test_recover_json_failure(text):
    with pytest.raises(JSONRecoveryError):
        recover_json(text)
