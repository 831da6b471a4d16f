import pytest

from rosetta_gateway.errors import ExtractionFailure
from rosetta_gateway.tools import parse_json_with_repair
from rosetta_gateway.tools.jsonscan import find_json_end, first_unclosed_object


def test_valid_json_needs_no_repair():
    assert parse_json_with_repair('{"city": "NYC"}') == ({"city": "NYC"}, [])


def test_unclosed_object_is_balanced():
    value, steps = parse_json_with_repair('{"city": "NYC"')

    assert value == {"city": "NYC"}
    assert steps == ["balance_brackets"]


def test_unterminated_string_is_closed():
    value, steps = parse_json_with_repair('{"query": "weather in Par')

    assert value == {"query": "weather in Par"}
    assert "balance_brackets" in steps


def test_python_literals_and_trailing_comma():
    value, steps = parse_json_with_repair('{"verbose": True, "limit": None,}')

    assert value == {"verbose": True, "limit": None}
    assert steps == ["fix_native_literals"]


def test_literals_inside_strings_are_untouched():
    value, _ = parse_json_with_repair('{"text": "True story", "ok": False')

    assert value == {"text": "True story", "ok": False}


def test_raw_newline_in_string():
    value, steps = parse_json_with_repair('{"text": "line one\nline two"}')

    assert value == {"text": "line one\nline two"}
    assert steps == ["escape_control_characters"]


def test_single_quoted_dict():
    value, steps = parse_json_with_repair("{'city': 'NYC'}")

    assert value == {"city": "NYC"}
    assert steps == ["python_literal"]


@pytest.mark.parametrize("raw", ["", "   ", "{not json", "just words"])
def test_unrepairable_payload(raw):
    with pytest.raises(ExtractionFailure):
        parse_json_with_repair(raw)


def test_find_json_end_ignores_braces_in_strings():
    text = 'x {"a": "}{", "b": [1, {"c": 2}]} tail'

    assert text[find_json_end(text, 2) :] == " tail"
    assert find_json_end('{"a": ', 0) is None


def test_first_unclosed_object():
    assert first_unclosed_object('done {"a": 1} and {"b": ') == len("done {\"a\": 1} and ")
    assert first_unclosed_object("a set {x, y} and {z") is None
    assert first_unclosed_object("plain text, no objects") is None
