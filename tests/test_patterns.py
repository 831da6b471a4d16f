import json

import pytest

from rosetta_gateway.tools import PatternLibrary, PatternSpec, load_library, resolve_overlaps
from rosetta_gateway.tools.default_patterns import DEFAULT_EXCLUSIONS


def best(library: PatternLibrary, text: str):
    return resolve_overlaps(library.match(text, include_partial=False))


def test_text_tool_call_wins_over_generic_call(library):
    candidates = best(library, 'Tool call: get_weather({"city": "NYC"})')

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.method == "text_tool_call"
    assert candidate.name == "get_weather"
    assert candidate.raw_arguments == '{"city": "NYC"}'
    assert candidate.confidence == 0.9
    assert candidate.payload_kind == "arguments"
    assert not candidate.truncated


def test_tagged_tool_call(library):
    text = 'Sure. <tool_call>{"name": "search", "arguments": {"query": "rust"}}</tool_call>'
    candidates = best(library, text)

    assert [c.method for c in candidates] == ["tool_call_tag"]
    assert candidates[0].name == "search"
    assert candidates[0].payload_kind == "tool_object"
    assert text[candidates[0].end - len("</tool_call>") : candidates[0].end] == "</tool_call>"


def test_empty_argument_list(library):
    candidates = best(library, "Tool call: list_files()")

    assert candidates[0].name == "list_files"
    assert candidates[0].raw_arguments == "{}"
    assert candidates[0].end == len("Tool call: list_files()")


def test_open_payload_is_truncated(library):
    candidates = best(library, 'Tool call: get_weather({"city": ')

    assert candidates[0].truncated
    assert candidates[0].raw_arguments == '{"city": '


def test_anthropic_tool_use_object(library):
    text = 'Here: {"type": "tool_use", "id": "toolu_01", "name": "search", "input": {"q": "x"}} done'
    candidates = best(library, text)

    assert candidates[0].confidence == 1.0
    assert candidates[0].text.startswith('{"type": "tool_use"')
    assert candidates[0].text.endswith("}}")


def test_localized_tool_call(library):
    candidates = best(library, '工具调用: 搜索({"query": "天气"})')

    assert candidates[0].method == "localized_tool_call"
    assert candidates[0].name == "搜索"


def test_keyed_function_call_confidence(library):
    assert library.confidence('Let me search({"query": "weather"})') == 0.75


def test_plain_text_disclaimer_excludes_calls(library):
    text = 'This is just plain text, not a tool call: search({"query": "x"})'

    assert library.match(text) == []
    assert library.confidence(text) == 0.0


def test_math_function_is_not_a_tool_call(library):
    text = 'The quadratic function f({"a": 1}) has two roots'

    assert best(library, text) == []


def test_personal_record_exclusion():
    library = PatternLibrary.from_tables(
        [{"name": "json_name", "regex": r'\{\s*"name"\s*:', "kind": "json", "confidence": 0.6}],
        DEFAULT_EXCLUSIONS,
    )

    assert library.match('{"name": "Alice", "age": 30}') == []
    assert len(library.match('{"name": "search", "arguments": {}}')) == 1


def test_partial_patterns_only_at_end_of_text(library):
    held = library.match("I will call the Tool call: get_wea")
    assert any(c.method == "partial_tool_call" for c in held)

    windowed = library.match("I will call the Tool call: get_wea", 0, 10)
    assert not any(c.is_partial for c in windowed)


@pytest.mark.parametrize("tail", ["", "<", "</too", "</tool_call"])
def test_partly_closed_tag_is_truncated_not_dropped(library, tail):
    text = 'Here: <tool_call>{"name": "x", "arguments": {"a": 1}}' + tail
    candidates = best(library, text)

    assert [(c.method, c.start, c.truncated) for c in candidates] == [("tool_call_tag", 6, True)]


def test_partial_search_is_limited_to_the_tail(library):
    text = "Tool " + "z" * (library.max_partial_chars + 1)

    assert not any(c.is_partial for c in library.match(text))
    assert any(c.method == "trailing_identifier" for c in library.match("plain zz"))


def test_resolve_overlaps_prefers_confidence_then_start(library):
    low = library.match('search({"query": "x"})', include_partial=False)
    kept = resolve_overlaps(low)

    assert [c.method for c in kept] == ["keyed_function_call"]


def test_tagged_pattern_requires_closing():
    spec = PatternSpec(name="broken", regex="<call>", kind="tagged", confidence=1.0)

    with pytest.raises(ValueError):
        spec.compiled_closing()


def test_invalid_regex_rejected():
    with pytest.raises(ValueError):
        PatternSpec(name="bad", regex="(unclosed", confidence=0.5)


def test_load_library_from_file(tmp_path):
    path = tmp_path / "patterns.json"
    path.write_text(
        json.dumps(
            {
                "patterns": [
                    {"name": "invoke", "regex": r"INVOKE\s+(?P<tool>\w+)\s*\(", "kind": "call", "confidence": 0.9}
                ]
            }
        ),
        encoding="utf-8",
    )

    library = load_library(str(path))
    candidates = library.match('INVOKE lookup({"id": 3})')

    assert [p.name for p in library.patterns] == ["invoke"]
    assert library.exclusions == ()
    assert candidates[0].name == "lookup"


def test_empty_library_rejected():
    with pytest.raises(ValueError):
        PatternLibrary([])
