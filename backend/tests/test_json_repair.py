import pytest

from app.core.exceptions import LLMResponseParseError
from app.services.json_repair import (
    find_balanced_block,
    parse_llm_json,
    parse_llm_json_array,
    remove_trailing_commas,
    strip_code_fences,
)


def test_fenced_object_with_trailing_comma():
    assert parse_llm_json('```json\n{"a":1,}\n```') == {"a": 1}


def test_plain_json():
    assert parse_llm_json('{"executiveSummary": {"creditGrade": "B"}}') == {
        "executiveSummary": {"creditGrade": "B"}
    }


def test_object_surrounded_by_prose():
    text = 'Here is the analysis:\n{"grade": "A", "notes": ["ok",]}\nLet me know if you need more.'
    assert parse_llm_json(text) == {"grade": "A", "notes": ["ok"]}


def test_braces_inside_strings_are_ignored():
    text = 'Result: {"note": "use } and { carefully", "escaped": "a \\" quote"} done'
    assert parse_llm_json(text) == {"note": "use } and { carefully", "escaped": 'a " quote'}


def test_unclosed_fence():
    assert parse_llm_json('```json\n{"a": [1, 2]}') == {"a": [1, 2]}


@pytest.mark.parametrize("text", ["", "   ", "no json here", '{"a": ', "[1, 2]"])
def test_unparseable_object_raises(text):
    with pytest.raises(LLMResponseParseError):
        parse_llm_json(text)


def test_parse_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_llm_json("nothing")


def test_array_reply():
    text = 'Questions:\n["What drives the current ratio?", "How has equity changed?",]'
    assert parse_llm_json_array(text) == ["What drives the current ratio?", "How has equity changed?"]


def test_array_rejects_object():
    with pytest.raises(LLMResponseParseError):
        parse_llm_json_array('{"a": 1}')


def test_find_balanced_block_unbalanced_uses_last_close():
    assert find_balanced_block('x {"a": {"b": 1} tail', "{", "}") == '{"a": {"b": 1}'
    assert find_balanced_block("no braces", "{", "}") is None


def test_helpers():
    assert remove_trailing_commas('{"a": [1, 2, ], }') == '{"a": [1, 2]}'
    assert strip_code_fences("```\n[1]\n```") == "[1]"
