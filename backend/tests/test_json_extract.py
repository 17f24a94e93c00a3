import pytest

from therapy_api.services.json_extract import parse_model_json, Parsed, Failed


@pytest.mark.parametrize("text", [
    '{"a": 1}',
    '```json\n{"a": 1}\n```',
    '```\n{"a": 1}\n```',
    'Here you go:\n{"a": 1}\nHope that helps.',
])
def test_object_is_recovered(text):
    assert parse_model_json(text) == Parsed({"a": 1})


def test_array_in_prose_is_recovered():
    result = parse_model_json('Suggestions: [{"name": "walk"}] enjoy')
    assert result == Parsed([{"name": "walk"}])


@pytest.mark.parametrize("text", [None, "", "   ", 42])
def test_empty_or_non_string_fails(text):
    assert isinstance(parse_model_json(text), Failed)


def test_prose_without_json_fails():
    result = parse_model_json("I think the user is sad.")
    assert isinstance(result, Failed)
    assert "not valid JSON" in result.reason


def test_broken_json_fails():
    assert isinstance(parse_model_json('```json\n{"a": 1,\n```'), Failed)
