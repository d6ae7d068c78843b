import pytest

from utilities.model_json import extract_json, parse_model_json, strip_code_fences


def test_plain_json():
    assert extract_json('{"a": 1}') == {'a': 1}


def test_fenced_json():
    text = '```json\n{"correctness": 8, "feedback": "ok"}\n```'
    assert strip_code_fences(text) == '{"correctness": 8, "feedback": "ok"}'
    assert extract_json(text) == {'correctness': 8, 'feedback': 'ok'}
    assert strip_code_fences('no fence here ') == 'no fence here'


def test_json_inside_prose():
    text = 'Here is my evaluation: {"depth": 5, "nested": {"x": [1, 2]}} Hope this helps.'
    assert extract_json(text) == {'depth': 5, 'nested': {'x': [1, 2]}}


def test_unparseable_raises():
    with pytest.raises(ValueError):
        extract_json('no structure at all')
    with pytest.raises(ValueError):
        extract_json('{"unclosed": 1')
    with pytest.raises(ValueError):
        extract_json(None)


def test_parse_model_json_default_and_type():
    assert parse_model_json('garbage') is None
    assert parse_model_json('garbage', default={}) == {}
    # an array where an object is expected falls back to the default
    assert parse_model_json('[1, 2]', default={}) == {}
    assert parse_model_json('Sure! {"role": "QA"}') == {'role': 'QA'}
