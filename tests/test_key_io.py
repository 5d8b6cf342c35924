import json

import pytest

from academy_omr.key_io import (
    answer_key_from_dict, answer_key_to_dict, dump_answer_key, load_answer_key, parse_answer_vector,
)

KEY_YAML = """\
test_id: test-0001
name: Midterm A
subject: English
sections:
  - section_number: 1
    name: Grammar
    answers: [1, 1, 1, 1, 1, 1, 1, 1, 1, 1]
    assignments: {light: a, medium: b, heavy: c}
  - section_number: 2
    answers: [2, 2, 2, 2, 2, 2, 2, 2, 2, 2]
    assignments: {light: d, medium: e, heavy: f}
"""


def test_load_yaml(tmp_path):
    p = tmp_path / "key.yaml"
    p.write_text(KEY_YAML, encoding="utf-8")
    key = load_answer_key(p)
    assert key.test_id == "test-0001"
    assert [s.section_number for s in key.sections] == [1, 2]
    assert key.sections[0].name == "Grammar"
    assert key.sections[1].tasks.heavy == "f"
    assert key.total_questions == 20


def test_roundtrip_yaml_and_json(tmp_path, answer_key):
    y = tmp_path / "key.yml"
    dump_answer_key(answer_key, y)
    assert load_answer_key(y) == answer_key

    j = tmp_path / "key.json"
    j.write_text(json.dumps(answer_key_to_dict(answer_key)), encoding="utf-8")
    assert load_answer_key(j) == answer_key


@pytest.mark.parametrize("data", [
    [],
    {"sections": []},
    {"sections": [{"section_number": 1, "answers": [1]}]},
    {"sections": [{"section_number": 1, "answers": [1], "assignments": {"light": "x"}}]},
    {"sections": [{"section_number": 1, "answers": ["x"], "assignments": {"light": "", "medium": "", "heavy": ""}}]},
])
def test_malformed_keys(data):
    with pytest.raises(ValueError):
        answer_key_from_dict(data)


@pytest.mark.parametrize("answers", [[1.9] * 10, [True] * 10, [1] * 9 + [2.5]])
def test_fractional_or_boolean_answers_rejected(answers):
    data = {"sections": [{"section_number": 1, "answers": answers,
                          "assignments": {"light": "a", "medium": "b", "heavy": "c"}}]}
    with pytest.raises(ValueError, match=r"sections\[0\]"):
        answer_key_from_dict(data)


def test_whole_float_answers_accepted():
    data = {"sections": [{"section_number": 2.0, "answers": [2.0] * 10,
                          "assignments": {"light": "a", "medium": "b", "heavy": "c"}}]}
    sec = answer_key_from_dict(data).sections[0]
    assert sec.section_number == 2
    assert sec.answers == (2,) * 10
    assert all(type(a) is int for a in sec.answers)


def test_fractional_section_number_rejected():
    data = {"sections": [{"section_number": 1.5, "answers": [1] * 10,
                          "assignments": {"light": "a", "medium": "b", "heavy": "c"}}]}
    with pytest.raises(ValueError, match="section_number"):
        answer_key_from_dict(data)


def test_parse_answer_vector():
    assert parse_answer_vector("1,2, 3 4\n5") == [1, 2, 3, 4, 5]
    assert parse_answer_vector(" ") == []
    with pytest.raises(ValueError):
        parse_answer_vector("1,a,3")
