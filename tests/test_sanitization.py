from __future__ import annotations

import allure
import pytest

from resume_forge.ai.sanitization import parse_json_object, strip_code_fences
from resume_forge.errors import StructuringFailure

pytestmark = [
    allure.epic("AI Invoker"),
    allure.feature("Response Sanitization"),
]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ("```markdown\n# Dear team\n```", "# Dear team"),
        ("```\nplain\n```", "plain"),
        ("  no fences here  ", "no fences here"),
    ],
)
def test_strip_code_fences(text: str, expected: str) -> None:
    assert strip_code_fences(text) == expected


def test_inner_fences_are_kept() -> None:
    text = "Intro\n```python\nprint(1)\n```\nOutro"

    assert strip_code_fences(text) == text


def test_parse_json_object_from_fenced_block_with_prose() -> None:
    text = 'Here is the result:\n```json\n{"sections": ["a"]}\n```\nHope this helps.'

    assert parse_json_object(text) == {"sections": ["a"]}


def test_parse_json_object_from_brace_span() -> None:
    text = 'Result -> {"score": 72, "notes": {"x": 1}} <- end'

    assert parse_json_object(text) == {"score": 72, "notes": {"x": 1}}


@pytest.mark.parametrize("text", ["", "   ", "[1, 2, 3]", "no json at all"])
def test_parse_json_object_rejects_non_objects(text: str) -> None:
    with pytest.raises(StructuringFailure):
        parse_json_object(text)
