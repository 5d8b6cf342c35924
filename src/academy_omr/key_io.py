"""
AcademyOMR
key_io.py
---------
Answer-key documents (YAML or JSON) for the grading engine.

A key mirrors the test definition kept by the records service:

test_id: "0b6f7d1e-..."        # same value the sheet's QR payload carries
name: "Midterm A"
subject: "English"
sections:
  - section_number: 1
    name: "Grammar"
    core_content: "present perfect"
    answers: [1, 2, 3, 4, 5, 1, 2, 3, 4, 5]
    assignments:
      light: "Review the summary sheet"
      medium: "Workbook p.12-15"
      heavy: "Retake unit 3 with a tutor"
  - section_number: 2
    ...

Keys are read-only to the grader; validation of the answers themselves happens in
grade_core when grading.
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .grade_core import AnswerKeySection, RemediationTasks


@dataclass(frozen=True)
class AnswerKey:
    test_id: str
    name: str
    subject: str
    sections: Tuple[AnswerKeySection, ...]

    @property
    def total_questions(self) -> int:
        return sum(len(s.answers) for s in self.sections)


# ---------------------------------------------------------------------------

def _is_whole(value: Any) -> bool:
    # 2.0 is a choice, 1.9 and true are not
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, int)


def _parse_section(i: int, block: Dict[str, Any]) -> AnswerKeySection:
    where = f"sections[{i}]"
    if not isinstance(block, dict):
        raise ValueError(f"{where} must be a mapping")
    missing = [k for k in ("section_number", "answers", "assignments") if k not in block]
    if missing:
        raise ValueError(f"{where} missing required fields: {missing}")

    assignments = block["assignments"]
    if not isinstance(assignments, dict):
        raise ValueError(f"{where}.assignments must be a mapping with light/medium/heavy")
    missing_tiers = [t for t in ("light", "medium", "heavy") if t not in assignments]
    if missing_tiers:
        raise ValueError(f"{where}.assignments missing tiers: {missing_tiers}")

    answers = block["answers"]
    if not isinstance(answers, (list, tuple)):
        raise ValueError(f"{where}.answers must be a list of choices")
    bad = [a for a in answers if not _is_whole(a)]
    if bad:
        raise ValueError(f"{where}.answers must be whole-number choices, got {bad}")
    answers_t = tuple(int(a) for a in answers)
    if not _is_whole(block["section_number"]):
        raise ValueError(f"{where}.section_number must be a whole number, got {block['section_number']!r}")

    return AnswerKeySection(
        section_number=int(block["section_number"]),
        answers=answers_t,
        tasks=RemediationTasks(
            light=str(assignments["light"]),
            medium=str(assignments["medium"]),
            heavy=str(assignments["heavy"]),
        ),
        name=str(block.get("name", "")),
        core_content=str(block.get("core_content", "")),
    )


def answer_key_from_dict(data: Dict[str, Any]) -> AnswerKey:
    if not isinstance(data, dict):
        raise ValueError("Answer key root must be a mapping/object.")
    sections_data = data.get("sections")
    if not isinstance(sections_data, list) or not sections_data:
        raise ValueError("Answer key needs a non-empty 'sections' list.")
    sections = tuple(_parse_section(i, block) for i, block in enumerate(sections_data))
    return AnswerKey(
        test_id=str(data.get("test_id", "")),
        name=str(data.get("name", "")),
        subject=str(data.get("subject", "")),
        sections=sections,
    )


def load_answer_key(path: str | Path) -> AnswerKey:
    """
    Load an answer key. .yml/.yaml -> YAML, .json -> JSON, anything else: YAML
    (which also accepts JSON documents).
    """
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    return answer_key_from_dict(data)


def answer_key_to_dict(key: AnswerKey) -> Dict[str, Any]:
    return {
        "test_id": key.test_id,
        "name": key.name,
        "subject": key.subject,
        "sections": [
            {
                "section_number": s.section_number,
                "name": s.name,
                "core_content": s.core_content,
                "answers": list(s.answers),
                "assignments": {"light": s.tasks.light, "medium": s.tasks.medium, "heavy": s.tasks.heavy},
            }
            for s in key.sections
        ],
    }


def dump_answer_key(key: AnswerKey, path: str | Path) -> None:
    """Write a key back to YAML (useful for fixtures and debugging)."""
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(answer_key_to_dict(key), f, sort_keys=False, allow_unicode=True)


# ---------------------------------------------------------------------------

def parse_answer_vector(text: str) -> List[int]:
    """
    Parse an operator-entered answer vector: "1,2,0,5 ..." (commas and/or whitespace).
    Blank entries are not allowed; use 0 for unanswered.
    """
    tokens = [t for t in re.split(r"[,\s]+", text.strip()) if t]
    try:
        return [int(t) for t in tokens]
    except ValueError as e:
        raise ValueError(f"answer vector must be integers separated by commas or spaces: {e}") from e
