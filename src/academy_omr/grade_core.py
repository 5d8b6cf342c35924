#!/usr/bin/env python3
"""
AcademyOMR
grade_core.py - section grading and remediation tiers

Pure function of (answer vector, answer key):
 - the 30-answer vector is positional: section N owns questions (N-1)*10+1 .. N*10
 - each section records correct / total and the global numbers of wrong questions
 - the remediation tier depends only on the section's wrong count:
     0-2 wrong -> light, 3-4 -> medium, 5+ -> heavy
 - overall score = round_half_up(100 * correct / total) over all key sections

A malformed key or a wrong-length vector is the caller's bug and raises
GradingInputError instead of being padded or truncated.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from typing import Any, Dict, List, Sequence, Tuple

from .geometry import CHOICES, QUESTIONS_PER_SECTION, SECTIONS, TOTAL_QUESTIONS, round_half_up


class GradingInputError(ValueError):
    """Answer vector or answer key violates the grading contract."""


class Tier(str, Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


@dataclass(frozen=True)
class RemediationTasks:
    light: str
    medium: str
    heavy: str

    def for_tier(self, tier: Tier) -> str:
        return getattr(self, tier.value)


@dataclass(frozen=True)
class AnswerKeySection:
    section_number: int          # 1-based
    answers: Tuple[int, ...]     # correct choices, 1..5
    tasks: RemediationTasks
    name: str = ""
    core_content: str = ""


@dataclass(frozen=True)
class SectionScore:
    section_number: int
    correct: int
    total: int
    wrong_questions: Tuple[int, ...]  # global 1-based question numbers


@dataclass(frozen=True)
class AssignedTask:
    section_number: int
    tier: Tier
    task: str


@dataclass(frozen=True)
class GradedResult:
    section_scores: Tuple[SectionScore, ...]
    assigned_tasks: Tuple[AssignedTask, ...]
    overall_score: int

    @property
    def total_correct(self) -> int:
        return sum(s.correct for s in self.section_scores)

    @property
    def total_questions(self) -> int:
        return sum(s.total for s in self.section_scores)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.overall_score,
            "section_scores": [
                {
                    "section_number": s.section_number,
                    "correct": s.correct,
                    "total": s.total,
                    "wrong_answers": list(s.wrong_questions),
                }
                for s in self.section_scores
            ],
            "assigned_tasks": [
                {"section_number": t.section_number, "task_type": t.tier.value, "task": t.task}
                for t in self.assigned_tasks
            ],
        }


def tier_for_wrong_count(wrong: int) -> Tier:
    # cut points assume 10-question sections
    if wrong < 0:
        raise GradingInputError(f"wrong count cannot be negative: {wrong}")
    if wrong <= 2:
        return Tier.LIGHT
    if wrong <= 4:
        return Tier.MEDIUM
    return Tier.HEAVY


def _is_choice_int(value: Any) -> bool:
    # numpy integers count, booleans do not
    return isinstance(value, Integral) and not isinstance(value, bool)


def _validate(answers: Sequence[int], sections: Sequence[AnswerKeySection]) -> None:
    if len(answers) != TOTAL_QUESTIONS:
        raise GradingInputError(f"answer vector must have {TOTAL_QUESTIONS} entries, got {len(answers)}")
    for i, a in enumerate(answers, start=1):
        if not _is_choice_int(a) or not 0 <= a <= CHOICES:
            raise GradingInputError(f"Q{i}: answer {a!r} is not an integer in 0..{CHOICES}")

    if not sections:
        raise GradingInputError("answer key has no sections")
    seen = set()
    for sec in sections:
        n = sec.section_number
        if not 1 <= n <= SECTIONS:
            raise GradingInputError(f"section number {n} outside 1..{SECTIONS}")
        if n in seen:
            raise GradingInputError(f"section {n} appears more than once in the key")
        seen.add(n)
        if not sec.answers:
            raise GradingInputError(f"section {n} has no answers")
        if len(sec.answers) > QUESTIONS_PER_SECTION:
            raise GradingInputError(
                f"section {n} has {len(sec.answers)} answers; at most {QUESTIONS_PER_SECTION} fit a section"
            )
        bad = [k for k in sec.answers if not _is_choice_int(k) or not 1 <= k <= CHOICES]
        if bad:
            raise GradingInputError(f"section {n}: key values must be 1..{CHOICES}, got {bad}")


def grade_answers(answers: Sequence[int], sections: Sequence[AnswerKeySection]) -> GradedResult:
    """Grade a 30-answer vector (decoded or operator-corrected) against the key sections."""
    _validate(answers, sections)
    answers = [int(a) for a in answers]

    total_score = 0
    total_questions = 0
    section_scores: List[SectionScore] = []
    assigned: List[AssignedTask] = []

    for sec in sections:
        offset = (sec.section_number - 1) * QUESTIONS_PER_SECTION
        window = answers[offset:offset + QUESTIONS_PER_SECTION]

        correct = 0
        wrong: List[int] = []
        for i, expected in enumerate(sec.answers):
            total_questions += 1
            if window[i] == expected:
                correct += 1
                total_score += 1
            else:
                wrong.append(offset + i + 1)

        total = len(sec.answers)
        tier = tier_for_wrong_count(total - correct)
        section_scores.append(SectionScore(
            section_number=sec.section_number,
            correct=correct,
            total=total,
            wrong_questions=tuple(wrong),
        ))
        assigned.append(AssignedTask(section_number=sec.section_number, tier=tier, task=sec.tasks.for_tier(tier)))

    overall = round_half_up((total_score / total_questions) * 100)
    return GradedResult(
        section_scores=tuple(section_scores),
        assigned_tasks=tuple(assigned),
        overall_score=overall,
    )
