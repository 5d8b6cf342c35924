"""
Review routing for recognized sheets.

The recognizer only reports confidence and errors; whether a scan is accepted
automatically or sent to an operator is decided here, by the caller.
"""

from __future__ import annotations
from typing import List, Optional

from .defaults import REVIEW_DEFAULTS
from .key_io import AnswerKey
from .scan_core import RecognitionResult


def needs_review(result: RecognitionResult, min_confidence: float = REVIEW_DEFAULTS.min_confidence) -> bool:
    return bool(result.errors) or result.confidence < min_confidence


def identifier_matches_key(result: RecognitionResult, key: AnswerKey) -> Optional[bool]:
    """None when either side has no identifier to compare."""
    if result.identifier is None or not key.test_id:
        return None
    return result.identifier == key.test_id


def review_reasons(
    result: RecognitionResult,
    key: Optional[AnswerKey] = None,
    min_confidence: float = REVIEW_DEFAULTS.min_confidence,
) -> List[str]:
    reasons = list(result.errors)
    if result.confidence < min_confidence:
        reasons.append(f"confidence {result.confidence:.2f} below {min_confidence:.2f}")
    if key is not None and identifier_matches_key(result, key) is False:
        reasons.append(f"identifier {result.identifier} does not match key {key.test_id}")
    return reasons
