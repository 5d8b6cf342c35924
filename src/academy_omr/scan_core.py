#!/usr/bin/env python3
"""
AcademyOMR
scan_core.py - answer-sheet recognition pipeline

    image bytes -> canonical raster -> { identifier QR, structured student ID, 30 answers }
                -> RecognitionResult

Every stage runs even if an earlier one failed; soft failures are reported in
`errors` and lower `confidence`. Only the normalizer raises (SheetImageError),
before any result exists.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .defaults import SCAN_DEFAULTS, ScanDefaults
from .geometry import (
    DEFAULT_TEMPLATE, GeometryTemplate,
    DIGIT_POSITIONS, DIGITS, CHOICES, TOTAL_QUESTIONS,
)
from .tools.raster_tools import (
    CanonicalRaster, SheetImageError,
    load_image_bytes, normalize_image_bytes,
)
from .tools.qr_tools import IdentifierRead, read_identifier
from .tools.score_tools import Accepted, Rejected, Selection, measure_fill_ratio, select_max_fill

logger = logging.getLogger(__name__)

STRUCTURED_ID_LENGTH = 1 + DIGIT_POSITIONS


# ----------------------------
# Stage results
# ----------------------------

@dataclass(frozen=True)
class StructuredIdRead:
    structured_id: Optional[str]
    confidence: float
    prefix: Optional[Selection] = None
    digits: Tuple[Selection, ...] = ()


@dataclass(frozen=True)
class AnswerRead:
    answers: Tuple[int, ...]
    confidences: Tuple[float, ...]
    selections: Tuple[Selection, ...] = ()


@dataclass(frozen=True)
class FieldConfidences:
    identifier_confidence: float
    structured_id_confidence: float
    answer_confidences: Tuple[float, ...]


@dataclass(frozen=True)
class RecognitionResult:
    identifier: Optional[str]
    structured_id: Optional[str]
    answers: Tuple[int, ...]
    confidence: float
    errors: Tuple[str, ...]
    details: FieldConfidences

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def unanswered(self) -> int:
        return sum(1 for a in self.answers if a == 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "identifier": self.identifier,
            "structured_id": self.structured_id,
            "answers": list(self.answers),
            "confidence": self.confidence,
            "errors": list(self.errors),
            "details": {
                "identifier_confidence": self.details.identifier_confidence,
                "structured_id_confidence": self.details.structured_id_confidence,
                "answer_confidences": list(self.details.answer_confidences),
            },
        }


# ----------------------------
# Structured student ID
# ----------------------------

def read_structured_id(
    raster: CanonicalRaster,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    defaults: ScanDefaults = SCAN_DEFAULTS,
) -> StructuredIdRead:
    """
    Decode a one-letter prefix plus five digits, e.g. "h12345".

    An unreadable prefix rejects the whole ID. An unreadable digit becomes a '0'
    placeholder and adds nothing to the confidence sum.
    """
    px, r = raster.pixels, template.bubble_radius
    thr, cutoff = defaults.fill_threshold, defaults.dark_cutoff

    type_bubbles = template.type_bubble_centers()
    type_fills = [measure_fill_ratio(px, cx, cy, r, cutoff) for _, (cx, cy) in type_bubbles]
    prefix_sel = select_max_fill(type_fills, thr, reject_ties=True)
    if isinstance(prefix_sel, Rejected):
        logger.debug("structured ID type rejected: fills=%s", type_fills)
        return StructuredIdRead(structured_id=None, confidence=0.0, prefix=prefix_sel)

    prefix = type_bubbles[prefix_sel.index][0]
    total_confidence = prefix_sel.fill
    chars: List[str] = [prefix]
    digit_sels: List[Selection] = []

    for pos in range(DIGIT_POSITIONS):
        fills = []
        for d in range(DIGITS):
            cx, cy = template.digit_bubble_center(pos, d)
            fills.append(measure_fill_ratio(px, cx, cy, r, cutoff))
        sel = select_max_fill(fills, thr, reject_ties=True)
        digit_sels.append(sel)
        if isinstance(sel, Accepted):
            chars.append(str(sel.index))
            total_confidence += sel.fill
        else:
            chars.append("0")

    structured_id = "".join(chars)
    if len(structured_id) != STRUCTURED_ID_LENGTH:
        structured_id = None
    return StructuredIdRead(
        structured_id=structured_id,
        confidence=total_confidence / STRUCTURED_ID_LENGTH,
        prefix=prefix_sel,
        digits=tuple(digit_sels),
    )


# ----------------------------
# Answers
# ----------------------------

def read_answers(
    raster: CanonicalRaster,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    defaults: ScanDefaults = SCAN_DEFAULTS,
) -> AnswerRead:
    """Always 30 answers (1..5, or 0 when unmarked/unclear) with matching confidences."""
    px, r = raster.pixels, template.bubble_radius
    thr, cutoff = defaults.fill_threshold, defaults.dark_cutoff

    answers: List[int] = []
    confidences: List[float] = []
    selections: List[Selection] = []
    for section, question in template.question_slots():
        fills = []
        for choice in range(1, CHOICES + 1):
            cx, cy = template.answer_bubble_center(section, question, choice)
            fills.append(measure_fill_ratio(px, cx, cy, r, cutoff))
        sel = select_max_fill(fills, thr, reject_ties=False)
        selections.append(sel)
        if isinstance(sel, Accepted):
            answers.append(sel.index + 1)
            confidences.append(sel.fill)
        else:
            answers.append(0)
            confidences.append(0.0)

    return AnswerRead(answers=tuple(answers), confidences=tuple(confidences), selections=tuple(selections))


# ----------------------------
# Aggregation
# ----------------------------

def aggregate(
    identifier_read: IdentifierRead,
    structured_id_read: StructuredIdRead,
    answer_read: AnswerRead,
) -> RecognitionResult:
    errors: List[str] = []
    if identifier_read.identifier is None:
        errors.append("identifier not recognized")
    if structured_id_read.structured_id is None:
        errors.append("structured ID not recognized")
    unanswered = sum(1 for a in answer_read.answers if a == 0)
    if unanswered > 0:
        errors.append(f"{unanswered} questions not marked")

    avg_answer_conf = sum(answer_read.confidences) / TOTAL_QUESTIONS
    overall = (identifier_read.confidence + structured_id_read.confidence + avg_answer_conf) / 3

    return RecognitionResult(
        identifier=identifier_read.identifier,
        structured_id=structured_id_read.structured_id,
        answers=tuple(answer_read.answers),
        confidence=overall,
        errors=tuple(errors),
        details=FieldConfidences(
            identifier_confidence=identifier_read.confidence,
            structured_id_confidence=structured_id_read.confidence,
            answer_confidences=tuple(answer_read.confidences),
        ),
    )


def recognize_raster(
    raster: CanonicalRaster,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    defaults: ScanDefaults = SCAN_DEFAULTS,
) -> RecognitionResult:
    identifier_read = read_identifier(raster, template, defaults.identifier_size)
    structured_id_read = read_structured_id(raster, template, defaults)
    answer_read = read_answers(raster, template, defaults)
    result = aggregate(identifier_read, structured_id_read, answer_read)
    logger.info(
        "recognized identifier=%s structured_id=%s confidence=%.3f errors=%s",
        result.identifier, result.structured_id, result.confidence, list(result.errors),
    )
    return result


def recognize_sheet(
    image_bytes: bytes,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    defaults: ScanDefaults = SCAN_DEFAULTS,
) -> RecognitionResult:
    """Full pipeline on raw image bytes. Raises SheetImageError for unreadable input."""
    raster = normalize_image_bytes(image_bytes, template)
    return recognize_raster(raster, template, defaults)


# ----------------------------
# Batch
# ----------------------------

@dataclass(frozen=True)
class ScanOutcome:
    path: str
    result: Optional[RecognitionResult] = None
    error: Optional[str] = None
    raster: Optional[CanonicalRaster] = field(default=None, repr=False, compare=False)


def _scan_one(path: str, template: GeometryTemplate, defaults: ScanDefaults, keep_raster: bool) -> ScanOutcome:
    try:
        data = load_image_bytes(path, defaults.max_image_bytes)
        raster = normalize_image_bytes(data, template)
    except (OSError, SheetImageError) as e:
        logger.error("%s: %s", path, e)
        return ScanOutcome(path=path, error=str(e))
    result = recognize_raster(raster, template, defaults)
    return ScanOutcome(path=path, result=result, raster=raster if keep_raster else None)


def recognize_many(
    paths: Sequence[str | Path],
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    defaults: ScanDefaults = SCAN_DEFAULTS,
    max_workers: int = 4,
    keep_raster: bool = False,
) -> List[ScanOutcome]:
    """
    Recognize many sheet images concurrently. Scans are independent; an unreadable
    file yields an outcome with `error` set and the batch carries on. Outcomes are
    returned in input order.
    """
    str_paths = [str(p) for p in paths]
    if max_workers <= 1 or len(str_paths) <= 1:
        return [_scan_one(p, template, defaults, keep_raster) for p in str_paths]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda p: _scan_one(p, template, defaults, keep_raster), str_paths))
