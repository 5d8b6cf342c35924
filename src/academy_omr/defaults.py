# src/academy_omr/defaults.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ScanDefaults:
    # Single source of truth for recognition thresholds
    fill_threshold: float = 0.30            # a bubble counts as marked only above this fill ratio
    dark_cutoff: int = 128                  # grayscale values below this are ink
    max_image_bytes: int = 10 * 1024 * 1024 # upload bound used by the calling service
    identifier_size: int = 300              # QR crop is resampled to this square before decoding


@dataclass(frozen=True)
class ReviewDefaults:
    min_confidence: float = 0.80            # below this a scan goes to an operator


@dataclass(frozen=True)
class RenderDefaults:
    # BGR colours for QA overlays
    color_accepted: Tuple[int, int, int] = (0, 200, 0)
    color_bubble: Tuple[int, int, int] = (160, 160, 160)
    color_identifier: Tuple[int, int, int] = (255, 0, 0)
    color_fiducial: Tuple[int, int, int] = (0, 140, 255)
    thickness: int = 2


SCAN_DEFAULTS = ScanDefaults()
REVIEW_DEFAULTS = ReviewDefaults()
RENDER_DEFAULTS = RenderDefaults()


def apply_scan_overrides(
    max_image_bytes: int | None = None,
    identifier_size: int | None = None,
) -> ScanDefaults:
    # produce an overridden immutable config without mutating SCAN_DEFAULTS;
    # fill_threshold and dark_cutoff are shared by every bubble reader and are not overridable
    return ScanDefaults(
        fill_threshold=SCAN_DEFAULTS.fill_threshold,
        dark_cutoff=SCAN_DEFAULTS.dark_cutoff,
        max_image_bytes=SCAN_DEFAULTS.max_image_bytes if max_image_bytes is None else int(max_image_bytes),
        identifier_size=SCAN_DEFAULTS.identifier_size if identifier_size is None else int(identifier_size),
    )


def apply_review_overrides(min_confidence: float | None = None) -> ReviewDefaults:
    if min_confidence is None:
        return REVIEW_DEFAULTS
    if not 0.0 <= min_confidence <= 1.0:
        raise ValueError(f"min_confidence must be within 0..1, got {min_confidence}")
    return ReviewDefaults(min_confidence=float(min_confidence))
