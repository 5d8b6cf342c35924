# src/academy_omr/visualize_core.py
#!/usr/bin/env python3
"""
AcademyOMR
visualize_core.py
Draw the fixed sheet geometry over a normalized scan for operator QA.

Exports:
  - render_overlay(raster, template, result=None) -> BGR ndarray
  - overlay_recognition(raster, out_image, template, result=None) -> str
  - overlay_image_file(input_path, out_image, template) -> str

Sampled bubbles are drawn grey, bubbles the recognizer accepted are drawn green. The
corner fiducials are outlined too: they are never used for alignment, so a fiducial
that sits off its printed box shows how far the photo has drifted.
"""

from __future__ import annotations
from typing import Optional, Tuple

import cv2
import numpy as np

from .defaults import RENDER_DEFAULTS, SCAN_DEFAULTS
from .geometry import DEFAULT_TEMPLATE, GeometryTemplate, CHOICES, DIGIT_POSITIONS, DIGITS
from .scan_core import RecognitionResult
from .tools.raster_tools import CanonicalRaster, load_image_bytes, normalize_image_bytes


def _circle(img: np.ndarray, center: Tuple[int, int], r: int, color, thickness: int) -> None:
    cv2.circle(img, center, r, color, thickness, lineType=cv2.LINE_AA)


def render_overlay(
    raster: CanonicalRaster,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    result: Optional[RecognitionResult] = None,
) -> np.ndarray:
    """Return a new BGR image with geometry drawn on top of the raster."""
    rd = RENDER_DEFAULTS
    out = cv2.cvtColor(raster.pixels.copy(), cv2.COLOR_GRAY2BGR)
    r = template.bubble_radius

    x, y, w, h = template.identifier_region()
    cv2.rectangle(out, (x, y), (x + w, y + h), rd.color_identifier, rd.thickness)
    for (fx, fy, fw, fh) in template.fiducial_boxes():
        cv2.rectangle(out, (fx, fy), (fx + fw, fy + fh), rd.color_fiducial, rd.thickness)

    sid = result.structured_id if result is not None else None
    for prefix, center in template.type_bubble_centers():
        hit = sid is not None and sid[0] == prefix
        _circle(out, center, r, rd.color_accepted if hit else rd.color_bubble, rd.thickness)
    for pos in range(DIGIT_POSITIONS):
        for d in range(DIGITS):
            # a '0' may be a placeholder for an unreadable digit; it is still drawn as read
            hit = sid is not None and sid[1 + pos] == str(d)
            _circle(out, template.digit_bubble_center(pos, d), r,
                    rd.color_accepted if hit else rd.color_bubble, rd.thickness)

    for q, (section, question) in enumerate(template.question_slots()):
        marked = result.answers[q] if result is not None else 0
        for choice in range(1, CHOICES + 1):
            color = rd.color_accepted if marked == choice else rd.color_bubble
            _circle(out, template.answer_bubble_center(section, question, choice), r, color, rd.thickness)

    return out


def overlay_recognition(
    raster: CanonicalRaster,
    out_image: str,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    result: Optional[RecognitionResult] = None,
) -> str:
    """Write the overlay to out_image (png/jpg). Returns the path written."""
    img = render_overlay(raster, template, result)
    if not cv2.imwrite(out_image, img):
        raise IOError(f"Failed to write {out_image}")
    return out_image


def overlay_image_file(
    input_path: str,
    out_image: str,
    template: GeometryTemplate = DEFAULT_TEMPLATE,
    max_bytes: int = SCAN_DEFAULTS.max_image_bytes,
) -> str:
    """Normalize a photo and draw the bare geometry on it, to check placement."""
    raster = normalize_image_bytes(load_image_bytes(input_path, max_bytes), template)
    return overlay_recognition(raster, out_image, template)
