#!/usr/bin/env python3
# -*- coding: utf-8 -*-
r"""
sheet_synth.py

Synthesize a filled answer sheet directly on the canonical raster. This lets you
invent a student's sheet and check that the recognizer reads back what was drawn,
without printing or photographing anything.

Geometry comes from GeometryTemplate, so the marks land exactly where the decoder
samples:
  - empty ring bubbles for every ID / answer position
  - a filled disc for the chosen type prefix, each ID digit and each non-zero answer
  - a QR code with {"id": <identifier>} at margin + 8 mm, 22 mm wide
  - the four corner fiducial squares

Usage (via the CLI):
  academy-omr synth --out sheet.png --identifier 0b6f7d1e --student-id h12345 \
      --answers "1,2,3,4,5,1,2,3,4,5, ..."
"""

from __future__ import annotations
from typing import Optional, Sequence

import numpy as np
import cv2
from PIL import Image, ImageDraw

from ..geometry import (
    GeometryTemplate, mm_to_px,
    CHOICES, DIGIT_POSITIONS, DIGITS, TOTAL_QUESTIONS,
)
from .qr_tools import encode_identifier_payload

INK = 0
PAPER = 255
RING_WIDTH = 2


def _disc(draw: ImageDraw.ImageDraw, cx: int, cy: int, r: int, filled: bool) -> None:
    box = [cx - r, cy - r, cx + r, cy + r]
    if filled:
        draw.ellipse(box, fill=INK, outline=INK)
    else:
        draw.ellipse(box, outline=INK, width=RING_WIDTH)


def render_qr(payload: str, size: int) -> np.ndarray:
    """QR code image (white background) scaled by an integer factor to fit `size`."""
    qr = cv2.QRCodeEncoder.create().encode(payload)
    if qr is None or qr.size == 0:
        raise ValueError(f"could not encode QR payload: {payload!r}")
    qr = np.where(qr > 127, PAPER, INK).astype(np.uint8)
    scale = max(1, size // qr.shape[0])
    qr = cv2.resize(qr, (qr.shape[1] * scale, qr.shape[0] * scale), interpolation=cv2.INTER_NEAREST)
    out = np.full((size, size), PAPER, dtype=np.uint8)
    h, w = min(size, qr.shape[0]), min(size, qr.shape[1])
    y0, x0 = (size - h) // 2, (size - w) // 2
    out[y0:y0 + h, x0:x0 + w] = qr[:h, :w]
    return out


def synthesize_sheet(
    template: GeometryTemplate,
    identifier: Optional[str] = None,
    structured_id: Optional[str] = None,
    answers: Optional[Sequence[int]] = None,
    draw_rings: bool = True,
) -> np.ndarray:
    """
    Return a grayscale canonical-size sheet (uint8, H x W) with the given marks.

    structured_id: prefix letter + 5 digits (e.g. "h12345"); None leaves the ID blank.
    answers: 30 ints in 0..5; 0 leaves that question blank.
    """
    W, H = template.page_width, template.page_height
    img = Image.new("L", (W, H), color=PAPER)
    draw = ImageDraw.Draw(img)
    r = template.bubble_radius

    for (x, y, w, h) in template.fiducial_boxes():
        draw.rectangle([x, y, x + w - 1, y + h - 1], fill=INK)

    # Student ID
    prefix, digits = None, None
    if structured_id is not None:
        if len(structured_id) != 1 + DIGIT_POSITIONS or not structured_id[1:].isdigit():
            raise ValueError(f"student ID must be a letter plus {DIGIT_POSITIONS} digits, got {structured_id!r}")
        prefix, digits = structured_id[0], structured_id[1:]
        if prefix not in template.prefixes:
            raise ValueError(f"prefix {prefix!r} not one of {template.prefixes}")

    for p, (cx, cy) in template.type_bubble_centers():
        if draw_rings or p == prefix:
            _disc(draw, cx, cy, r, filled=(p == prefix))
    for pos in range(DIGIT_POSITIONS):
        for d in range(DIGITS):
            chosen = digits is not None and int(digits[pos]) == d
            if draw_rings or chosen:
                cx, cy = template.digit_bubble_center(pos, d)
                _disc(draw, cx, cy, r, filled=chosen)

    # Answers
    if answers is not None and len(answers) != TOTAL_QUESTIONS:
        raise ValueError(f"answers must have {TOTAL_QUESTIONS} entries, got {len(answers)}")
    for q, (section, question) in enumerate(template.question_slots()):
        marked = answers[q] if answers is not None else 0
        if not 0 <= marked <= CHOICES:
            raise ValueError(f"Q{q + 1}: answer {marked} outside 0..{CHOICES}")
        for choice in range(1, CHOICES + 1):
            chosen = marked == choice
            if draw_rings or chosen:
                cx, cy = template.answer_bubble_center(section, question, choice)
                _disc(draw, cx, cy, r, filled=chosen)

    sheet = np.array(img, dtype=np.uint8)

    if identifier is not None:
        x0 = y0 = template.margin + mm_to_px(8)
        size = mm_to_px(22)
        sheet[y0:y0 + size, x0:x0 + size] = render_qr(encode_identifier_payload(identifier), size)

    return sheet


def encode_png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    if not ok:
        raise IOError("PNG encoding failed")
    return buf.tobytes()
