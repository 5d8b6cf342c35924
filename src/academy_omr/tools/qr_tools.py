#!/usr/bin/env python3
"""
AcademyOMR
qr_tools.py
-----------
Read the test identifier from the QR code printed in the top-left corner.

The printed payload is a small JSON object, e.g. {"id": "0b6f..."}. Confidence is
binary: either the QR error correction succeeds and the payload carries an id, or
the identifier is missing. No retries, no alternative orientations.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Optional

import cv2

from ..defaults import SCAN_DEFAULTS
from ..geometry import GeometryTemplate
from .raster_tools import CanonicalRaster

logger = logging.getLogger(__name__)

ID_FIELD = "id"


@dataclass(frozen=True)
class IdentifierRead:
    identifier: Optional[str]
    confidence: float


_MISS = IdentifierRead(identifier=None, confidence=0.0)


def encode_identifier_payload(identifier: str) -> str:
    """Payload the sheet generator encodes into the QR code."""
    return json.dumps({ID_FIELD: identifier})


def parse_identifier_payload(text: str) -> Optional[str]:
    """Return the id from a decoded QR payload, or None if it is not a JSON object with an id."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get(ID_FIELD)
    if not value:
        return None
    return str(value)


def read_identifier(
    raster: CanonicalRaster,
    template: GeometryTemplate,
    size: int = SCAN_DEFAULTS.identifier_size,
) -> IdentifierRead:
    x, y, w, h = template.identifier_region()
    roi = raster.pixels[y:y + h, x:x + w].copy()
    if roi.size == 0:
        return _MISS
    roi = cv2.resize(roi, (size, size), interpolation=cv2.INTER_AREA)

    try:
        text, points, _ = cv2.QRCodeDetector().detectAndDecode(roi)
    except cv2.error as e:
        logger.warning("QR decode error: %s", e)
        return _MISS

    if points is None or not text:
        logger.debug("no QR code found in identifier region")
        return _MISS

    identifier = parse_identifier_payload(text)
    if identifier is None:
        logger.info("QR payload has no %r field: %r", ID_FIELD, text[:80])
        return _MISS
    return IdentifierRead(identifier=identifier, confidence=1.0)
