#!/usr/bin/env python3
"""
AcademyOMR
raster_tools.py
---------------
Turn an arbitrary photo of an answer sheet into the canonical raster.

The photo is decoded, converted to single-channel grayscale and stretched to exactly
the template's page size. There is no cropping, no aspect-ratio preservation and no
rotation or perspective correction, so a skewed photo simply degrades bubble
alignment downstream.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import cv2

from ..defaults import SCAN_DEFAULTS
from ..geometry import GeometryTemplate

logger = logging.getLogger(__name__)


class SheetImageError(ValueError):
    """The input bytes cannot be turned into a canonical raster."""


@dataclass(frozen=True)
class CanonicalRaster:
    width: int
    height: int
    pixels: np.ndarray  # uint8, shape (height, width), read-only


def _freeze(gray: np.ndarray) -> np.ndarray:
    out = np.ascontiguousarray(gray, dtype=np.uint8)
    out.setflags(write=False)
    return out


def _to_8bit(gray: np.ndarray) -> np.ndarray:
    # scale by bit depth; stretching to min/max would move pixels across the dark cutoff
    if gray.dtype == np.uint8:
        return gray
    if gray.dtype == np.uint16:
        return (gray >> 8).astype(np.uint8)
    if np.issubdtype(gray.dtype, np.floating):
        # float images decode as 0.0 .. 1.0
        return (np.clip(gray, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
    raise SheetImageError(f"unsupported pixel depth {gray.dtype}")


def normalize_image(img: np.ndarray, template: GeometryTemplate) -> CanonicalRaster:
    """Grayscale + non-uniform resample of a decoded BGR/BGRA/gray array."""
    if img is None or img.size == 0:
        raise SheetImageError("empty image")

    if img.ndim == 2:
        gray = img
    elif img.ndim == 3 and img.shape[2] == 1:
        gray = img[:, :, 0]
    elif img.ndim == 3 and img.shape[2] == 3:
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    elif img.ndim == 3 and img.shape[2] == 4:
        gray = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    else:
        raise SheetImageError(f"unsupported image shape {img.shape}")

    gray = _to_8bit(gray)

    W, H = template.page_width, template.page_height
    h, w = gray.shape[:2]
    if (w, h) != (W, H):
        interp = cv2.INTER_AREA if (w > W and h > H) else cv2.INTER_LINEAR
        gray = cv2.resize(gray, (W, H), interpolation=interp)

    return CanonicalRaster(width=W, height=H, pixels=_freeze(gray))


def normalize_image_bytes(data: bytes, template: GeometryTemplate) -> CanonicalRaster:
    """Decode image bytes (PNG, JPEG, ...) into a CanonicalRaster or raise SheetImageError."""
    if not data:
        raise SheetImageError("no image data")
    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise SheetImageError(f"could not decode image: {e}") from e
    if img is None:
        raise SheetImageError("could not decode image: unsupported or corrupt data")
    logger.debug("decoded image %s -> canonical %dx%d", img.shape, template.page_width, template.page_height)
    return normalize_image(img, template)


def load_image_bytes(path: str | Path, max_bytes: int = SCAN_DEFAULTS.max_image_bytes) -> bytes:
    """Read an image file, enforcing the upload size bound."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Could not read image: {path}")
    size = p.stat().st_size
    if size > max_bytes:
        raise SheetImageError(f"{p.name} is {size} bytes; limit is {max_bytes}")
    return p.read_bytes()
