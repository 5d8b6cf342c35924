#!/usr/bin/env python3
"""
AcademyOMR
score_tools.py
--------------
Bubble scoring primitives shared by every bubble reader:

- measure_fill_ratio: fraction of dark pixels in a circular neighbourhood
- select_max_fill:    maximum-fill selection with a threshold gate, returning
                      Accepted(index, fill) or Rejected(best_fill)
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence, Tuple, Union

import numpy as np

from ..defaults import SCAN_DEFAULTS

# ------------------------------------------------------------------------------
# Fill ratio
# ------------------------------------------------------------------------------

@lru_cache(maxsize=32)
def _disc_offsets(r: int) -> Tuple[np.ndarray, np.ndarray]:
    """(dx, dy) offsets with dx^2 + dy^2 <= r^2, inclusive boundary."""
    span = np.arange(-r, r + 1)
    dy, dx = np.meshgrid(span, span, indexing="ij")
    inside = dx * dx + dy * dy <= r * r
    dx, dy = dx[inside], dy[inside]
    dx.setflags(write=False)
    dy.setflags(write=False)
    return dx, dy


def measure_fill_ratio(
    pixels: np.ndarray,
    center_x: float,
    center_y: float,
    radius: float,
    dark_cutoff: int = SCAN_DEFAULTS.dark_cutoff,
) -> float:
    """
    Fraction of pixels within `radius` of the center whose value is below `dark_cutoff`.

    Pixels that fall outside the raster are left out of both counts; when nothing is
    in bounds the ratio is 0.0.
    """
    r = int(math.floor(radius))
    if r < 0:
        return 0.0
    H, W = pixels.shape[:2]
    dx, dy = _disc_offsets(r)
    xs = np.floor(center_x + dx).astype(np.int64)
    ys = np.floor(center_y + dy).astype(np.int64)
    valid = (xs >= 0) & (xs < W) & (ys >= 0) & (ys < H)
    total = int(np.count_nonzero(valid))
    if total == 0:
        return 0.0
    dark = int(np.count_nonzero(pixels[ys[valid], xs[valid]] < dark_cutoff))
    return dark / total


# ------------------------------------------------------------------------------
# Selection
# ------------------------------------------------------------------------------

@dataclass(frozen=True)
class Accepted:
    index: int
    fill: float


@dataclass(frozen=True)
class Rejected:
    best_fill: float


Selection = Union[Accepted, Rejected]


def select_max_fill(
    fills: Sequence[float],
    threshold: float = SCAN_DEFAULTS.fill_threshold,
    reject_ties: bool = True,
) -> Selection:
    """
    Pick the candidate with the highest fill.

    The winner is accepted only if its fill is strictly above `threshold`. With
    `reject_ties` an exact tie at the top means no winner; otherwise the earliest
    candidate with the top fill wins.
    """
    if len(fills) == 0:
        return Rejected(best_fill=0.0)
    arr = np.asarray(fills, dtype=float)
    best_idx = int(np.argmax(arr))  # first occurrence of the maximum
    top = float(arr[best_idx])
    if reject_ties and int(np.count_nonzero(arr == top)) > 1:
        return Rejected(best_fill=top)
    if top > threshold:
        return Accepted(index=best_idx, fill=top)
    return Rejected(best_fill=top)
