#!/usr/bin/env python3
"""
AcademyOMR
geometry.py
-----------
Fixed answer-sheet geometry in canonical pixel units.

The printed sheet is A4 and every mark on it is placed in millimetres. The decoder
works on a 300 dpi canonical raster, so each measurement is converted once with

    mm_to_px(mm) = round_half_up(mm * 300 / 25.4)

and the resulting integers must agree bit for bit with the sheet generator.

Layout (all offsets from the top-left page corner):

  identifier QR region   square at (margin, margin), side 30 mm
  student ID type row    y = margin + 48 mm, bubbles "h" at margin + 23 mm, "m" at margin + 37 mm
  student ID digits      5 rows starting at margin + 58 mm, 6.5 mm apart;
                         10 columns (0-9) starting at margin + 13 mm, 7 mm apart
  answers                3 sections, each 10 question columns (17 mm apart) x 5 choice rows (5.5 mm apart)
  corner fiducials       6 mm squares just inside the margins

The fiducials are printed but the decoder never reads them: photos are stretched to
the canonical size without any alignment step.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Tuple

DPI = 300
MM_PER_INCH = 25.4

SECTIONS = 3
QUESTIONS_PER_SECTION = 10
CHOICES = 5
TOTAL_QUESTIONS = SECTIONS * QUESTIONS_PER_SECTION
DIGIT_POSITIONS = 5
DIGITS = 10

Rect = Tuple[int, int, int, int]
Point = Tuple[int, int]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def mm_to_px(mm: float) -> int:
    """Millimetres on the printed page -> canonical pixels at 300 dpi."""
    return round_half_up(mm * DPI / MM_PER_INCH)


@dataclass(frozen=True)
class GeometryTemplate:
    """Where every decodable mark lives on the canonical raster."""
    page_width: int
    page_height: int
    margin: int

    identifier_size: int

    type_y: int
    type_xs: Tuple[Tuple[str, int], ...]

    digit_start_y: int
    digit_row_height: int
    digit_col_start: int
    digit_col_width: int

    answer_start_y: int
    section_height: int
    section_header_height: int
    section_gap: int
    choice_row_offset: int
    answer_row_height: int
    answer_col_start: int
    answer_col_width: int

    bubble_radius: int
    fiducial_size: int

    # ---------------------------------------------------------------------------
    # Identifier

    def identifier_region(self) -> Rect:
        return (self.margin, self.margin, self.identifier_size, self.identifier_size)

    # ---------------------------------------------------------------------------
    # Structured ID

    @property
    def prefixes(self) -> Tuple[str, ...]:
        return tuple(p for p, _ in self.type_xs)

    def type_bubble_centers(self) -> List[Tuple[str, Point]]:
        return [(prefix, (x, self.type_y)) for prefix, x in self.type_xs]

    def digit_bubble_center(self, position: int, digit: int) -> Point:
        if not 0 <= position < DIGIT_POSITIONS:
            raise ValueError(f"digit position {position} outside 0..{DIGIT_POSITIONS - 1}")
        if not 0 <= digit < DIGITS:
            raise ValueError(f"digit {digit} outside 0..9")
        x = self.digit_col_start + digit * self.digit_col_width
        y = self.digit_start_y + position * self.digit_row_height
        return x, y

    # ---------------------------------------------------------------------------
    # Answers

    def section_top(self, section: int) -> int:
        """Top of the section block (0-based section index)."""
        if not 0 <= section < SECTIONS:
            raise ValueError(f"section {section} outside 0..{SECTIONS - 1}")
        return self.answer_start_y + section * (self.section_height + self.section_header_height + self.section_gap)

    def answer_bubble_center(self, section: int, question: int, choice: int) -> Point:
        """Center of choice 1..5 for question 0..9 of section 0..2."""
        if not 0 <= question < QUESTIONS_PER_SECTION:
            raise ValueError(f"question {question} outside 0..{QUESTIONS_PER_SECTION - 1}")
        if not 1 <= choice <= CHOICES:
            raise ValueError(f"choice {choice} outside 1..{CHOICES}")
        row_start_y = self.section_top(section) + self.section_header_height + self.choice_row_offset
        x = self.answer_col_start + question * self.answer_col_width
        y = row_start_y + choice * self.answer_row_height
        return x, y

    def question_slots(self) -> List[Tuple[int, int]]:
        """(section, question) pairs in global question order."""
        return [(s, q) for s in range(SECTIONS) for q in range(QUESTIONS_PER_SECTION)]

    # ---------------------------------------------------------------------------
    # Fiducials (printed, never read)

    def fiducial_boxes(self) -> List[Rect]:
        m, s = self.margin, self.fiducial_size
        right = self.page_width - m - s
        bottom = self.page_height - m - s
        return [(m, m, s, s), (right, m, s, s), (m, bottom, s, s), (right, bottom, s, s)]


def build_template() -> GeometryTemplate:
    """Derive the canonical template from the physical sheet measurements."""
    margin_mm = 15
    id_block_mm = margin_mm + 40
    return GeometryTemplate(
        page_width=mm_to_px(210),
        page_height=mm_to_px(297),
        margin=mm_to_px(margin_mm),
        identifier_size=mm_to_px(30),
        type_y=mm_to_px(id_block_mm + 8),
        type_xs=(("h", mm_to_px(margin_mm + 23)), ("m", mm_to_px(margin_mm + 37))),
        digit_start_y=mm_to_px(id_block_mm + 18),
        digit_row_height=mm_to_px(6.5),
        digit_col_start=mm_to_px(margin_mm + 13),
        digit_col_width=mm_to_px(7),
        answer_start_y=mm_to_px(id_block_mm + 45 + 12),
        section_height=mm_to_px(38),
        section_header_height=mm_to_px(8),
        section_gap=5,  # pixels, not millimetres
        choice_row_offset=mm_to_px(5),
        answer_row_height=mm_to_px(5.5),
        answer_col_start=mm_to_px(margin_mm + 12),
        answer_col_width=mm_to_px(17),
        bubble_radius=mm_to_px(2.5),
        fiducial_size=mm_to_px(6),
    )


DEFAULT_TEMPLATE = build_template()
