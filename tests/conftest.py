from __future__ import annotations

import numpy as np
import pytest

from academy_omr.geometry import DEFAULT_TEMPLATE
from academy_omr.grade_core import AnswerKeySection, RemediationTasks
from academy_omr.key_io import AnswerKey
from academy_omr.tools.raster_tools import CanonicalRaster, normalize_image
from academy_omr.tools.sheet_synth import synthesize_sheet

SCENARIO_ANSWERS = [1] * 10 + [2] * 10 + [3] * 10


def tasks_for(n: int) -> RemediationTasks:
    return RemediationTasks(
        light=f"S{n}: review notes",
        medium=f"S{n}: workbook drills",
        heavy=f"S{n}: retake with tutor",
    )


def make_sections(answers=SCENARIO_ANSWERS):
    return [
        AnswerKeySection(section_number=n, answers=tuple(answers[(n - 1) * 10:n * 10]), tasks=tasks_for(n))
        for n in (1, 2, 3)
    ]


def blank_raster(value: int = 255) -> CanonicalRaster:
    t = DEFAULT_TEMPLATE
    return normalize_image(np.full((t.page_height, t.page_width), value, dtype=np.uint8), t)


def sheet_raster(**kwargs) -> CanonicalRaster:
    return normalize_image(synthesize_sheet(DEFAULT_TEMPLATE, **kwargs), DEFAULT_TEMPLATE)


@pytest.fixture
def template():
    return DEFAULT_TEMPLATE


@pytest.fixture
def sections():
    return make_sections()


@pytest.fixture
def answer_key(sections):
    return AnswerKey(test_id="test-0001", name="Midterm A", subject="English", sections=tuple(sections))
