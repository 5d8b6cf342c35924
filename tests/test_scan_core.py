import cv2
import numpy as np
import pytest

from academy_omr.geometry import DEFAULT_TEMPLATE
from academy_omr.scan_core import (
    AnswerRead, StructuredIdRead,
    aggregate, read_answers, read_structured_id, recognize_raster, recognize_sheet,
)
from academy_omr.tools.qr_tools import IdentifierRead, read_identifier
from academy_omr.tools.raster_tools import SheetImageError, normalize_image
from academy_omr.tools.sheet_synth import encode_png, synthesize_sheet

from conftest import SCENARIO_ANSWERS, blank_raster, sheet_raster


def _paint(raster_px, center, r, value=0):
    cv2.circle(raster_px, center, r, int(value), thickness=-1)


def _raster_from(px):
    return normalize_image(px, DEFAULT_TEMPLATE)


# ----------------------------
# Structured ID
# ----------------------------

def test_structured_id_read_back():
    res = read_structured_id(sheet_raster(structured_id="h12345"))
    assert res.structured_id == "h12345"
    assert res.confidence > 0.9


def test_structured_id_m_prefix():
    assert read_structured_id(sheet_raster(structured_id="m90817")).structured_id == "m90817"


def test_structured_id_blank_type_rejects_everything():
    res = read_structured_id(blank_raster())
    assert res.structured_id is None
    assert res.confidence == 0.0


def test_structured_id_type_tie_rejected(template):
    px = np.full((template.page_height, template.page_width), 255, dtype=np.uint8)
    for _, center in template.type_bubble_centers():
        _paint(px, center, template.bubble_radius + 2)
    for pos, d in enumerate([1, 2, 3, 4, 5]):
        _paint(px, template.digit_bubble_center(pos, d), template.bubble_radius + 2)
    res = read_structured_id(_raster_from(px))
    assert res.structured_id is None
    assert res.confidence == 0.0


def test_structured_id_missing_digit_is_placeholder_zero(template):
    px = np.full((template.page_height, template.page_width), 255, dtype=np.uint8)
    _paint(px, template.type_bubble_centers()[0][1], template.bubble_radius + 2)
    for pos, d in [(0, 7), (1, 7), (3, 7), (4, 7)]:  # position 2 left blank
        _paint(px, template.digit_bubble_center(pos, d), template.bubble_radius + 2)
    res = read_structured_id(_raster_from(px))
    assert res.structured_id == "h77077"
    # type + four accepted digits, all fully dark; the blank position adds nothing
    assert res.confidence == pytest.approx(5 / 6)


def test_structured_id_digit_tie_becomes_zero(template):
    px = np.full((template.page_height, template.page_width), 255, dtype=np.uint8)
    _paint(px, template.type_bubble_centers()[1][1], template.bubble_radius + 2)
    for pos in range(5):
        _paint(px, template.digit_bubble_center(pos, 4), template.bubble_radius + 2)
    _paint(px, template.digit_bubble_center(0, 8), template.bubble_radius + 2)
    res = read_structured_id(_raster_from(px))
    assert res.structured_id == "m04444"


# ----------------------------
# Answers
# ----------------------------

def test_answers_read_back():
    answers = [1, 2, 3, 4, 5] * 6
    res = read_answers(sheet_raster(answers=answers))
    assert list(res.answers) == answers
    assert all(c > 0.9 for c in res.confidences)


def test_empty_rings_are_not_marks():
    res = read_answers(sheet_raster())
    assert list(res.answers) == [0] * 30
    assert list(res.confidences) == [0.0] * 30


def test_answers_partial_sheet():
    answers = [0] * 30
    answers[0], answers[14], answers[29] = 5, 2, 1
    res = read_answers(sheet_raster(answers=answers))
    assert list(res.answers) == answers
    assert res.confidences[1] == 0.0


def test_answer_double_mark_earliest_wins(template):
    px = np.full((template.page_height, template.page_width), 255, dtype=np.uint8)
    _paint(px, template.answer_bubble_center(0, 0, 2), template.bubble_radius + 2)
    _paint(px, template.answer_bubble_center(0, 0, 4), template.bubble_radius + 2)
    res = read_answers(_raster_from(px))
    assert res.answers[0] == 2


def test_scenario_d_no_dark_pixels():
    raster = blank_raster()
    ans = read_answers(raster)
    assert list(ans.answers) == [0] * 30
    assert list(ans.confidences) == [0.0] * 30
    result = recognize_raster(raster)
    assert "30 questions not marked" in result.errors
    assert not result.success


# ----------------------------
# Aggregation
# ----------------------------

def test_aggregate_error_order_and_confidence():
    answers = AnswerRead(answers=tuple([1] * 28 + [0, 0]), confidences=tuple([0.9] * 28 + [0.0, 0.0]))
    res = aggregate(
        IdentifierRead(identifier=None, confidence=0.0),
        StructuredIdRead(structured_id=None, confidence=0.0),
        answers,
    )
    assert res.errors == ("identifier not recognized", "structured ID not recognized", "2 questions not marked")
    assert res.confidence == pytest.approx((0.0 + 0.0 + 0.9 * 28 / 30) / 3)
    assert res.success is False
    assert len(res.details.answer_confidences) == 30


def test_aggregate_clean_sheet_is_success():
    res = aggregate(
        IdentifierRead(identifier="t-1", confidence=1.0),
        StructuredIdRead(structured_id="h12345", confidence=0.96),
        AnswerRead(answers=tuple([3] * 30), confidences=tuple([0.93] * 30)),
    )
    assert res.errors == ()
    assert res.success
    assert res.confidence == pytest.approx((1.0 + 0.96 + 0.93) / 3)
    d = res.to_dict()
    assert d["structured_id"] == "h12345" and d["success"] is True


# ----------------------------
# Identifier
# ----------------------------

def test_identifier_read_from_qr():
    res = read_identifier(sheet_raster(identifier="test-0001"), DEFAULT_TEMPLATE)
    assert res.identifier == "test-0001"
    assert res.confidence == 1.0


def test_identifier_missing():
    res = read_identifier(blank_raster(), DEFAULT_TEMPLATE)
    assert res.identifier is None
    assert res.confidence == 0.0


# ----------------------------
# End to end
# ----------------------------

def test_recognize_sheet_end_to_end():
    img = synthesize_sheet(DEFAULT_TEMPLATE, identifier="test-0001", structured_id="h12345",
                           answers=SCENARIO_ANSWERS)
    res = recognize_sheet(encode_png(img))
    assert res.identifier == "test-0001"
    assert res.structured_id == "h12345"
    assert list(res.answers) == SCENARIO_ANSWERS
    assert res.errors == ()
    assert res.confidence > 0.9


def test_recognize_sheet_resamples_other_sizes():
    img = synthesize_sheet(DEFAULT_TEMPLATE, structured_id="m55555", answers=SCENARIO_ANSWERS)
    smaller = cv2.resize(img, (1240, 1754), interpolation=cv2.INTER_AREA)
    bgr = cv2.cvtColor(smaller, cv2.COLOR_GRAY2BGR)
    ok, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, 95])
    assert ok
    res = recognize_sheet(buf.tobytes())
    assert res.structured_id == "m55555"
    assert list(res.answers) == SCENARIO_ANSWERS


def test_stages_run_even_when_identifier_missing():
    img = synthesize_sheet(DEFAULT_TEMPLATE, structured_id="h00001", answers=SCENARIO_ANSWERS)
    res = recognize_sheet(encode_png(img))
    assert res.errors == ("identifier not recognized",)
    assert res.structured_id == "h00001"


@pytest.mark.parametrize("data", [b"", b"not an image at all", b"\x89PNG\r\n\x1a\n\x00\x00garbage"])
def test_corrupt_bytes_raise(data):
    with pytest.raises(SheetImageError):
        recognize_sheet(data)


# ----------------------------
# Bit depth
# ----------------------------

def _png16(px16):
    ok, buf = cv2.imencode(".png", px16)
    assert ok
    return buf.tobytes()


def test_16bit_blank_page_reads_unmarked(template):
    blank = np.full((template.page_height, template.page_width), 65535, dtype=np.uint16)
    res = recognize_sheet(_png16(blank))
    assert list(res.answers) == [0] * 30
    assert res.structured_id is None
    assert res.details.answer_confidences == (0.0,) * 30


def test_16bit_sheet_reads_like_8bit():
    img = synthesize_sheet(DEFAULT_TEMPLATE, structured_id="h12345", answers=SCENARIO_ANSWERS)
    res = recognize_sheet(_png16(img.astype(np.uint16) * 257))
    assert res.structured_id == "h12345"
    assert list(res.answers) == SCENARIO_ANSWERS


def test_deep_pixels_scale_by_depth_not_range():
    grey16 = normalize_image(np.full((20, 20), 0x7FFF, dtype=np.uint16), DEFAULT_TEMPLATE)
    assert grey16.pixels.dtype == np.uint8
    assert int(grey16.pixels.min()) == int(grey16.pixels.max()) == 127

    grey_f = normalize_image(np.full((20, 20), 1.0, dtype=np.float32), DEFAULT_TEMPLATE)
    assert int(grey_f.pixels.min()) == 255
