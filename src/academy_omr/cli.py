from __future__ import annotations

import csv
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import cv2
import typer
from rich import print as rprint

from .defaults import SCAN_DEFAULTS, REVIEW_DEFAULTS, apply_scan_overrides, apply_review_overrides
from .geometry import DEFAULT_TEMPLATE, TOTAL_QUESTIONS
from .grade_core import grade_answers
from .key_io import AnswerKey, load_answer_key, parse_answer_vector
from .review_core import needs_review, review_reasons
from .scan_core import ScanOutcome, recognize_many
from .visualize_core import overlay_image_file, overlay_recognition
from .tools.sheet_synth import synthesize_sheet

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="AcademyOMR: read photographed answer sheets and grade them with remediation tiers.",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log recognition details to stderr"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _ensure_dir(path: str) -> None:
    if path and not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def _load_key_or_exit(path: str) -> AnswerKey:
    try:
        return load_answer_key(path)
    except Exception as e:
        rprint(f"[red]Failed to load answer key {path}:[/red] {e}")
        raise typer.Exit(code=2)


# ---------------------- SCAN ----------------------
@app.command()
def scan(
    images: List[str] = typer.Argument(..., help="Photos/scans of answer sheets (png, jpg, ...)"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Answer key (.yaml/.json). If given, sheets are graded too."),
    out_csv: str = typer.Option("scan_results.csv", "--out-csv", "-o", help="Output CSV, one row per sheet"),
    out_json: Optional[str] = typer.Option(None, "--out-json", help="Optional JSON with full recognition details"),
    overlay_dir: Optional[str] = typer.Option(None, "--overlay-dir", help="Directory for QA overlay PNGs"),
    workers: int = typer.Option(4, "--workers", help="Sheets recognized in parallel"),
    min_confidence: float = typer.Option(REVIEW_DEFAULTS.min_confidence, "--min-confidence",
        help="Scans below this confidence are flagged for review"),
    max_image_bytes: Optional[int] = typer.Option(None, "--max-image-bytes",
        help=f"Skip files larger than this (default {SCAN_DEFAULTS.max_image_bytes})"),
):
    """
    Recognize answer sheets and write a CSV (optionally graded against a key).
    """
    answer_key = _load_key_or_exit(key) if key else None
    try:
        if answer_key:
            # reject a malformed key before any sheet is read
            grade_answers([0] * TOTAL_QUESTIONS, answer_key.sections)
        scan_cfg = apply_scan_overrides(max_image_bytes=max_image_bytes)
        review_cfg = apply_review_overrides(min_confidence)
    except ValueError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    outcomes = recognize_many(images, DEFAULT_TEMPLATE, scan_cfg, max_workers=workers,
                              keep_raster=bool(overlay_dir))

    header = ["file", "identifier", "student_id"] + [f"Q{i + 1}" for i in range(TOTAL_QUESTIONS)] \
             + ["confidence", "review", "errors"]
    if answer_key:
        header += ["score"] + [f"S{s.section_number}_correct" for s in answer_key.sections] \
                  + [f"S{s.section_number}_tier" for s in answer_key.sections]

    _ensure_dir(os.path.dirname(out_csv) or ".")
    if overlay_dir:
        _ensure_dir(overlay_dir)

    details = []
    flagged = failed = 0
    with open(out_csv, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(header)
        for o in outcomes:
            row, entry = _scan_row(o, answer_key, review_cfg.min_confidence)
            w.writerow(row)
            details.append(entry)
            if o.result is None:
                failed += 1
                continue
            if entry["review"]:
                flagged += 1
            if overlay_dir and o.raster is not None:
                stem = Path(o.path).stem
                overlay_recognition(o.raster, os.path.join(overlay_dir, f"{stem}_overlay.png"),
                                    DEFAULT_TEMPLATE, o.result)

    if out_json:
        _ensure_dir(os.path.dirname(out_json) or ".")
        with open(out_json, "w", encoding="utf-8") as f:
            json.dump(details, f, indent=2, ensure_ascii=False)

    rprint(f"[green]Wrote results:[/green] {out_csv} ({len(outcomes)} sheets, "
           f"{flagged} for review, {failed} unreadable)")
    if out_json:
        rprint(f"[green]Details:[/green] {out_json}")
    if failed == len(outcomes):
        raise typer.Exit(code=2)


def _scan_row(o: ScanOutcome, key: Optional[AnswerKey], min_confidence: float):
    n_sections = len(key.sections) if key else 0
    if o.result is None:
        row = [o.path, "", ""] + [""] * TOTAL_QUESTIONS + ["", "yes", o.error or ""]
        if key:
            row += [""] * (1 + 2 * n_sections)
        return row, {"file": o.path, "error": o.error, "review": True}

    res = o.result
    reasons = review_reasons(res, key, min_confidence)
    review = needs_review(res, min_confidence) or bool(reasons)
    row = [o.path, res.identifier or "", res.structured_id or ""] + [str(a) for a in res.answers] \
          + [f"{res.confidence:.3f}", "yes" if review else "no", "; ".join(res.errors)]
    entry = {"file": o.path, "review": review, "review_reasons": reasons, "recognition": res.to_dict()}
    if key:
        graded = grade_answers(list(res.answers), key.sections)
        row += [str(graded.overall_score)] + [str(s.correct) for s in graded.section_scores] \
               + [t.tier.value for t in graded.assigned_tasks]
        entry["grade"] = graded.to_dict()
    return row, entry


# ---------------------- GRADE ----------------------
@app.command()
def grade(
    key: str = typer.Option(..., "--key", "-k", help="Answer key (.yaml/.json)"),
    answers: str = typer.Option(..., "--answers", "-a",
        help=f"{TOTAL_QUESTIONS} answers separated by commas/spaces, 0 = unanswered"),
    out_json: Optional[str] = typer.Option(None, "--out-json", "-o", help="Write the graded result here"),
):
    """
    Grade an answer vector (e.g. one corrected by an operator) against a key.
    """
    answer_key = _load_key_or_exit(key)
    try:
        vector = parse_answer_vector(answers)
        graded = grade_answers(vector, answer_key.sections)
    except ValueError as e:
        rprint(f"[red]Grading failed:[/red] {e}")
        raise typer.Exit(code=2)

    payload = {"test_id": answer_key.test_id, "answers": vector, **graded.to_dict()}
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out_json:
        Path(out_json).write_text(text, encoding="utf-8")
        rprint(f"[green]Wrote:[/green] {out_json}")
    else:
        typer.echo(text)


# ---------------------- SYNTH ----------------------
@app.command()
def synth(
    out: str = typer.Option("synthetic_sheet.png", "--out", "-o", help="Output image"),
    identifier: Optional[str] = typer.Option(None, "--identifier", help="Test id for the QR code"),
    student_id: Optional[str] = typer.Option(None, "--student-id", help="e.g. h12345"),
    answers: Optional[str] = typer.Option(None, "--answers", "-a", help=f"{TOTAL_QUESTIONS} answers, 0 = blank"),
):
    """
    Draw a filled canonical sheet to check the pipeline end to end.
    """
    try:
        vector = parse_answer_vector(answers) if answers else None
        img = synthesize_sheet(DEFAULT_TEMPLATE, identifier=identifier, structured_id=student_id, answers=vector)
    except ValueError as e:
        rprint(f"[red]Synthesis failed:[/red] {e}")
        raise typer.Exit(code=2)
    if not cv2.imwrite(out, img):
        rprint(f"[red]Failed to write {out}[/red]")
        raise typer.Exit(code=2)
    rprint(f"[green]Wrote:[/green] {out}")


# --------------------------- VISUALIZE --------------------------
@app.command()
def visualize(
    image: str = typer.Argument(..., help="A photo/scan of a sheet"),
    out_image: str = typer.Option("geometry_overlay.png", "--out-image", "-o", help="Output overlay image"),
):
    """
    Overlay the fixed bubble geometry on a normalized photo to verify placement.
    """
    try:
        overlay_image_file(image, out_image, DEFAULT_TEMPLATE)
    except Exception as e:
        rprint(f"[red]Visualization failed for {image}:[/red] {e}")
        raise typer.Exit(code=2)
    rprint(f"[green]Wrote:[/green] {out_image}")


# ------------------------------- MAIN --------------------------------
def app_main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        rprint("\n[red]Interrupted[/red]")
        sys.exit(130)


if __name__ == "__main__":
    app_main()
