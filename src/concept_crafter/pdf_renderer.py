"""Utilities for rendering video concept summaries to PDF."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, List, Sequence, Union

from .summary import NOT_SPECIFIED, VideoConceptSummary

logger = logging.getLogger(__name__)

AUTHOR = "ConceptCrafterAI"
_FILENAME_RE = re.compile(r"[^a-z0-9_.-]", re.ASCII | re.IGNORECASE)

Value = Union[str, Sequence[str], None]


class PDFRenderError(RuntimeError):
    """Raised when a summary PDF cannot be generated."""


def safe_filename(title: str, *, fallback: str = "concept_summary") -> str:
    """Turn a title into a lower-case filename stem."""

    return _FILENAME_RE.sub("_", title or fallback).lower()


def _is_blank(value: Value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return len(value) == 0


class SummaryPDFRenderer:
    """Render a summary into a fixed-layout A4 document."""

    _UNICODE_TRANSLATION = str.maketrans(
        {
            "\u00a0": " ",  # non-breaking space
            "\u2010": "-",  # hyphen
            "\u2011": "-",  # non-breaking hyphen
            "\u2013": "-",  # en dash
            "\u2014": "-",  # em dash
            "\u2018": "'",  # left single quote
            "\u2019": "'",  # right single quote
            "\u201c": '"',  # left double quote
            "\u201d": '"',  # right double quote
            "\u2022": "-",  # bullet
            "\u2026": "...",  # ellipsis
            "\u2212": "-",  # minus sign
        }
    )

    def render(self, summary: VideoConceptSummary) -> bytes:
        try:
            from fpdf import FPDF  # type: ignore[import]
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise PDFRenderError(
                "fpdf2 is required to render summaries as PDF."
            ) from exc

        pdf: Any = FPDF(unit="mm", format="A4")
        pdf.set_auto_page_break(auto=True, margin=18)
        pdf.set_margins(left=25, top=18, right=25)
        pdf.add_page()
        self._set_metadata(pdf, summary)

        pdf.set_font("Helvetica", "B", size=24)
        pdf.multi_cell(
            0, 11, self._safe_text(summary.video_title_suggestion), align="C"
        )
        pdf.ln(10)

        self._section_title(pdf, "Concept Overview")
        self._labeled(pdf, "Core Concept", summary.core_concept)
        self._labeled(pdf, "Target Audience", summary.target_audience.description)
        self._labeled_list(
            pdf,
            "Key Takeaways for Audience",
            summary.target_audience.key_takeaways,
        )
        pdf.ln(4)

        visuals = summary.visual_elements
        self._section_title(pdf, "Visual Direction")
        self._labeled(pdf, "Style", visuals.style)
        self._labeled(pdf, "Mood & Tone", visuals.mood_tone)
        self._labeled(pdf, "Color Palette", visuals.color_palette)
        self._labeled_list(
            pdf, "Imagery Suggestions", visuals.imagery_suggestions
        )
        pdf.ln(4)

        self._section_title(pdf, "Key Narrative Points")
        self._labeled_list(pdf, "Key Messages", summary.key_messages)
        self._outline(pdf, summary)
        pdf.ln(4)

        specs = summary.technical_specifications
        self._section_title(pdf, "Technical Specifications for Video Generation")
        self._labeled(pdf, "Resolution", specs.resolution)
        self._labeled(pdf, "Aspect Ratio", specs.aspect_ratio)
        self._labeled(pdf, "Target Duration (in minutes)", specs.target_duration)
        pdf.ln(4)

        notes = summary.additional_notes
        if not _is_blank(notes) and notes.strip().lower() != NOT_SPECIFIED.lower():
            self._section_title(pdf, "Additional Notes")
            self._paragraph(pdf, notes)

        try:
            return bytes(pdf.output())
        except (OSError, RuntimeError, ValueError) as exc:
            raise PDFRenderError("Unable to render summary PDF") from exc

    def export(self, summary: VideoConceptSummary, destination: Path) -> Path:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - filesystem guard
            raise PDFRenderError(
                f"Unable to create directory for PDF export: {destination}"
            ) from exc
        payload = self.render(summary)
        try:
            destination.write_bytes(payload)
        except OSError as exc:
            raise PDFRenderError(
                f"Unable to write summary PDF: {destination}"
            ) from exc
        logger.info("Summary PDF written to %s", destination)
        return destination

    def _set_metadata(self, pdf: Any, summary: VideoConceptSummary) -> None:
        core = summary.core_concept or "N/A"
        keywords = ", ".join(
            [
                "video concept",
                summary.target_audience.description,
                ", ".join(summary.key_messages),
            ]
        )
        pdf.set_title(self._safe_text(summary.video_title_suggestion))
        pdf.set_author(AUTHOR)
        pdf.set_subject(
            self._safe_text(f"Video Concept Summary: {core[:50]}...")
        )
        pdf.set_keywords(self._safe_text(keywords))

    def _section_title(self, pdf: Any, title: str) -> None:
        pdf.set_font("Helvetica", "B", size=16)
        self._reset_to_margin(pdf)
        pdf.multi_cell(0, 8, self._safe_text(title))
        pdf.ln(2)

    def _labeled(self, pdf: Any, label: str, value: Value) -> None:
        text = NOT_SPECIFIED if _is_blank(value) else str(value)
        pdf.set_font("Helvetica", "B", size=11)
        self._reset_to_margin(pdf)
        pdf.multi_cell(0, 6, self._safe_text(f"{label}:"))
        self._paragraph(pdf, text)

    def _labeled_list(self, pdf: Any, label: str, items: Sequence[str]) -> None:
        entries: List[str] = [item for item in items if item.strip()]
        if not entries:
            self._labeled(pdf, label, None)
            return
        pdf.set_font("Helvetica", "B", size=11)
        self._reset_to_margin(pdf)
        pdf.multi_cell(0, 6, self._safe_text(f"{label}:"))
        pdf.set_font("Helvetica", size=11)
        for entry in entries:
            pdf.set_x(pdf.l_margin + 4)
            pdf.multi_cell(0, 6, self._safe_text(f"- {entry}"))
        pdf.ln(2)

    def _outline(self, pdf: Any, summary: VideoConceptSummary) -> None:
        pdf.set_font("Helvetica", "B", size=12)
        self._reset_to_margin(pdf)
        pdf.multi_cell(0, 7, "Content Structure Outline:")
        pdf.ln(1)
        if not summary.content_structure_outline:
            pdf.set_font("Helvetica", size=10)
            pdf.set_x(pdf.l_margin + 5)
            pdf.multi_cell(0, 5, NOT_SPECIFIED)
            return
        for item in summary.content_structure_outline:
            pdf.set_font("Helvetica", "B", size=10)
            self._reset_to_margin(pdf)
            pdf.multi_cell(
                0, 5, self._safe_text(f"Section: {item.section or 'N/A'}")
            )
            pdf.set_font("Helvetica", size=10)
            pdf.set_x(pdf.l_margin + 5)
            pdf.multi_cell(
                0,
                5,
                self._safe_text(f"Description: {item.description or 'N/A'}"),
            )
            pdf.ln(1)

    def _paragraph(self, pdf: Any, text: str) -> None:
        pdf.set_font("Helvetica", size=11)
        self._reset_to_margin(pdf)
        pdf.multi_cell(0, 6, self._safe_text(text))
        pdf.ln(2)

    @staticmethod
    def _safe_text(text: str) -> str:
        text = text.translate(SummaryPDFRenderer._UNICODE_TRANSLATION)
        try:
            text.encode("latin-1")
        except UnicodeEncodeError:
            return text.encode("latin-1", "replace").decode("latin-1")
        return text

    @staticmethod
    def _reset_to_margin(pdf: Any) -> None:
        pdf.set_x(pdf.l_margin)
