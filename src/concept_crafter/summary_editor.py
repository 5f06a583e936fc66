"""Review-and-edit state for a generated video concept summary."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Union

from .config import DEFAULT_MAX_DURATION_MINUTES
from .store import PersistenceError
from .summary import OutlineItem, VideoConceptSummary

logger = logging.getLogger(__name__)

DURATION_REQUIRED = "Target duration is required."
DURATION_NOT_A_NUMBER = (
    "Invalid format. Please enter a number for minutes (e.g., 0.5 or 1)."
)
DURATION_NOT_POSITIVE = "Duration must be greater than 0 minutes."


class ScalarField(str, Enum):
    """Editable text fields, named by their wire path."""

    VIDEO_TITLE_SUGGESTION = "videoTitleSuggestion"
    CORE_CONCEPT = "coreConcept"
    ADDITIONAL_NOTES = "additionalNotes"
    TARGET_AUDIENCE_DESCRIPTION = "targetAudience.description"
    VISUAL_STYLE = "visualElements.style"
    VISUAL_MOOD_TONE = "visualElements.moodTone"
    VISUAL_COLOR_PALETTE = "visualElements.colorPalette"
    RESOLUTION = "technicalSpecifications.resolution"
    ASPECT_RATIO = "technicalSpecifications.aspectRatio"
    TARGET_DURATION = "technicalSpecifications.targetDuration"


class ListField(str, Enum):
    """Editable string lists, named by their wire path."""

    KEY_MESSAGES = "keyMessages"
    KEY_TAKEAWAYS = "targetAudience.keyTakeaways"
    IMAGERY_SUGGESTIONS = "visualElements.imagerySuggestions"


class OutlinePart(str, Enum):
    SECTION = "section"
    DESCRIPTION = "description"


@dataclass(frozen=True, slots=True)
class SetScalar:
    field: ScalarField
    value: str


@dataclass(frozen=True, slots=True)
class SetArrayItem:
    field: ListField
    index: int
    value: str


@dataclass(frozen=True, slots=True)
class AddArrayItem:
    field: ListField


@dataclass(frozen=True, slots=True)
class RemoveArrayItem:
    field: ListField
    index: int


@dataclass(frozen=True, slots=True)
class SetOutlineItem:
    index: int
    part: OutlinePart
    value: str


@dataclass(frozen=True, slots=True)
class AddOutlineItem:
    pass


@dataclass(frozen=True, slots=True)
class RemoveOutlineItem:
    index: int


EditOperation = Union[
    SetScalar,
    SetArrayItem,
    AddArrayItem,
    RemoveArrayItem,
    SetOutlineItem,
    AddOutlineItem,
    RemoveOutlineItem,
]


class SummarySink(Protocol):
    def save_summary(
        self,
        session_id: str,
        summary: VideoConceptSummary,
    ) -> VideoConceptSummary: ...


def validate_duration(
    text: Optional[str],
    max_minutes: float = DEFAULT_MAX_DURATION_MINUTES,
) -> Optional[str]:
    """Return an error message for an unacceptable duration, else ``None``."""

    if text is None or not text.strip():
        return DURATION_REQUIRED
    try:
        minutes = float(text.strip())
    except ValueError:
        return DURATION_NOT_A_NUMBER
    if not math.isfinite(minutes):
        return DURATION_NOT_A_NUMBER
    if minutes <= 0:
        return DURATION_NOT_POSITIVE
    if minutes > max_minutes:
        unit = "minute" if max_minutes == 1 else "minutes"
        return f"Duration cannot exceed {max_minutes:g} {unit}."
    return None


def _set_scalar(summary: VideoConceptSummary, field: ScalarField, value: str) -> None:
    if field is ScalarField.VIDEO_TITLE_SUGGESTION:
        summary.video_title_suggestion = value
    elif field is ScalarField.CORE_CONCEPT:
        summary.core_concept = value
    elif field is ScalarField.ADDITIONAL_NOTES:
        summary.additional_notes = value
    elif field is ScalarField.TARGET_AUDIENCE_DESCRIPTION:
        summary.target_audience.description = value
    elif field is ScalarField.VISUAL_STYLE:
        summary.visual_elements.style = value
    elif field is ScalarField.VISUAL_MOOD_TONE:
        summary.visual_elements.mood_tone = value
    elif field is ScalarField.VISUAL_COLOR_PALETTE:
        summary.visual_elements.color_palette = value
    elif field is ScalarField.RESOLUTION:
        summary.technical_specifications.resolution = value
    elif field is ScalarField.ASPECT_RATIO:
        summary.technical_specifications.aspect_ratio = value
    elif field is ScalarField.TARGET_DURATION:
        summary.technical_specifications.target_duration = value
    else:  # pragma: no cover - exhaustive over the enum
        raise ValueError(f"Unsupported field: {field}")


def _list_for(summary: VideoConceptSummary, field: ListField) -> List[str]:
    if field is ListField.KEY_MESSAGES:
        return summary.key_messages
    if field is ListField.KEY_TAKEAWAYS:
        return summary.target_audience.key_takeaways
    if field is ListField.IMAGERY_SUGGESTIONS:
        return summary.visual_elements.imagery_suggestions
    raise ValueError(f"Unsupported field: {field}")  # pragma: no cover


def _check_index(items: List, index: int) -> None:
    if index < 0 or index >= len(items):
        raise IndexError(f"Index {index} out of range for {len(items)} items")


def apply_edit(summary: VideoConceptSummary, operation: EditOperation) -> None:
    """Apply ``operation`` to ``summary`` in place."""

    if isinstance(operation, SetScalar):
        _set_scalar(summary, operation.field, operation.value)
    elif isinstance(operation, SetArrayItem):
        items = _list_for(summary, operation.field)
        _check_index(items, operation.index)
        items[operation.index] = operation.value
    elif isinstance(operation, AddArrayItem):
        _list_for(summary, operation.field).append("")
    elif isinstance(operation, RemoveArrayItem):
        items = _list_for(summary, operation.field)
        _check_index(items, operation.index)
        del items[operation.index]
    elif isinstance(operation, SetOutlineItem):
        outline = summary.content_structure_outline
        _check_index(outline, operation.index)
        item = outline[operation.index]
        if operation.part is OutlinePart.SECTION:
            item.section = operation.value
        else:
            item.description = operation.value
    elif isinstance(operation, AddOutlineItem):
        summary.content_structure_outline.append(OutlineItem())
    elif isinstance(operation, RemoveOutlineItem):
        outline = summary.content_structure_outline
        _check_index(outline, operation.index)
        del outline[operation.index]
    else:
        raise TypeError(f"Unsupported edit operation: {operation!r}")


class SummaryEditor:
    """Working copy of a summary plus validation and approval state."""

    def __init__(
        self,
        session_id: str,
        summary: VideoConceptSummary,
        *,
        max_duration_minutes: float = DEFAULT_MAX_DURATION_MINUTES,
    ) -> None:
        self._session_id = session_id
        self._summary = summary.copy()
        self._max_duration_minutes = max_duration_minutes
        self._duration_error = self._validate()
        self._error: Optional[str] = None
        self._approved = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def summary(self) -> VideoConceptSummary:
        return self._summary.copy()

    @property
    def duration_error(self) -> Optional[str]:
        return self._duration_error

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def approved(self) -> bool:
        return self._approved

    def apply(self, operation: EditOperation) -> None:
        self.apply_all([operation])

    def apply_all(self, operations: Sequence[EditOperation]) -> None:
        """Apply ``operations`` in order; a failing one leaves the copy as it was."""

        draft = self._summary.copy()
        for operation in operations:
            apply_edit(draft, operation)
        self._summary = draft
        self._approved = False
        self._duration_error = self._validate()

    def save(self, store: SummarySink) -> bool:
        """Persist the working copy; return whether it was approved."""

        self._duration_error = self._validate()
        if self._duration_error:
            self._error = self._duration_error
            return False
        try:
            canonical = store.save_summary(self._session_id, self._summary)
        except PersistenceError as exc:
            logger.warning(
                "Failed to save summary for %s: %s", self._session_id, exc
            )
            self._error = f"Failed to save summary: {exc}"
            return False
        self._summary = canonical.copy()
        self._error = None
        self._approved = True
        return True

    def _validate(self) -> Optional[str]:
        return validate_duration(
            self._summary.technical_specifications.target_duration,
            self._max_duration_minutes,
        )
