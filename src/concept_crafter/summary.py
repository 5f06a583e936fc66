"""Structured video concept summary produced from a finished dialog."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, cast

from .timestamps import normalize_timestamp, to_iso

NOT_SPECIFIED = "Not specified"


def _to_clean_string(value: Any, *, default: str = NOT_SPECIFIED) -> str:
    if value is None:
        return default
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or default


def _to_string_list(value: Any) -> List[str]:
    items: List[str] = []
    if isinstance(value, list):
        for element in cast(List[Any], value):
            if element is None:
                continue
            text = str(element).strip()
            if text:
                items.append(text)
    elif isinstance(value, str):
        text = value.strip()
        if text:
            items.append(text)
    return items


def _to_exact_string(value: Any, *, default: str = NOT_SPECIFIED) -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _to_exact_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [
            "" if element is None else str(element)
            for element in cast(List[Any], value)
        ]
    if isinstance(value, str):
        return [value]
    return []


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return cast(Mapping[str, Any], value)
    return {}


@dataclass(slots=True)
class TargetAudience:
    description: str = NOT_SPECIFIED
    key_takeaways: List[str] = field(default_factory=list)


@dataclass(slots=True)
class VisualElements:
    style: str = NOT_SPECIFIED
    mood_tone: str = NOT_SPECIFIED
    imagery_suggestions: List[str] = field(default_factory=list)
    color_palette: str = NOT_SPECIFIED


@dataclass(slots=True)
class OutlineItem:
    """One entry of the ordered content structure outline."""

    section: str = ""
    description: str = ""


@dataclass(slots=True)
class TechnicalSpecifications:
    resolution: str = ""
    aspect_ratio: str = ""
    target_duration: str = ""


@dataclass(slots=True)
class VideoConceptSummary:
    """Fixed-shape summary record.

    Serialized with the camelCase keys the summary gateway is asked to emit,
    which are also the keys accepted by the HTTP surface.
    """

    video_title_suggestion: str = NOT_SPECIFIED
    core_concept: str = NOT_SPECIFIED
    target_audience: TargetAudience = field(default_factory=TargetAudience)
    key_messages: List[str] = field(default_factory=list)
    visual_elements: VisualElements = field(default_factory=VisualElements)
    content_structure_outline: List[OutlineItem] = field(default_factory=list)
    technical_specifications: TechnicalSpecifications = field(
        default_factory=TechnicalSpecifications
    )
    additional_notes: str = NOT_SPECIFIED
    session_id: Optional[str] = None
    saved_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        *,
        fill_defaults: bool = True,
    ) -> "VideoConceptSummary":
        """Build a summary from its wire form.

        With ``fill_defaults`` blank or missing fields become "Not specified"
        and blank list items are dropped, which is how generated replies are
        cleaned up. Stored and user-edited summaries are loaded with
        ``fill_defaults=False`` so their values come back exactly as saved.
        """

        text = _to_clean_string if fill_defaults else _to_exact_string
        items = _to_string_list if fill_defaults else _to_exact_list
        audience = _as_mapping(payload.get("targetAudience"))
        visuals = _as_mapping(payload.get("visualElements"))
        specs = _as_mapping(payload.get("technicalSpecifications"))
        outline: List[OutlineItem] = []
        outline_raw = payload.get("contentStructureOutline")
        if isinstance(outline_raw, list):
            for entry in cast(List[Any], outline_raw):
                entry_map = _as_mapping(entry)
                if not entry_map:
                    continue
                outline.append(
                    OutlineItem(
                        section=text(entry_map.get("section"), default=""),
                        description=text(entry_map.get("description"), default=""),
                    )
                )
        session_id = payload.get("sessionId")
        return cls(
            video_title_suggestion=text(payload.get("videoTitleSuggestion")),
            core_concept=text(payload.get("coreConcept")),
            target_audience=TargetAudience(
                description=text(audience.get("description")),
                key_takeaways=items(audience.get("keyTakeaways")),
            ),
            key_messages=items(payload.get("keyMessages")),
            visual_elements=VisualElements(
                style=text(visuals.get("style")),
                mood_tone=text(visuals.get("moodTone")),
                imagery_suggestions=items(visuals.get("imagerySuggestions")),
                color_palette=text(visuals.get("colorPalette")),
            ),
            content_structure_outline=outline,
            technical_specifications=TechnicalSpecifications(
                resolution=text(specs.get("resolution"), default=""),
                aspect_ratio=text(specs.get("aspectRatio"), default=""),
                target_duration=text(specs.get("targetDuration"), default=""),
            ),
            additional_notes=text(payload.get("additionalNotes")),
            session_id=str(session_id) if session_id else None,
            saved_at=normalize_timestamp(payload.get("savedAt")),
            last_updated_at=normalize_timestamp(payload.get("lastUpdatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "videoTitleSuggestion": self.video_title_suggestion,
            "coreConcept": self.core_concept,
            "targetAudience": {
                "description": self.target_audience.description,
                "keyTakeaways": list(self.target_audience.key_takeaways),
            },
            "keyMessages": list(self.key_messages),
            "visualElements": {
                "style": self.visual_elements.style,
                "moodTone": self.visual_elements.mood_tone,
                "imagerySuggestions": list(
                    self.visual_elements.imagery_suggestions
                ),
                "colorPalette": self.visual_elements.color_palette,
            },
            "contentStructureOutline": [
                {"section": item.section, "description": item.description}
                for item in self.content_structure_outline
            ],
            "technicalSpecifications": {
                "resolution": self.technical_specifications.resolution,
                "aspectRatio": self.technical_specifications.aspect_ratio,
                "targetDuration": self.technical_specifications.target_duration,
            },
            "additionalNotes": self.additional_notes,
        }
        if self.session_id:
            data["sessionId"] = self.session_id
        if self.saved_at is not None:
            data["savedAt"] = to_iso(self.saved_at)
        if self.last_updated_at is not None:
            data["lastUpdatedAt"] = to_iso(self.last_updated_at)
        return data

    def copy(self) -> "VideoConceptSummary":
        return copy.deepcopy(self)
