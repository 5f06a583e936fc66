"""Post-hoc keyword tagging and confidence scoring for finished dialogs.

The scores are informational; nothing downstream branches on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .conversation import Message, MessageRole
from .timestamps import to_iso

STOPLIST = frozenset({"no", "yes", "ok", "okay"})
MIN_MESSAGE_LENGTH = 3

KEYWORD_PATTERNS: Dict[str, List[str]] = {
    "visual_style": ["minimalist", "vibrant", "color", "style", "visual", "design"],
    "target_audience": ["audience", "target", "viewer", "people", "user"],
    "mood_tone": ["calm", "inspired", "emotional", "mood", "tone", "feeling"],
    "key_message": ["message", "point", "takeaway", "key", "important"],
}

AUDIENCE_CUES = ("target audience", "who is your audience")
MOOD_CUES = ("mood", "tone", "feeling")


@dataclass(frozen=True, slots=True)
class ScoreRule:
    length_divisor: float
    count_divisor: float
    weight: float = 0.5


SCORING: Dict[str, ScoreRule] = {
    "concept_clarity": ScoreRule(length_divisor=50, count_divisor=3),
    "style_specificity": ScoreRule(length_divisor=20, count_divisor=2),
    "audience_clarity": ScoreRule(length_divisor=2, count_divisor=2),
}


@dataclass(slots=True)
class ExtractedData:
    concept_details: str = ""
    key_messages: List[str] = field(default_factory=list)
    visual_style: str = ""
    target_audience: List[str] = field(default_factory=list)
    mood_tone: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept_details": self.concept_details,
            "key_messages": list(self.key_messages),
            "visual_style": self.visual_style,
            "target_audience": list(self.target_audience),
            "mood_tone": list(self.mood_tone),
        }


@dataclass(slots=True)
class SemanticInfo:
    tags: List[str] = field(default_factory=list)
    key_messages: List[str] = field(default_factory=list)
    target_audience: List[str] = field(default_factory=list)
    mood_tone: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ProcessedConversation:
    """Extractor output persisted alongside the completed conversation."""

    id: str
    session_id: str
    completed_at: Optional[datetime]
    extracted_data: ExtractedData
    semantic_tags: List[str]
    processed_messages: List[Message]
    confidence_scores: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "completed_at": (
                to_iso(self.completed_at) if self.completed_at else None
            ),
            "extracted_data": self.extracted_data.to_dict(),
            "semantic_tags": list(self.semantic_tags),
            "processed_messages": [
                message.to_dict() for message in self.processed_messages
            ],
            "confidence_scores": dict(self.confidence_scores),
        }


def _dedupe(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def filter_messages(messages: Sequence[Message]) -> List[Message]:
    """Drop very short messages and bare acknowledgements."""

    kept: List[Message] = []
    for message in messages:
        content = message.content.strip().lower()
        if len(content) < MIN_MESSAGE_LENGTH or content in STOPLIST:
            continue
        kept.append(message)
    return kept


def extract_semantic_info(messages: Sequence[Message]) -> SemanticInfo:
    info = SemanticInfo()
    for message in messages:
        content = message.content.lower()
        for category, keywords in KEYWORD_PATTERNS.items():
            if not any(keyword in content for keyword in keywords):
                continue
            info.tags.append(category)
            if message.role is not MessageRole.USER:
                continue
            if category == "key_message":
                info.key_messages.append(message.content)
            elif category == "target_audience":
                info.target_audience.append(message.content)
            elif category == "mood_tone":
                info.mood_tone.append(message.content)
    info.tags = _dedupe(info.tags)
    info.key_messages = _dedupe(info.key_messages)
    info.target_audience = _dedupe(info.target_audience)
    info.mood_tone = _dedupe(info.mood_tone)
    return info


def _collect_prompted_answers(
    messages: Sequence[Message],
) -> tuple[List[str], List[str]]:
    audience: List[str] = []
    mood: List[str] = []
    for index, message in enumerate(messages[:-1]):
        if message.role is not MessageRole.ASSISTANT:
            continue
        prompt = message.content.lower()
        answer = messages[index + 1].content
        if any(cue in prompt for cue in AUDIENCE_CUES):
            audience.append(answer)
        elif any(cue in prompt for cue in MOOD_CUES):
            mood.append(answer)
    return audience, mood


def confidence_score(
    rule: ScoreRule,
    *,
    content_length: int,
    match_count: int,
) -> float:
    raw = content_length / rule.length_divisor + match_count / rule.count_divisor
    return min(1.0, raw * rule.weight)


def score_conversation(
    extracted: ExtractedData,
    semantic_tags: Sequence[str],
) -> Dict[str, float]:
    style_tags = sum(1 for tag in semantic_tags if "visual_style" in tag)
    audience_tags = sum(1 for tag in semantic_tags if "target_audience" in tag)
    return {
        "concept_clarity": confidence_score(
            SCORING["concept_clarity"],
            content_length=len(extracted.concept_details),
            match_count=len(extracted.key_messages),
        ),
        "style_specificity": confidence_score(
            SCORING["style_specificity"],
            content_length=len(extracted.visual_style),
            match_count=style_tags,
        ),
        "audience_clarity": confidence_score(
            SCORING["audience_clarity"],
            content_length=len(extracted.target_audience),
            match_count=audience_tags,
        ),
    }


def process_conversation(
    *,
    session_id: str,
    messages: Sequence[Message],
    concept_data: Mapping[str, str],
    completed_at: Optional[datetime] = None,
    record_id: Optional[str] = None,
) -> ProcessedConversation:
    """Run filtering, tagging and scoring over a finished message list."""

    audience, mood = _collect_prompted_answers(messages)
    key_messages = concept_data.get("keyMessages")
    extracted = ExtractedData(
        concept_details=concept_data.get("conceptDetails", ""),
        key_messages=[key_messages] if key_messages else [],
        visual_style=concept_data.get("visualStyle", ""),
        target_audience=audience,
        mood_tone=mood,
    )
    processed_messages = filter_messages(messages)
    semantic = extract_semantic_info(processed_messages)
    if not extracted.key_messages:
        extracted.key_messages = semantic.key_messages
    if not extracted.target_audience:
        extracted.target_audience = semantic.target_audience
    if not extracted.mood_tone:
        extracted.mood_tone = semantic.mood_tone

    return ProcessedConversation(
        id=record_id or session_id,
        session_id=session_id,
        completed_at=completed_at,
        extracted_data=extracted,
        semantic_tags=semantic.tags,
        processed_messages=processed_messages,
        confidence_scores=score_conversation(extracted, semantic.tags),
    )
