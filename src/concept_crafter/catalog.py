"""Ordered topic catalog walked through by the guided dialog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

COMPLETION_MARKER = "[CONVERSATION_COMPLETE]"

GREETING = (
    "Hi there! I'm your concept generation assistant. I'll help you develop "
    "your video idea by asking a few questions. Let's get started!"
)


@dataclass(frozen=True, slots=True)
class CatalogTopic:
    """Represents a single topic the dialog collects an answer for."""

    id: str
    text: str
    category: str

    @property
    def label(self) -> str:
        """Category key with separators replaced by spaces."""

        return self.category.replace("_", " ")


CATEGORY_CATALOG: List[CatalogTopic] = [
    CatalogTopic(
        id="concept-main",
        text=(
            "What's the main concept or idea you'd like to develop into "
            "a video?"
        ),
        category="conceptDetails",
    ),
    CatalogTopic(
        id="visual-style",
        text=(
            "How would you describe the visual style you're looking for? "
            "(e.g., minimalist, vibrant, corporate, artistic)"
        ),
        category="visualStyle",
    ),
    CatalogTopic(
        id="target-audience",
        text="Who is the target audience for this video?",
        category="targetAudience",
    ),
    CatalogTopic(
        id="key-messages",
        text="What are the key messages or points you want to communicate?",
        category="keyMessages",
    ),
    CatalogTopic(
        id="mood-tone",
        text="What mood or emotional tone should the video have?",
        category="moodTone",
    ),
]


def greeting_text(catalog: List[CatalogTopic] | None = None) -> str:
    """Return the synthetic opening message shown before the first answer."""

    topics = catalog if catalog is not None else CATEGORY_CATALOG
    return f"{GREETING} {topics[0].text}"


def category_index(category: str, catalog: List[CatalogTopic] | None = None) -> int:
    """Return the catalog position of ``category`` or ``-1`` when unknown."""

    topics = catalog if catalog is not None else CATEGORY_CATALOG
    for index, topic in enumerate(topics):
        if topic.category == category:
            return index
    return -1
