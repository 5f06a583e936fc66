from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import pytest

from concept_crafter.config import AppSettings
from concept_crafter.conversation import Message
from concept_crafter.maf_client import ChatMessage, reset_shared_client
from concept_crafter.store import ConceptStore
from concept_crafter.summary import VideoConceptSummary

COMPLETION_REPLY = (
    "Thank you! I have everything I need for your concept. "
    "[CONVERSATION_COMPLETE]"
)

FIVE_TOPIC_REPLIES = [
    "Great concept! How would you describe the visual style you're looking for?",
    "Lovely. Who is the target audience for this video?",
    "What are the key messages or points you want to communicate?",
    "What mood or emotional tone should the video have?",
    COMPLETION_REPLY,
]

FIVE_TOPIC_ANSWERS = [
    "A short film about urban beekeeping",
    "Bright and vibrant with lots of close-ups",
    "City dwellers aged 25 to 40",
    "Bees are vital and anyone can help them",
    "Hopeful and calm",
]

SUMMARY_PAYLOAD: Dict[str, Any] = {
    "videoTitleSuggestion": "Rooftop Hives",
    "coreConcept": "Urban beekeeping as a community effort",
    "targetAudience": {
        "description": "City dwellers aged 25 to 40",
        "keyTakeaways": ["Bees matter", "Anyone can help"],
    },
    "keyMessages": ["Bees are vital", "Start small"],
    "visualElements": {
        "style": "Vibrant",
        "moodTone": "Hopeful",
        "imagerySuggestions": ["Rooftop hives at dawn"],
        "colorPalette": "Honey yellow and green",
    },
    "contentStructureOutline": [
        {"section": "Intro", "description": "Skyline and buzzing"},
        {"section": "Call to action", "description": "Plant wildflowers"},
    ],
    "technicalSpecifications": {
        "resolution": "1920x1080",
        "aspectRatio": "16:9",
        "targetDuration": "1",
    },
    "additionalNotes": "Use natural sound",
}

Scripted = Union[str, Exception]


class ScriptedChatGateway:
    """Returns canned replies in order and records each history it sees."""

    def __init__(self, replies: Sequence[Scripted]) -> None:
        self.replies: List[Scripted] = list(replies)
        self.histories: List[List[Message]] = []
        self.instructions: List[str] = []

    async def reply(self, history: Sequence[Message], system_instruction: str) -> str:
        self.histories.append(list(history))
        self.instructions.append(system_instruction)
        item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StaticSummaryGateway:
    def __init__(self, payload: Dict[str, Any] | None = None) -> None:
        self.payload = payload or SUMMARY_PAYLOAD
        self.calls: List[List[Message]] = []

    async def summarize(self, messages: Sequence[Message]) -> VideoConceptSummary:
        if not messages:
            raise ValueError("Invalid or empty messages array provided.")
        self.calls.append(list(messages))
        return VideoConceptSummary.from_dict(self.payload)


class FakeChatClient:
    """Stands in for ``MAFChatClient`` inside the generation gateways."""

    def __init__(self, reply: Scripted = "") -> None:
        self.reply = reply
        self.requests: List[List[ChatMessage]] = []

    async def complete(self, messages: Sequence[ChatMessage]) -> ChatMessage:
        self.requests.append(list(messages))
        if isinstance(self.reply, Exception):
            raise self.reply
        return ChatMessage(role="assistant", content=self.reply)


@pytest.fixture(autouse=True)
def _isolated_shared_client():
    reset_shared_client()
    yield
    reset_shared_client()


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(model=None, output_dir=tmp_path / "outputs", redis_url=None)


@pytest.fixture
def store(tmp_path: Path) -> ConceptStore:
    return ConceptStore(tmp_path / "archive", None)
