from __future__ import annotations

import asyncio

import pytest

from concept_crafter.config import AppSettings
from concept_crafter.conversation import Message, MessageRole
from concept_crafter.generation import (
    EMPTY_REPLY_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    INVALID_KEY_MESSAGE,
    SAFETY_BLOCKED_MESSAGE,
    GenerationError,
    SummaryFormatError,
    SummaryGateway,
    TextGenerationGateway,
    describe_upstream_failure,
    format_transcript,
    parse_summary_json,
    shared_client_provider,
)
from concept_crafter.maf_client import GatewayNotConfiguredError
from concept_crafter.prompts import FIRST_TURN_PROMPT
from concept_crafter.summary import NOT_SPECIFIED

from conftest import FakeChatClient


def test_reply_sends_system_instruction_and_history() -> None:
    client = FakeChatClient("Who is the target audience?")
    gateway = TextGenerationGateway(lambda: client)
    history = [
        Message.create("Bees", MessageRole.USER),
        Message.create("Nice. What style?", MessageRole.ASSISTANT),
        Message.create("Vibrant", MessageRole.USER),
    ]

    reply = asyncio.run(gateway.reply(history, "Be helpful"))

    assert reply == "Who is the target audience?"
    sent = client.requests[0]
    assert [(message.role, message.content) for message in sent] == [
        ("system", "Be helpful"),
        ("user", "Bees"),
        ("assistant", "Nice. What style?"),
        ("user", "Vibrant"),
    ]


def test_empty_history_asks_for_first_question() -> None:
    client = FakeChatClient("What's your idea?")
    gateway = TextGenerationGateway(lambda: client)

    asyncio.run(gateway.reply([], "Be helpful"))

    assert client.requests[0][-1].content == FIRST_TURN_PROMPT


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (RuntimeError("Candidate was blocked: SAFETY"), SAFETY_BLOCKED_MESSAGE),
        (RuntimeError("API key not valid. Please pass a valid key"), INVALID_KEY_MESSAGE),
        (RuntimeError("connection reset"), GENERIC_FAILURE_MESSAGE),
    ],
)
def test_upstream_failures_are_mapped(error: Exception, expected: str) -> None:
    assert describe_upstream_failure(error) == expected
    gateway = TextGenerationGateway(lambda: FakeChatClient(error))

    with pytest.raises(GenerationError, match=expected.split(".")[0]):
        asyncio.run(gateway.reply([], "x"))


def test_empty_reply_is_an_error() -> None:
    gateway = TextGenerationGateway(lambda: FakeChatClient("   "))

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(gateway.reply([], "x"))
    assert str(excinfo.value) == EMPTY_REPLY_MESSAGE


def test_missing_credentials_are_reported(settings: AppSettings) -> None:
    gateway = TextGenerationGateway(shared_client_provider(settings))

    with pytest.raises(GatewayNotConfiguredError, match="API key not available"):
        asyncio.run(gateway.reply([], "x"))


def test_summary_prompt_contains_transcript() -> None:
    client = FakeChatClient('{"videoTitleSuggestion": "Bees"}')
    gateway = SummaryGateway(lambda: client)
    messages = [
        Message.create("What's the idea?", MessageRole.ASSISTANT),
        Message.create("Bees", MessageRole.USER),
    ]

    summary = asyncio.run(gateway.summarize(messages))

    prompt = client.requests[0][0].content
    assert "AI: What's the idea?\nUser: Bees" in prompt
    assert summary.video_title_suggestion == "Bees"
    assert summary.core_concept == NOT_SPECIFIED
    assert summary.key_messages == []


def test_summary_rejects_empty_messages() -> None:
    gateway = SummaryGateway(lambda: FakeChatClient("{}"))

    with pytest.raises(ValueError):
        asyncio.run(gateway.summarize([]))


def test_parse_summary_json_strips_fences() -> None:
    assert parse_summary_json('```json\n{"coreConcept": "Bees"}\n```') == {
        "coreConcept": "Bees"
    }
    assert parse_summary_json('```\n{"a": 1}\n```') == {"a": 1}


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "```json\n```"])
def test_parse_summary_json_rejects_non_objects(raw: str) -> None:
    with pytest.raises(SummaryFormatError):
        parse_summary_json(raw)


def test_format_transcript_labels_speakers() -> None:
    messages = [
        Message.create("Hello", MessageRole.ASSISTANT),
        Message.create("Hi", MessageRole.USER),
    ]
    assert format_transcript(messages) == "AI: Hello\nUser: Hi"
