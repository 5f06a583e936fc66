"""Gateways that forward dialog and summary requests to the chat model."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Sequence, cast

from .config import AppSettings
from .conversation import Message, MessageRole
from .maf_client import (
    ChatMessage,
    GatewayNotConfiguredError,
    MAFChatClient,
    get_shared_client,
)
from .prompts import FIRST_TURN_PROMPT, build_summary_prompt
from .summary import VideoConceptSummary

logger = logging.getLogger(__name__)

SAFETY_BLOCKED_MESSAGE = (
    "Response blocked due to safety settings. Please rephrase your input."
)
INVALID_KEY_MESSAGE = "Invalid API Key. Please check server configuration."
GENERIC_FAILURE_MESSAGE = (
    "Failed to get response from LLM. Please try again later."
)
EMPTY_REPLY_MESSAGE = (
    "AI model did not return a response. It might have been blocked."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", re.DOTALL)

ClientProvider = Callable[[], MAFChatClient]


class GenerationError(RuntimeError):
    """Raised when the upstream model call fails."""


class SummaryFormatError(ValueError):
    """Raised when the summary reply is not a JSON object."""


def shared_client_provider(settings: AppSettings) -> ClientProvider:
    """Bind the process-wide client to ``settings`` for lazy creation."""

    def _provider() -> MAFChatClient:
        return get_shared_client(settings)

    return _provider


def describe_upstream_failure(exc: BaseException) -> str:
    """Map a provider exception onto the message shown to callers."""

    text = str(exc).lower()
    if "safety" in text:
        return SAFETY_BLOCKED_MESSAGE
    if "api key not valid" in text or "invalid api key" in text:
        return INVALID_KEY_MESSAGE
    return GENERIC_FAILURE_MESSAGE


def to_chat_messages(history: Sequence[Message]) -> List[ChatMessage]:
    return [
        ChatMessage(
            role="assistant" if message.role is MessageRole.ASSISTANT else "user",
            content=message.content,
        )
        for message in history
    ]


def format_transcript(messages: Sequence[Message]) -> str:
    lines: List[str] = []
    for message in messages:
        speaker = "AI" if message.role is MessageRole.ASSISTANT else "User"
        lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


class TextGenerationGateway:
    """Forwards a message history plus system instruction to the model."""

    def __init__(self, client_provider: ClientProvider) -> None:
        self._client_provider = client_provider

    async def reply(
        self,
        history: Sequence[Message],
        system_instruction: str,
    ) -> str:
        client = self._client_provider()
        payload: List[ChatMessage] = [
            ChatMessage(role="system", content=system_instruction)
        ]
        if history:
            payload.extend(to_chat_messages(history))
        else:
            payload.append(ChatMessage(role="user", content=FIRST_TURN_PROMPT))
        try:
            response = await client.complete(payload)
        except GatewayNotConfiguredError:
            raise
        except Exception as exc:  # noqa: BLE001 # pylint: disable=broad-except
            logger.exception("Error calling the chat model")
            raise GenerationError(describe_upstream_failure(exc)) from exc
        text = response.content
        if not text.strip():
            logger.warning("Chat model returned an empty reply")
            raise GenerationError(EMPTY_REPLY_MESSAGE)
        return text


class SummaryGateway:
    """Requests a structured JSON summary for a finished transcript."""

    def __init__(self, client_provider: ClientProvider) -> None:
        self._client_provider = client_provider

    async def summarize(
        self,
        messages: Sequence[Message],
    ) -> VideoConceptSummary:
        if not messages:
            raise ValueError("Invalid or empty messages array provided.")
        client = self._client_provider()
        prompt = build_summary_prompt(format_transcript(messages))
        try:
            response = await client.complete(
                [ChatMessage(role="user", content=prompt)]
            )
        except GatewayNotConfiguredError:
            raise
        except Exception as exc:  # noqa: BLE001 # pylint: disable=broad-except
            logger.exception("Error generating summary with the chat model")
            message = "Failed to generate video concept summary."
            if "safety" in str(exc).lower():
                message = "Content blocked due to safety settings."
            raise GenerationError(message) from exc
        payload = parse_summary_json(response.content)
        return VideoConceptSummary.from_dict(payload)


def parse_summary_json(raw: str) -> Dict[str, Any]:
    """Decode the model reply, tolerating a surrounding markdown fence."""

    text = raw.strip()
    fence = _FENCE_RE.match(text)
    if fence:
        text = fence.group("body")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SummaryFormatError(
            f"Summary reply is not valid JSON: {exc.msg}"
        ) from exc
    if not isinstance(payload, dict):
        raise SummaryFormatError("Summary reply is not a JSON object.")
    return cast(Dict[str, Any], payload)
