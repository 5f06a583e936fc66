"""Conversation state tracking for the guided concept dialog.

The tracker keeps two parallel histories: the display history, which starts
with a synthetic greeting, and the gateway history sent to the text
generation service, which never contains that greeting. After every exchange
it attributes the user's latest answer to a catalog category and watches the
generated reply for the completion marker.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)
from uuid import uuid4

from .catalog import (
    CATEGORY_CATALOG,
    COMPLETION_MARKER,
    CatalogTopic,
    category_index,
    greeting_text,
)
from .prompts import SYSTEM_INSTRUCTION
from .timestamps import normalize_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

SAFETY_ERROR_PATTERN = re.compile(
    r"blocked due to safety settings",
    re.IGNORECASE,
)

# Leading characters of a catalog prompt that must be echoed by the
# assistant for the following answer to be attributed to that topic.
CATEGORY_PREFIX_LENGTH = 20

ANSWER_SEPARATOR = ". "


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def from_string(cls, value: str | None) -> "MessageRole":
        normalized = (value or "").strip().lower()
        if normalized in {"ai", "model", "assistant"}:
            return cls.ASSISTANT
        if normalized == "user":
            return cls.USER
        raise ValueError(f"Unsupported message role: {value}")


def generate_id() -> str:
    return uuid4().hex[:8]


@dataclass(frozen=True, slots=True)
class Message:
    """Immutable chat message."""

    id: str
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def create(cls, content: str, role: MessageRole) -> "Message":
        return cls(id=generate_id(), role=role, content=content)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Message":
        timestamp = normalize_timestamp(payload.get("timestamp")) or utc_now()
        return cls(
            id=str(payload.get("id") or generate_id()),
            role=MessageRole.from_string(str(payload.get("role", ""))),
            content=str(payload.get("content", "")),
            timestamp=timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": to_iso(self.timestamp),
        }


class ConversationState(str, Enum):
    """Lifecycle of a guided dialog."""

    AWAITING_FIRST_INPUT = "awaiting_first_input"
    IN_DIALOG = "in_dialog"
    COMPLETED = "completed"
    SAFETY_BLOCKED = "safety_blocked"


TERMINAL_STATES = frozenset(
    {ConversationState.COMPLETED, ConversationState.SAFETY_BLOCKED}
)


class ConversationClosedError(RuntimeError):
    """Raised when input arrives after the dialog reached a terminal state."""


class ReplyGenerator(Protocol):
    async def reply(
        self,
        history: Sequence[Message],
        system_instruction: str,
    ) -> str: ...


CompletionHook = Callable[[str, List[Message], Dict[str, str]], Awaitable[None]]
CategoryMatcher = Callable[
    [Sequence[Message], Sequence[CatalogTopic]], Optional[str]
]


def match_category(
    history: Sequence[Message],
    catalog: Sequence[CatalogTopic],
) -> Optional[str]:
    """Return the category answered by the last user message, if any.

    ``history`` is the gateway history ending with that user message. The
    first real turn always answers the first catalog topic. Later turns are
    attributed by looking for a catalog prompt prefix, or the category name,
    inside the assistant message that preceded the answer; the first catalog
    entry that matches wins and ``None`` means the turn stays unattributed.
    """

    if not history or not catalog:
        return None
    latest = history[-1]
    if latest.role is not MessageRole.USER:
        return None
    if len(history) == 1:
        return catalog[0].category
    preceding = history[-2]
    if preceding.role is not MessageRole.ASSISTANT:
        return None
    haystack = preceding.content.lower()
    for topic in catalog:
        prefix = topic.text.lower()[:CATEGORY_PREFIX_LENGTH]
        if prefix in haystack or topic.label.lower() in haystack:
            return topic.category
    return None


def merge_answer(existing: Optional[str], answer: str) -> str:
    """Extend the accumulated text for a category with a new answer."""

    if existing:
        return f"{existing}{ANSWER_SEPARATOR}{answer}"
    return answer


def strip_completion_marker(text: str) -> Tuple[str, bool]:
    """Remove every completion marker and report whether one was present."""

    if COMPLETION_MARKER not in text:
        return text, False
    return text.replace(COMPLETION_MARKER, "").strip(), True


def is_safety_rejection(message: str) -> bool:
    return bool(SAFETY_ERROR_PATTERN.search(message))


class ConversationTracker:
    """Single source of truth for one in-progress guided dialog."""

    def __init__(
        self,
        gateway: ReplyGenerator,
        *,
        system_instruction: str = SYSTEM_INSTRUCTION,
        catalog: Sequence[CatalogTopic] | None = None,
        matcher: CategoryMatcher = match_category,
        on_complete: Optional[CompletionHook] = None,
    ) -> None:
        self._gateway = gateway
        self._system_instruction = system_instruction
        self._catalog: List[CatalogTopic] = list(
            catalog if catalog is not None else CATEGORY_CATALOG
        )
        self._matcher = matcher
        self._on_complete = on_complete
        self._session_id = ""
        self._messages: List[Message] = []
        self._gateway_history: List[Message] = []
        self._concept_data: Dict[str, str] = {}
        self._state = ConversationState.AWAITING_FIRST_INPUT
        self._is_typing = False
        self._current_question_index = 0
        self.reset()

    def reset(self) -> None:
        """Start over with a fresh session id and the greeting."""

        self._session_id = generate_id()
        greeting = Message.create(
            greeting_text(self._catalog), MessageRole.ASSISTANT
        )
        self._messages = [greeting]
        self._gateway_history = []
        self._concept_data = {}
        self._state = ConversationState.AWAITING_FIRST_INPUT
        self._is_typing = False
        self._current_question_index = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def messages(self) -> List[Message]:
        """Display history, including the synthetic greeting."""

        return list(self._messages)

    @property
    def gateway_history(self) -> List[Message]:
        """History sent to the generation gateway, without the greeting."""

        return list(self._gateway_history)

    @property
    def concept_data(self) -> Dict[str, str]:
        return dict(self._concept_data)

    @property
    def is_typing(self) -> bool:
        return self._is_typing

    @property
    def completed(self) -> bool:
        return self._state is ConversationState.COMPLETED

    @property
    def safety_blocked(self) -> bool:
        return self._state is ConversationState.SAFETY_BLOCKED

    @property
    def current_question_index(self) -> int:
        return self._current_question_index

    @property
    def progress(self) -> float:
        answered = sum(
            1 for topic in self._catalog if self._concept_data.get(topic.category)
        )
        return answered / len(self._catalog) if self._catalog else 0.0

    async def submit(self, user_text: str) -> Optional[Message]:
        """Record a user answer and return the assistant reply.

        Blank input and input arriving while a reply is outstanding are
        ignored and return ``None``.
        """

        if not user_text.strip() or self._is_typing:
            return None
        if self._state in TERMINAL_STATES:
            raise ConversationClosedError(
                f"Conversation {self._session_id} is {self._state.value}; "
                "start over to continue."
            )

        user_message = Message.create(user_text, MessageRole.USER)
        self._messages.append(user_message)
        self._gateway_history.append(user_message)
        if self._state is ConversationState.AWAITING_FIRST_INPUT:
            self._state = ConversationState.IN_DIALOG

        session_id = self._session_id
        history = list(self._gateway_history)
        self._is_typing = True
        try:
            reply_text = await self._gateway.reply(
                history, self._system_instruction
            )
        except Exception as exc:  # noqa: BLE001 # pylint: disable=broad-except
            if session_id != self._session_id:
                return None
            return self._record_failure(exc)
        finally:
            if session_id == self._session_id:
                self._is_typing = False

        if session_id != self._session_id:
            logger.info("Discarding reply for reset session %s", session_id)
            return None

        self._attribute_answer(history, user_text)

        display_text, finished = strip_completion_marker(reply_text)
        reply = Message.create(display_text, MessageRole.ASSISTANT)
        self._messages.append(reply)
        self._gateway_history.append(reply)

        if finished:
            self._state = ConversationState.COMPLETED
            logger.info("Conversation %s completed", self._session_id)
            await self._notify_completion()
        return reply

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session for API responses."""

        return {
            "sessionId": self._session_id,
            "state": self._state.value,
            "isTyping": self._is_typing,
            "completed": self.completed,
            "safetyBlocked": self.safety_blocked,
            "currentQuestionIndex": self._current_question_index,
            "progress": self.progress,
            "conceptData": dict(self._concept_data),
            "messages": [message.to_dict() for message in self._messages],
        }

    def _attribute_answer(self, history: Sequence[Message], answer: str) -> None:
        category = self._matcher(history, self._catalog)
        if category is None:
            logger.debug("Turn in %s left unattributed", self._session_id)
            return
        self._concept_data[category] = merge_answer(
            self._concept_data.get(category), answer
        )
        index = category_index(category, self._catalog)
        if index >= 0:
            self._current_question_index = index

    def _record_failure(self, exc: Exception) -> Message:
        logger.warning(
            "Failed to get AI response for %s: %s", self._session_id, exc
        )
        detail = str(exc) or "Unknown error"
        error_message = Message.create(
            f"Sorry, I encountered an error: {detail}. Please try again.",
            MessageRole.ASSISTANT,
        )
        self._messages.append(error_message)
        self._gateway_history.append(error_message)
        if is_safety_rejection(detail):
            self._state = ConversationState.SAFETY_BLOCKED
        return error_message

    async def _notify_completion(self) -> None:
        if self._on_complete is None:
            return
        try:
            await self._on_complete(
                self._session_id,
                list(self._messages),
                dict(self._concept_data),
            )
        except Exception:  # noqa: BLE001 # pylint: disable=broad-except
            logger.exception(
                "Failed to persist completed conversation %s",
                self._session_id,
            )
