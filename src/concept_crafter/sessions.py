"""Shared session orchestration for concept crafting dialogs."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from .config import AppSettings
from .conversation import ConversationTracker, Message, ReplyGenerator
from .extractor import ProcessedConversation, process_conversation
from .generation import (
    SummaryGateway,
    TextGenerationGateway,
    shared_client_provider,
)
from .store import ConceptStore, PersistenceError
from .summary_editor import SummaryEditor

logger = logging.getLogger(__name__)


class SummaryNotReadyError(RuntimeError):
    """Raised when a summary is requested before processing finished."""


class ConceptSession:
    """Encapsulates one dialog run from greeting to approved summary."""

    def __init__(
        self,
        *,
        store: ConceptStore,
        chat_gateway: ReplyGenerator,
        summary_gateway: SummaryGateway,
        max_duration_minutes: float,
    ) -> None:
        self.store = store
        self.summary_gateway = summary_gateway
        self.max_duration_minutes = max_duration_minutes
        self.processed: Optional[ProcessedConversation] = None
        self.processing_complete = False
        self.editor: Optional[SummaryEditor] = None
        self.tracker = ConversationTracker(
            chat_gateway,
            on_complete=self._handle_completion,
        )

    @classmethod
    def create(
        cls,
        settings: AppSettings,
        store: Optional[ConceptStore] = None,
    ) -> "ConceptSession":
        provider = shared_client_provider(settings)
        return cls(
            store=store or ConceptStore(settings.output_dir, settings.redis_url),
            chat_gateway=TextGenerationGateway(provider),
            summary_gateway=SummaryGateway(provider),
            max_duration_minutes=settings.max_duration_minutes,
        )

    @property
    def session_id(self) -> str:
        return self.tracker.session_id

    async def send(self, user_text: str) -> Optional[Message]:
        return await self.tracker.submit(user_text)

    async def generate_summary(self) -> SummaryEditor:
        """Summarize the finished dialog and open it for review."""

        if not self.processing_complete:
            raise SummaryNotReadyError(
                "Conversation processing has not finished yet."
            )
        messages: List[Message] = (
            self.processed.processed_messages
            if self.processed and self.processed.processed_messages
            else self.tracker.messages
        )
        summary = await self.summary_gateway.summarize(messages)
        try:
            summary = await asyncio.to_thread(
                self.store.save_summary, self.session_id, summary
            )
        except PersistenceError as exc:
            logger.warning(
                "Draft summary for %s was not saved: %s", self.session_id, exc
            )
        self.editor = SummaryEditor(
            self.session_id,
            summary,
            max_duration_minutes=self.max_duration_minutes,
        )
        return self.editor

    async def save_summary(self) -> bool:
        """Save the reviewed summary; see ``SummaryEditor.save``."""

        if self.editor is None:
            raise SummaryNotReadyError("No summary has been generated yet.")
        return await asyncio.to_thread(self.editor.save, self.store)

    def reset(self) -> None:
        self.tracker.reset()
        self.processed = None
        self.processing_complete = False
        self.editor = None

    def snapshot(self) -> Dict[str, object]:
        data: Dict[str, object] = dict(self.tracker.snapshot())
        data["processingComplete"] = self.processing_complete
        if self.editor is not None:
            data["summary"] = self.editor.summary.to_dict()
            data["durationError"] = self.editor.duration_error
            data["approved"] = self.editor.approved
            data["summaryError"] = self.editor.error
        return data

    async def _handle_completion(
        self,
        session_id: str,
        messages: List[Message],
        concept_data: Dict[str, str],
    ) -> None:
        record = await asyncio.to_thread(
            self.store.save_conversation, session_id, messages, concept_data
        )
        processed = process_conversation(
            session_id=session_id,
            messages=messages,
            concept_data=concept_data,
            completed_at=record.completed_at,
        )
        await asyncio.to_thread(self.store.save_processed, processed)
        if session_id != self.tracker.session_id:
            return
        self.processed = processed
        self.processing_complete = True
        logger.info("Conversation %s processed", session_id)
