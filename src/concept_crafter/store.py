"""Document persistence for completed conversations and their summaries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, cast

import redis
from redis import Redis
from redis.exceptions import RedisError

from .conversation import Message
from .extractor import ProcessedConversation
from .summary import VideoConceptSummary
from .timestamps import normalize_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

COMPLETED_CONVERSATIONS = "completed_conversations"
PROCESSED_CONVERSATIONS = "processed_conversations"
SUMMARIZED_CONVERSATIONS = "summarized_conversations"


class PersistenceError(RuntimeError):
    """Raised when a record cannot be written to the archive."""


@dataclass(slots=True)
class ConversationRecord:
    """Completed conversation as read back from storage."""

    session_id: str
    messages: List[Message]
    concept_data: Dict[str, str]
    completed_at: Optional[datetime]

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConversationRecord":
        messages_raw = payload.get("messages")
        messages: List[Message] = []
        if isinstance(messages_raw, list):
            for entry in cast(List[Any], messages_raw):
                if isinstance(entry, Mapping):
                    messages.append(Message.from_dict(entry))
        concept_raw = payload.get("conceptData")
        concept_data: Dict[str, str] = {}
        if isinstance(concept_raw, Mapping):
            concept_data = {
                str(key): str(value) for key, value in concept_raw.items()
            }
        return cls(
            session_id=str(payload.get("sessionId", "")),
            messages=messages,
            concept_data=concept_data,
            completed_at=normalize_timestamp(payload.get("completedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "messages": [message.to_dict() for message in self.messages],
            "conceptData": dict(self.concept_data),
            "completedAt": (
                to_iso(self.completed_at) if self.completed_at else None
            ),
        }


class ConceptStore:
    """Keyed document collections kept in JSONL archives and mirrored to Redis.

    Each collection is an append-only JSONL file where the latest line for a
    session id wins. When a Redis URL is configured every write is mirrored
    to ``<collection>:<session_id>`` and indexed in ``<collection>:index``;
    reads prefer Redis and fall back to the archive.
    """

    def __init__(self, archive_dir: Path, redis_url: Optional[str]) -> None:
        self._archive_dir = Path(archive_dir)
        self._archive_dir.mkdir(parents=True, exist_ok=True)
        self._redis_url = redis_url
        self._redis: Optional[Redis] = None

    @property
    def archive_dir(self) -> Path:
        return self._archive_dir

    def _get_redis(self) -> Optional[Redis]:
        if not self._redis_url:
            return None
        if self._redis is None:
            try:
                self._redis = redis.from_url(  # type: ignore[call-overload]
                    self._redis_url,
                    decode_responses=True,
                )
            except RedisError as exc:  # pragma: no cover - network guarded
                logger.warning("Redis connection failed: %s", exc)
                self._redis = None
        return self._redis

    def save_conversation(
        self,
        session_id: str,
        messages: Sequence[Message],
        concept_data: Mapping[str, str],
    ) -> ConversationRecord:
        """Store a finished conversation, stamping its completion time."""

        record = ConversationRecord(
            session_id=session_id,
            messages=list(messages),
            concept_data=dict(concept_data),
            completed_at=utc_now(),
        )
        self._write(COMPLETED_CONVERSATIONS, session_id, record.to_dict())
        logger.info("Conversation %s saved", session_id)
        return record

    def get_conversation(self, session_id: str) -> Optional[ConversationRecord]:
        payload = self._read(COMPLETED_CONVERSATIONS, session_id)
        if payload is None:
            return None
        return ConversationRecord.from_dict(payload)

    def list_conversations(self, *, limit: int = 10) -> List[ConversationRecord]:
        records = [
            ConversationRecord.from_dict(payload)
            for payload in self._latest_records(COMPLETED_CONVERSATIONS).values()
        ]
        records.sort(
            key=lambda record: record.completed_at or datetime.min.replace(
                tzinfo=utc_now().tzinfo
            ),
            reverse=True,
        )
        return records[:limit]

    def save_processed(self, processed: ProcessedConversation) -> None:
        self._write(
            PROCESSED_CONVERSATIONS,
            processed.session_id,
            processed.to_dict(),
        )

    def get_processed(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._read(PROCESSED_CONVERSATIONS, session_id)

    def save_summary(
        self,
        session_id: str,
        summary: VideoConceptSummary,
    ) -> VideoConceptSummary:
        """Upsert a summary and return the canonical stored copy.

        ``savedAt`` is kept from the incoming summary or the stored record
        and only assigned on first write; ``lastUpdatedAt`` is refreshed on
        every save and always moves forward.
        """

        existing = self.get_summary(session_id)
        now = utc_now()
        previous_update = existing.last_updated_at if existing else None
        if previous_update is not None and now <= previous_update:
            now = previous_update + timedelta(microseconds=1)
        saved_at = summary.saved_at
        if saved_at is None and existing is not None:
            saved_at = existing.saved_at
        record = summary.copy()
        record.session_id = session_id
        record.saved_at = saved_at or now
        record.last_updated_at = now
        self._write(SUMMARIZED_CONVERSATIONS, session_id, record.to_dict())
        logger.info("Summary for session %s saved", session_id)
        stored = self.get_summary(session_id)
        return stored if stored is not None else record

    def get_summary(self, session_id: str) -> Optional[VideoConceptSummary]:
        payload = self._read(SUMMARIZED_CONVERSATIONS, session_id)
        if payload is None:
            return None
        return VideoConceptSummary.from_dict(payload, fill_defaults=False)

    def _archive_path(self, collection: str) -> Path:
        return self._archive_dir / f"{collection}.jsonl"

    def _write(
        self,
        collection: str,
        session_id: str,
        record: Dict[str, Any],
    ) -> None:
        entry = {
            "_meta": {
                "collection": collection,
                "id": session_id,
                "ts": to_iso(utc_now()),
            },
            "record": record,
        }
        try:
            with self._archive_path(collection).open(
                "a", encoding="utf-8"
            ) as handle:
                handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise PersistenceError(
                f"Unable to write {collection} record for {session_id}"
            ) from exc

        client = self._get_redis()
        if not client:
            return
        key = f"{collection}:{session_id}"
        try:
            client.set(key, json.dumps(record, ensure_ascii=False))
            client.zadd(
                f"{collection}:index",
                {session_id: utc_now().timestamp()},
            )
        except RedisError as exc:  # pragma: no cover - best effort
            logger.warning("Redis persistence failed for %s: %s", key, exc)

    def _read(self, collection: str, session_id: str) -> Optional[Dict[str, Any]]:
        client = self._get_redis()
        if client:
            key = f"{collection}:{session_id}"
            try:
                raw_value = client.get(key)
            except RedisError as exc:  # pragma: no cover - best effort
                logger.warning("Redis lookup failed for %s: %s", key, exc)
                raw_value = None
            if raw_value:
                record = self._decode(raw_value)
                if record is not None:
                    return record
        return self._latest_records(collection).get(session_id)

    @staticmethod
    def _decode(raw_value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(raw_value, bytes):
            raw_value = raw_value.decode("utf-8")
        try:
            payload = json.loads(str(raw_value))
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return cast(Dict[str, Any], payload)

    def _latest_records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        latest: Dict[str, Dict[str, Any]] = {}
        for record_id, record in self._iter_archive(collection):
            latest[record_id] = record
        return latest

    def _iter_archive(
        self,
        collection: str,
    ) -> Iterator[tuple[str, Dict[str, Any]]]:
        path = self._archive_path(collection)
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    entry = json.loads(stripped)
                except json.JSONDecodeError:
                    logger.warning(
                        "Skipping malformed line %s in %s", line_number, path
                    )
                    continue
                meta = entry.get("_meta") if isinstance(entry, dict) else None
                record = entry.get("record") if isinstance(entry, dict) else None
                if not isinstance(meta, dict) or not isinstance(record, dict):
                    continue
                record_id = meta.get("id")
                if record_id:
                    yield str(record_id), cast(Dict[str, Any], record)
