from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from concept_crafter.conversation import Message, MessageRole
from concept_crafter.extractor import process_conversation
from concept_crafter.store import (
    COMPLETED_CONVERSATIONS,
    SUMMARIZED_CONVERSATIONS,
    ConceptStore,
    PersistenceError,
)
from concept_crafter.summary import VideoConceptSummary

from conftest import SUMMARY_PAYLOAD


def _messages() -> list[Message]:
    return [
        Message.create("What's the main concept?", MessageRole.ASSISTANT),
        Message.create("Rooftop bees", MessageRole.USER),
    ]


def test_save_and_reload_conversation(store: ConceptStore) -> None:
    record = store.save_conversation(
        "sess1", _messages(), {"conceptDetails": "Rooftop bees"}
    )

    loaded = store.get_conversation("sess1")

    assert loaded is not None
    assert loaded.session_id == "sess1"
    assert [message.content for message in loaded.messages] == [
        "What's the main concept?",
        "Rooftop bees",
    ]
    assert loaded.messages[0].role is MessageRole.ASSISTANT
    assert loaded.concept_data == {"conceptDetails": "Rooftop bees"}
    assert loaded.completed_at == record.completed_at
    assert loaded.completed_at is not None
    assert loaded.completed_at.tzinfo is not None


def test_unknown_records_return_none(store: ConceptStore) -> None:
    assert store.get_conversation("missing") is None
    assert store.get_summary("missing") is None
    assert store.get_processed("missing") is None


def test_latest_write_wins_and_listing_is_newest_first(store: ConceptStore) -> None:
    store.save_conversation("a", _messages(), {"conceptDetails": "first"})
    store.save_conversation("b", _messages(), {})
    store.save_conversation("a", _messages(), {"conceptDetails": "second"})

    assert store.get_conversation("a").concept_data["conceptDetails"] == "second"
    listed = store.list_conversations(limit=10)
    assert [record.session_id for record in listed] == ["a", "b"]
    assert len(store.list_conversations(limit=1)) == 1


def test_summary_round_trip_advances_last_updated(store: ConceptStore) -> None:
    summary = VideoConceptSummary.from_dict(SUMMARY_PAYLOAD)

    first = store.save_summary("sess1", summary)
    second = store.save_summary("sess1", first)

    assert first.session_id == "sess1"
    assert first.saved_at is not None
    assert second.saved_at == first.saved_at
    assert second.last_updated_at > first.last_updated_at
    assert second.video_title_suggestion == "Rooftop Hives"
    assert second.to_dict()["technicalSpecifications"]["targetDuration"] == "1"


def test_save_summary_keeps_stored_saved_at_when_payload_has_none(
    store: ConceptStore,
) -> None:
    first = store.save_summary("sess1", VideoConceptSummary.from_dict(SUMMARY_PAYLOAD))

    again = store.save_summary(
        "sess1", VideoConceptSummary.from_dict(SUMMARY_PAYLOAD)
    )

    assert again.saved_at == first.saved_at


def test_save_summary_preserves_client_saved_at(store: ConceptStore) -> None:
    payload = dict(SUMMARY_PAYLOAD, savedAt={"_seconds": 1700000000, "_nanoseconds": 0})

    stored = store.save_summary("sess1", VideoConceptSummary.from_dict(payload))

    assert stored.saved_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_processed_record_is_persisted(store: ConceptStore) -> None:
    processed = process_conversation(
        session_id="sess1",
        messages=_messages(),
        concept_data={"conceptDetails": "Rooftop bees"},
    )

    store.save_processed(processed)

    payload = store.get_processed("sess1")
    assert payload is not None
    assert payload["session_id"] == "sess1"
    assert payload["extracted_data"]["concept_details"] == "Rooftop bees"


def test_archive_is_jsonl_with_metadata(store: ConceptStore) -> None:
    store.save_summary("sess1", VideoConceptSummary.from_dict(SUMMARY_PAYLOAD))

    path = store.archive_dir / f"{SUMMARIZED_CONVERSATIONS}.jsonl"
    lines = path.read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[0])

    assert entry["_meta"]["collection"] == SUMMARIZED_CONVERSATIONS
    assert entry["_meta"]["id"] == "sess1"
    assert entry["record"]["sessionId"] == "sess1"


def test_malformed_archive_lines_are_skipped(store: ConceptStore) -> None:
    path = store.archive_dir / f"{COMPLETED_CONVERSATIONS}.jsonl"
    path.write_text("not json\n\n", encoding="utf-8")
    store.save_conversation("sess1", _messages(), {})

    assert store.get_conversation("sess1") is not None


def test_archive_write_failure_raises_persistence_error(tmp_path: Path) -> None:
    store = ConceptStore(tmp_path / "archive", None)
    (store.archive_dir / f"{COMPLETED_CONVERSATIONS}.jsonl").mkdir()

    with pytest.raises(PersistenceError):
        store.save_conversation("sess1", _messages(), {})
