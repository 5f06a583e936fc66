from __future__ import annotations

from typing import List

import pytest

from concept_crafter.store import ConceptStore, PersistenceError
from concept_crafter.summary import VideoConceptSummary
from concept_crafter.summary_editor import (
    DURATION_NOT_A_NUMBER,
    DURATION_NOT_POSITIVE,
    DURATION_REQUIRED,
    AddArrayItem,
    AddOutlineItem,
    ListField,
    OutlinePart,
    RemoveArrayItem,
    RemoveOutlineItem,
    ScalarField,
    SetArrayItem,
    SetOutlineItem,
    SetScalar,
    SummaryEditor,
    validate_duration,
)

from conftest import SUMMARY_PAYLOAD


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("0", DURATION_NOT_POSITIVE),
        ("", DURATION_REQUIRED),
        ("   ", DURATION_REQUIRED),
        (None, DURATION_REQUIRED),
        ("-1", DURATION_NOT_POSITIVE),
        ("1.5", "Duration cannot exceed 1 minute."),
        ("1.01", "Duration cannot exceed 1 minute."),
        ("abc", DURATION_NOT_A_NUMBER),
        ("nan", DURATION_NOT_A_NUMBER),
        ("0.5", None),
        ("1", None),
    ],
)
def test_validate_duration(text, expected) -> None:
    assert validate_duration(text) == expected


def test_validate_duration_honours_configured_maximum() -> None:
    assert validate_duration("2", max_minutes=3) is None
    assert validate_duration("4", max_minutes=3) == "Duration cannot exceed 3 minutes."


def _summary(**overrides) -> VideoConceptSummary:
    payload = dict(SUMMARY_PAYLOAD)
    payload.update(overrides)
    return VideoConceptSummary.from_dict(payload)


def test_editor_validates_initial_duration() -> None:
    editor = SummaryEditor(
        "s1",
        _summary(technicalSpecifications={"targetDuration": "3"}),
    )
    assert editor.duration_error == "Duration cannot exceed 1 minute."

    editor.apply(SetScalar(ScalarField.TARGET_DURATION, "0.75"))
    assert editor.duration_error is None


def test_editor_applies_typed_operations() -> None:
    editor = SummaryEditor("s1", _summary())

    editor.apply(SetScalar(ScalarField.VIDEO_TITLE_SUGGESTION, "Hive Minds"))
    editor.apply(SetScalar(ScalarField.VISUAL_MOOD_TONE, "Playful"))
    editor.apply(SetArrayItem(ListField.KEY_MESSAGES, 1, "Plant flowers"))
    editor.apply(AddArrayItem(ListField.IMAGERY_SUGGESTIONS))
    editor.apply(RemoveArrayItem(ListField.KEY_TAKEAWAYS, 0))
    editor.apply(SetOutlineItem(0, OutlinePart.DESCRIPTION, "Aerial shot"))
    editor.apply(AddOutlineItem())
    editor.apply(RemoveOutlineItem(1))

    summary = editor.summary
    assert summary.video_title_suggestion == "Hive Minds"
    assert summary.visual_elements.mood_tone == "Playful"
    assert summary.key_messages == ["Bees are vital", "Plant flowers"]
    assert summary.visual_elements.imagery_suggestions == ["Rooftop hives at dawn", ""]
    assert summary.target_audience.key_takeaways == ["Anyone can help"]
    assert [item.section for item in summary.content_structure_outline] == [
        "Intro",
        "",
    ]
    assert summary.content_structure_outline[0].description == "Aerial shot"


def test_editor_rejects_out_of_range_indexes() -> None:
    editor = SummaryEditor("s1", _summary())

    with pytest.raises(IndexError):
        editor.apply(SetArrayItem(ListField.KEY_MESSAGES, 5, "x"))
    with pytest.raises(IndexError):
        editor.apply(RemoveOutlineItem(-1))


def test_summary_property_returns_a_copy() -> None:
    editor = SummaryEditor("s1", _summary())
    editor.summary.key_messages.append("mutated")

    assert "mutated" not in editor.summary.key_messages


def test_save_blocked_by_invalid_duration(store: ConceptStore) -> None:
    editor = SummaryEditor(
        "s1", _summary(technicalSpecifications={"targetDuration": "5"})
    )

    assert editor.save(store) is False
    assert editor.error == "Duration cannot exceed 1 minute."
    assert not editor.approved
    assert store.get_summary("s1") is None


def test_save_success_replaces_copy_and_approves(store: ConceptStore) -> None:
    editor = SummaryEditor("s1", _summary())

    assert editor.save(store) is True
    assert editor.approved
    assert editor.error is None
    assert editor.summary.saved_at is not None
    assert editor.summary.last_updated_at is not None
    assert editor.summary.session_id == "s1"

    editor.apply(SetScalar(ScalarField.CORE_CONCEPT, "Changed"))
    assert not editor.approved


def test_save_round_trips_blank_items_and_empty_text(store: ConceptStore) -> None:
    editor = SummaryEditor("s1", _summary())
    editor.apply(AddArrayItem(ListField.KEY_MESSAGES))
    editor.apply(SetArrayItem(ListField.KEY_MESSAGES, 2, "  "))
    editor.apply(SetScalar(ScalarField.ADDITIONAL_NOTES, ""))
    editor.apply(AddOutlineItem())

    assert editor.save(store) is True

    for saved in (editor.summary, store.get_summary("s1")):
        assert saved.key_messages == ["Bees are vital", "Start small", "  "]
        assert saved.additional_notes == ""
        assert saved.content_structure_outline[-1].section == ""


class _FailingStore:
    def __init__(self) -> None:
        self.calls: List[str] = []

    def save_summary(self, session_id: str, summary: VideoConceptSummary) -> VideoConceptSummary:
        self.calls.append(session_id)
        raise PersistenceError("archive unavailable")


def test_save_failure_keeps_working_copy() -> None:
    editor = SummaryEditor("s1", _summary())
    editor.apply(SetScalar(ScalarField.CORE_CONCEPT, "Edited concept"))
    failing = _FailingStore()

    assert editor.save(failing) is False
    assert failing.calls == ["s1"]
    assert editor.error is not None and "archive unavailable" in editor.error
    assert not editor.approved
    assert editor.summary.core_concept == "Edited concept"
    assert editor.summary.saved_at is None


def test_apply_all_is_all_or_nothing() -> None:
    editor = SummaryEditor("s1", _summary())

    with pytest.raises(IndexError):
        editor.apply_all(
            [
                SetScalar(ScalarField.CORE_CONCEPT, "Changed"),
                RemoveOutlineItem(5),
            ]
        )

    assert editor.summary.core_concept == SUMMARY_PAYLOAD["coreConcept"]

    editor.apply_all(
        [
            SetScalar(ScalarField.TARGET_DURATION, "9"),
            SetOutlineItem(0, OutlinePart.SECTION, "Opening"),
        ]
    )
    assert editor.duration_error == "Duration cannot exceed 1 minute."
    assert editor.summary.content_structure_outline[0].section == "Opening"
