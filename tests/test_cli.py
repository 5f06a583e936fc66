from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Iterator

import pytest

from concept_crafter.cli import parse_review_command, run_chat, run_cli
from concept_crafter.config import AppSettings
from concept_crafter.records_cli import run_records_cli
from concept_crafter.sessions import ConceptSession
from concept_crafter.store import ConceptStore
from concept_crafter.summary_editor import (
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
)

from conftest import (
    FIVE_TOPIC_ANSWERS,
    FIVE_TOPIC_REPLIES,
    SUMMARY_PAYLOAD,
    ScriptedChatGateway,
    StaticSummaryGateway,
)


def _inputs(*values: str):
    iterator: Iterator[str] = iter(values)
    return lambda _prompt: next(iterator)


def test_render_pdf_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "summary.json"
    source.write_text(json.dumps(SUMMARY_PAYLOAD), encoding="utf-8")

    run_cli(["render-pdf", str(source)])

    output = tmp_path / "rooftop_hives.pdf"
    assert output.read_bytes().startswith(b"%PDF")
    assert str(output) in capsys.readouterr().out


def test_render_pdf_rejects_unreadable_file(tmp_path: Path) -> None:
    source = tmp_path / "summary.json"
    source.write_text("[]", encoding="utf-8")

    with pytest.raises(SystemExit):
        run_cli(["render-pdf", str(source), "-o", str(tmp_path / "x.pdf")])


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        run_cli(["dance"])


def test_records_commands(
    settings: AppSettings,
    store: ConceptStore,
    capsys: pytest.CaptureFixture[str],
) -> None:
    run_records_cli(settings, ["list"], store=store)
    assert "No conversations found." in capsys.readouterr().out

    session = ConceptSession(
        store=store,
        chat_gateway=ScriptedChatGateway(list(FIVE_TOPIC_REPLIES)),
        summary_gateway=StaticSummaryGateway(),
        max_duration_minutes=1.0,
    )
    for answer in FIVE_TOPIC_ANSWERS:
        asyncio.run(session.send(answer))
    asyncio.run(session.generate_summary())

    run_records_cli(settings, ["list"], store=store)
    listing = capsys.readouterr().out
    assert session.session_id in listing
    assert "11 messages | 5 topics" in listing

    run_records_cli(settings, ["show", session.session_id], store=store)
    shown = capsys.readouterr().out
    assert "User: Hopeful and calm" in shown

    run_records_cli(settings, ["summary", session.session_id], store=store)
    assert '"videoTitleSuggestion": "Rooftop Hives"' in capsys.readouterr().out


def test_chat_walkthrough_saves_summary_and_pdf(
    settings: AppSettings,
    store: ConceptStore,
) -> None:
    payload = json.loads(json.dumps(SUMMARY_PAYLOAD))
    payload["technicalSpecifications"]["targetDuration"] = "2"
    session = ConceptSession(
        store=store,
        chat_gateway=ScriptedChatGateway(list(FIVE_TOPIC_REPLIES)),
        summary_gateway=StaticSummaryGateway(payload),
        max_duration_minutes=1.0,
    )
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    summary = asyncio.run(
        run_chat(
            settings,
            session=session,
            input_fn=_inputs(
                *FIVE_TOPIC_ANSWERS,
                "0.5",
                "set coreConcept Bees on rooftops",
                "save",
            ),
        )
    )

    assert summary is not None
    assert summary.core_concept == "Bees on rooftops"
    assert summary.technical_specifications.target_duration == "0.5"
    assert store.get_summary(session.session_id).core_concept == "Bees on rooftops"
    assert (settings.output_dir / "rooftop_hives.pdf").exists()


def test_chat_exit_returns_none(settings: AppSettings, store: ConceptStore) -> None:
    session = ConceptSession(
        store=store,
        chat_gateway=ScriptedChatGateway([]),
        summary_gateway=StaticSummaryGateway(),
        max_duration_minutes=1.0,
    )

    assert asyncio.run(run_chat(settings, session=session, input_fn=_inputs("quit"))) is None


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        ("set coreConcept Bees on rooftops", SetScalar(ScalarField.CORE_CONCEPT, "Bees on rooftops")),
        ("set-item keyMessages 1 Plant flowers", SetArrayItem(ListField.KEY_MESSAGES, 1, "Plant flowers")),
        ("add targetAudience.keyTakeaways", AddArrayItem(ListField.KEY_TAKEAWAYS)),
        ("remove visualElements.imagerySuggestions 0", RemoveArrayItem(ListField.IMAGERY_SUGGESTIONS, 0)),
        ("outline add", AddOutlineItem()),
        ("outline remove 2", RemoveOutlineItem(2)),
        ("outline set 0 description Wide skyline shot", SetOutlineItem(0, OutlinePart.DESCRIPTION, "Wide skyline shot")),
    ],
)
def test_parse_review_command(command: str, expected) -> None:
    assert parse_review_command(command) == expected


@pytest.mark.parametrize(
    "command",
    ["set coreConcept", "set nope value", "add nope", "remove keyMessages x", "outline set 0 title x", "dance"],
)
def test_parse_review_command_rejects_malformed_input(command: str) -> None:
    with pytest.raises(ValueError):
        parse_review_command(command)


def test_chat_review_edits_lists_and_outline(
    settings: AppSettings,
    store: ConceptStore,
    capsys: pytest.CaptureFixture[str],
) -> None:
    session = ConceptSession(
        store=store,
        chat_gateway=ScriptedChatGateway(list(FIVE_TOPIC_REPLIES)),
        summary_gateway=StaticSummaryGateway(),
        max_duration_minutes=1.0,
    )
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    summary = asyncio.run(
        run_chat(
            settings,
            session=session,
            input_fn=_inputs(
                *FIVE_TOPIC_ANSWERS,
                "add keyMessages",
                "set-item keyMessages 2 Plant wildflowers",
                "remove keyMessages 9",
                "outline add",
                "outline set 2 section Outro",
                "remove targetAudience.keyTakeaways 0",
                "save",
            ),
        )
    )

    assert summary is not None
    assert summary.key_messages == ["Bees are vital", "Start small", "Plant wildflowers"]
    assert summary.content_structure_outline[2].section == "Outro"
    assert summary.target_audience.key_takeaways == ["Anyone can help"]
    assert "out of range" in capsys.readouterr().out
    stored = store.get_summary(session.session_id)
    assert stored.key_messages == summary.key_messages
