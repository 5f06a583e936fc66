"""Command line entry-point for Concept Crafter."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

from .config import AppSettings
from .conversation import ConversationClosedError
from .generation import GenerationError, SummaryFormatError
from .maf_client import GatewayNotConfiguredError
from .pdf_renderer import PDFRenderError, SummaryPDFRenderer, safe_filename
from .records_cli import run_records_cli
from .sessions import ConceptSession
from .summary import VideoConceptSummary
from .summary_editor import (
    AddArrayItem,
    AddOutlineItem,
    EditOperation,
    ListField,
    OutlinePart,
    RemoveArrayItem,
    RemoveOutlineItem,
    ScalarField,
    SetArrayItem,
    SetOutlineItem,
    SetScalar,
    SummaryEditor,
)

logger = logging.getLogger(__name__)

EXIT_TOKENS = {"exit", "quit", "q"}

InputFn = Callable[[str], str]


async def run_chat(
    settings: AppSettings,
    *,
    session: Optional[ConceptSession] = None,
    input_fn: InputFn = input,
) -> Optional[VideoConceptSummary]:
    """Run the guided dialog in the terminal and review the summary.

    Returns the approved summary, or ``None`` when the user leaves early.
    """

    session = session or ConceptSession.create(settings)
    print()
    print(f"AI: {session.tracker.messages[0].content}")
    while not session.tracker.completed:
        answer = input_fn("You: ")
        if answer.strip().lower() in EXIT_TOKENS:
            return None
        try:
            reply = await session.send(answer)
        except ConversationClosedError as exc:
            print(str(exc))
            return None
        if reply is None:
            continue
        print()
        print(f"AI: {reply.content}")
        if session.tracker.safety_blocked:
            choice = input_fn("Start a new conversation? [y/N]: ")
            if choice.strip().lower() not in {"y", "yes"}:
                return None
            session.reset()
            print()
            print(f"AI: {session.tracker.messages[0].content}")

    if not session.processing_complete:
        print("The conversation could not be saved; no summary is available.")
        return None

    print()
    print("Generating your video concept summary...")
    try:
        editor = await session.generate_summary()
    except (
        GatewayNotConfiguredError,
        GenerationError,
        SummaryFormatError,
    ) as exc:
        print(f"Failed to generate summary: {exc}")
        return None
    return _review_summary(editor, session, settings, input_fn)


REVIEW_HELP = """Commands:
  set <field> <value>                            replace a text field
  set-item <list> <index> <value>                replace a list item
  add <list>                                     append an empty list item
  remove <list> <index>                          delete a list item
  outline set <index> section|description <value>
  outline add                                    append an empty outline entry
  outline remove <index>
  show, save, quit
Indexes start at 0."""


def _parse_index(text: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"Not an index: {text}") from exc


def _parse_list_field(text: str) -> ListField:
    try:
        return ListField(text)
    except ValueError as exc:
        raise ValueError(f"Unknown list: {text}") from exc


def parse_review_command(command: str) -> EditOperation:
    """Translate one review command into an edit operation.

    Raises ``ValueError`` with a user-facing message for malformed input.
    """

    verb, _, rest = command.strip().partition(" ")
    verb = verb.lower()
    if verb == "set":
        parts = rest.split(maxsplit=1)
        if len(parts) < 2:
            raise ValueError("Usage: set <field> <value>")
        try:
            field = ScalarField(parts[0])
        except ValueError as exc:
            raise ValueError(f"Unknown field: {parts[0]}") from exc
        return SetScalar(field, parts[1])
    if verb == "set-item":
        parts = rest.split(maxsplit=2)
        if len(parts) < 3:
            raise ValueError("Usage: set-item <list> <index> <value>")
        return SetArrayItem(
            _parse_list_field(parts[0]), _parse_index(parts[1]), parts[2]
        )
    if verb == "add":
        if not rest.strip():
            raise ValueError("Usage: add <list>")
        return AddArrayItem(_parse_list_field(rest.strip()))
    if verb == "remove":
        parts = rest.split()
        if len(parts) != 2:
            raise ValueError("Usage: remove <list> <index>")
        return RemoveArrayItem(_parse_list_field(parts[0]), _parse_index(parts[1]))
    if verb == "outline":
        parts = rest.split(maxsplit=3)
        action = parts[0].lower() if parts else ""
        if action == "add" and len(parts) == 1:
            return AddOutlineItem()
        if action == "remove" and len(parts) == 2:
            return RemoveOutlineItem(_parse_index(parts[1]))
        if action == "set" and len(parts) == 4:
            try:
                part = OutlinePart(parts[2].lower())
            except ValueError as exc:
                raise ValueError(f"Unknown outline part: {parts[2]}") from exc
            return SetOutlineItem(_parse_index(parts[1]), part, parts[3])
        raise ValueError(
            "Usage: outline add | outline remove <index> | "
            "outline set <index> section|description <value>"
        )
    raise ValueError("Unrecognized command.")


def _review_summary(
    editor: SummaryEditor,
    session: ConceptSession,
    settings: AppSettings,
    input_fn: InputFn,
) -> Optional[VideoConceptSummary]:
    _print_summary(editor.summary)
    print()
    print(REVIEW_HELP)
    print("Fields: " + ", ".join(field.value for field in ScalarField))
    print("Lists: " + ", ".join(field.value for field in ListField))
    while True:
        if editor.duration_error:
            print(f"\n{editor.duration_error}")
            duration = input_fn(
                "Target duration in minutes "
                f"(max {settings.max_duration_minutes:g}): "
            )
            if duration.strip().lower() in EXIT_TOKENS:
                return None
            editor.apply(SetScalar(ScalarField.TARGET_DURATION, duration.strip()))
            continue

        command = input_fn("Review> ").strip()
        lowered = command.lower()
        if not command:
            continue
        if lowered in EXIT_TOKENS:
            return None
        if lowered == "show":
            _print_summary(editor.summary)
            continue
        if lowered == "save":
            if not editor.save(session.store):
                print(editor.error)
                continue
            print("Summary saved successfully.")
            _export_pdf(editor.summary, settings.output_dir)
            return editor.summary
        try:
            editor.apply(parse_review_command(command))
        except (ValueError, IndexError) as exc:
            print(exc)


def _print_summary(summary: VideoConceptSummary) -> None:
    print()
    print("Video concept summary draft:\n")
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


def _export_pdf(summary: VideoConceptSummary, output_dir: Path) -> Optional[Path]:
    destination = output_dir / f"{safe_filename(summary.video_title_suggestion)}.pdf"
    try:
        path = SummaryPDFRenderer().export(summary, destination)
    except PDFRenderError as exc:
        print(f"PDF export failed: {exc}")
        return None
    print(f"PDF saved to: {path}")
    return path


def run_render_pdf_cli(argv: Optional[list[str]] = None) -> Path:
    parser = argparse.ArgumentParser(
        prog="concept-crafter render-pdf",
        description="Render a saved summary JSON file to PDF.",
    )
    parser.add_argument("summary", type=Path, help="Path to a summary JSON file")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Destination PDF path (default: derived from the title)",
    )
    args = parser.parse_args(argv)
    try:
        payload = json.loads(args.summary.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SystemExit(f"Unable to read summary file: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit("Summary file must contain a JSON object.")
    summary = VideoConceptSummary.from_dict(payload)
    destination = args.output or args.summary.with_name(
        f"{safe_filename(summary.video_title_suggestion)}.pdf"
    )
    try:
        path = SummaryPDFRenderer().export(summary, destination)
    except PDFRenderError as exc:
        raise SystemExit(str(exc)) from exc
    print(f"PDF saved to: {path}")
    return path


def run_serve_cli(settings: AppSettings, argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="concept-crafter serve",
        description="Launch the Concept Crafter HTTP API.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the API server (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the API server (default: 8080).",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help="Optional CORS origin(s) to allow. Defaults to '*' if not provided.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        help="Logging level for uvicorn (default: info).",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Enable OpenTelemetry tracing for model calls.",
    )
    args = parser.parse_args(argv)

    from .api import run_server

    if args.tracing:
        from .observability import initialize_tracing

        initialize_tracing()
    run_server(
        settings,
        host=args.host,
        port=args.port,
        allow_origins=args.allow_origin,
        log_level=args.log_level,
    )


def _load_settings() -> AppSettings:
    try:
        return AppSettings.load()
    except RuntimeError as exc:
        logger.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Entry-point invoked from ``python -m concept_crafter``."""

    logging.basicConfig(level=logging.INFO)
    arg_list = list(argv) if argv is not None else sys.argv[1:]
    command = arg_list[0] if arg_list else "chat"
    rest = arg_list[1:]
    if command == "render-pdf":
        run_render_pdf_cli(rest)
        return
    if command == "records":
        run_records_cli(_load_settings(), rest)
        return
    if command == "serve":
        run_serve_cli(_load_settings(), rest)
        return
    if command == "chat":
        asyncio.run(run_chat(_load_settings()))
        return
    raise SystemExit(
        f"Unknown command '{command}'. Use chat, serve, render-pdf or records."
    )


if __name__ == "__main__":  # pragma: no cover - manual execution hook
    run_cli()
