"""Command-line utilities for browsing stored conversations and summaries."""

from __future__ import annotations

import argparse
import json
from typing import Callable, List, Optional

from .config import AppSettings
from .conversation import MessageRole
from .store import ConceptStore
from .timestamps import format_timestamp

CommandHandler = Callable[[ConceptStore, argparse.Namespace], None]


def run_records_cli(
    settings: AppSettings,
    argv: Optional[List[str]] = None,
    *,
    store: Optional[ConceptStore] = None,
) -> None:
    """Entry point for record-related CLI commands."""

    concept_store = store or ConceptStore(settings.output_dir, settings.redis_url)
    parser = argparse.ArgumentParser(
        prog="concept-crafter records",
        description="Inspect completed conversations and saved summaries.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    list_parser = subparsers.add_parser(
        "list",
        help="Show recently completed conversations",
    )
    list_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=10,
        help="Maximum number of conversations to display (default: 10)",
    )
    list_parser.set_defaults(func=_handle_list)

    show_parser = subparsers.add_parser(
        "show",
        help="Display the full conversation for a session",
    )
    show_parser.add_argument("id", help="Session identifier")
    show_parser.set_defaults(func=_handle_show)

    summary_parser = subparsers.add_parser(
        "summary",
        help="Print the saved summary for a session as JSON",
    )
    summary_parser.add_argument("id", help="Session identifier")
    summary_parser.set_defaults(func=_handle_summary)

    args = parser.parse_args(argv)
    handler: CommandHandler = args.func
    handler(concept_store, args)


def _handle_list(store: ConceptStore, args: argparse.Namespace) -> None:
    records = store.list_conversations(limit=args.limit)
    if not records:
        print("No conversations found.")
        return
    print(f"Showing {len(records)} conversations:")
    for record in records:
        answered = sum(1 for value in record.concept_data.values() if value)
        print(
            f" - {record.session_id} | {format_timestamp(record.completed_at)} | "
            f"{len(record.messages)} messages | {answered} topics"
        )


def _handle_show(store: ConceptStore, args: argparse.Namespace) -> None:
    record = store.get_conversation(args.id)
    if not record:
        print(f"Conversation '{args.id}' not found.")
        return
    print(f"Session ID: {record.session_id}")
    print(f"Completed: {format_timestamp(record.completed_at)}")
    if record.concept_data:
        print("\nConcept data:")
        for category, answer in record.concept_data.items():
            print(f" - {category}: {answer}")
    for message in record.messages:
        speaker = "AI" if message.role is MessageRole.ASSISTANT else "User"
        print("\n" + "-" * 40)
        print(f"{speaker}: {message.content}")


def _handle_summary(store: ConceptStore, args: argparse.Namespace) -> None:
    summary = store.get_summary(args.id)
    if not summary:
        print(f"Summary for '{args.id}' not found.")
        return
    print(f"Saved: {format_timestamp(summary.saved_at)}")
    print(f"Last updated: {format_timestamp(summary.last_updated_at)}")
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
