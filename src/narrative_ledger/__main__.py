# ABOUTME: CLI entry point for the narrative state tracker.
# ABOUTME: Provides subcommands: extract, project, truncate, swipe, status.

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from narrative_ledger.config import get_settings
from narrative_ledger.state.events import BranchPosition
from narrative_ledger.state.store import EventStore


def configure_logging() -> None:
    """Configure structlog for console or JSON output on stderr.

    Stdout is reserved for command output such as projected state.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )
    else:
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
                structlog.processors.add_log_level,
                structlog.dev.ConsoleRenderer(colors=True),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )


def _branch(store: EventStore, message_id: int, swipe_id: int | None) -> BranchPosition:
    if swipe_id is None:
        swipe_id = store.active_swipe(message_id)
    return BranchPosition(message_id=message_id, swipe_id=swipe_id)


def cmd_extract(args: argparse.Namespace) -> int:
    """Run an extraction pass for one message of a chat transcript.

    Seeds the initial snapshot first when the chat has none, and re-extracts
    (after truncating) when the message was already processed.
    """
    from narrative_ledger.ai.generator import GeminiGenerator
    from narrative_ledger.extraction.scheduler import ExtractionScheduler
    from narrative_ledger.storage import ChatStorage, load_transcript

    log = structlog.get_logger()
    log.info("cmd_extract_start", chat=args.chat, message=args.message)

    try:
        settings = get_settings()
        transcript = load_transcript(Path(args.chat))
        chat_id = args.chat_id or transcript.chat_id
        storage = ChatStorage(settings)
        store = storage.load_store(chat_id)
        tracker = storage.load_tracker(chat_id)
        branch = BranchPosition(message_id=args.message, swipe_id=args.swipe)
        scheduler = ExtractionScheduler(settings.extraction, GeminiGenerator(settings))

        snapshot = store.nearest_snapshot(branch)
        if snapshot is None or (
            snapshot.type == "initial" and snapshot.source.message_id == branch.message_id
        ):
            result = asyncio.run(
                scheduler.initialize(store, branch, transcript.messages, tracker=tracker)
            )
        else:
            if store.events_between(branch, branch.message_id - 1, branch.message_id):
                store.truncate(branch, branch.message_id)
                tracker.forget_from(branch.message_id)
            result = asyncio.run(
                scheduler.run_pass(store, branch, transcript.messages, tracker=tracker)
            )

        if result.aborted:
            log.warning("cmd_extract_aborted", chat_id=chat_id)
            return 1

        storage.save_store(chat_id, store)
        storage.save_tracker(chat_id, result.tracker or tracker)

        print(f"\nExtracted {len(result.events)} events at message {branch}")
        for event in result.events:
            print(f"  - {event.tag}: {event.payload}")
        for failure in result.errors:
            print(f"  ! {failure.extractor} ({failure.unit}): {failure.error}")

        log.info("cmd_extract_complete", events=len(result.events), errors=len(result.errors))
        return 0

    except Exception:
        log.exception("cmd_extract_failed")
        return 1


def cmd_project(args: argparse.Namespace) -> int:
    """Print the projected state at a message as JSON."""
    from narrative_ledger.state.errors import NoSnapshotError
    from narrative_ledger.storage import ChatStorage

    log = structlog.get_logger()

    storage = ChatStorage()
    store = storage.load_store(args.chat_id)
    branch = _branch(store, args.message, args.swipe)

    try:
        projection = store.project(branch)
    except NoSnapshotError:
        log.error("cmd_project_no_snapshot", chat_id=args.chat_id, position=str(branch))
        return 1

    print(projection.model_dump_json(indent=2))
    return 0


def cmd_truncate(args: argparse.Namespace) -> int:
    """Drop every event from a message onwards."""
    from narrative_ledger.storage import ChatStorage

    log = structlog.get_logger()

    try:
        storage = ChatStorage()
        store = storage.load_store(args.chat_id)
        tracker = storage.load_tracker(args.chat_id)

        dropped = store.truncate(_branch(store, args.message, None), args.message)
        tracker.forget_from(args.message)

        storage.save_store(args.chat_id, store)
        storage.save_tracker(args.chat_id, tracker)
        print(f"Dropped {dropped} events from message {args.message} on")
        return 0

    except Exception:
        log.exception("cmd_truncate_failed")
        return 1


def cmd_swipe(args: argparse.Namespace) -> int:
    """Select the active swipe of a message, optionally discarding the previous one."""
    from narrative_ledger.storage import ChatStorage

    log = structlog.get_logger()

    try:
        storage = ChatStorage()
        store = storage.load_store(args.chat_id)

        previous = BranchPosition(
            message_id=args.message,
            swipe_id=store.active_swipe(args.message),
        )
        store.select_swipe(BranchPosition(message_id=args.message, swipe_id=args.swipe))
        if args.discard and previous.swipe_id != args.swipe:
            flagged = store.discard_swipe(previous)
            print(f"Discarded swipe {previous} ({flagged} events)")

        storage.save_store(args.chat_id, store)
        print(f"Message {args.message} now shows swipe {args.swipe}")
        return 0

    except Exception:
        log.exception("cmd_swipe_failed")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show a summary of a chat's event store."""
    from narrative_ledger.state.errors import NoSnapshotError
    from narrative_ledger.storage import ChatStorage

    storage = ChatStorage()
    if not storage.exists(args.chat_id):
        print(f"No stored state for chat {args.chat_id}")
        return 1

    store = storage.load_store(args.chat_id)
    head = store.head

    print(f"\n=== Narrative Status: {args.chat_id} ===\n")
    print(f"Events: {store.event_count}")
    print(f"Snapshots: {len(store.snapshots)}")
    for snapshot in store.snapshots:
        chapter = ""
        if snapshot.chapter_index is not None:
            chapter = f" (chapter {snapshot.chapter_index})"
        print(f"  - {snapshot.type}{chapter} at {snapshot.source}")

    if head is None:
        print()
        return 0

    print(f"\nLatest position: {head}")
    try:
        projection = store.project(head)
    except NoSnapshotError:
        print("  (not initialized)")
        print()
        return 0

    if projection.time:
        print(f"Time: {projection.time.isoformat()}")
    if projection.location:
        print(f"Location: {projection.location.describe() or projection.location.area}")
    print(f"Chapter: {projection.current_chapter}")
    print(f"\nCharacters present: {len(projection.characters_present)}")
    for name in projection.characters_present:
        state = projection.find_character(name)
        mood = ", ".join(state.mood) if state and state.mood else "-"
        print(f"  - {name} (mood: {mood})")
    print(f"\nRelationships: {len(projection.relationships)}")
    for rel in projection.relationships.values():
        print(f"  - {rel.pair[0]} & {rel.pair[1]}: {rel.status}")
    print()

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="narrative_ledger",
        description="Narrative Ledger - event-sourced state tracking for roleplay chats",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # extract command
    extract_parser = subparsers.add_parser(
        "extract",
        help="Extract state changes for one message of a chat transcript",
    )
    extract_parser.add_argument(
        "--chat",
        required=True,
        help="Path to the chat transcript JSON file",
    )
    extract_parser.add_argument(
        "--chat-id",
        help="Chat id to store under. Defaults to the transcript's chat_id.",
    )
    extract_parser.add_argument("--message", type=int, required=True, help="Message index")
    extract_parser.add_argument(
        "--swipe",
        type=int,
        default=0,
        help="Swipe index of the message (default: 0)",
    )

    # project command
    project_parser = subparsers.add_parser(
        "project",
        help="Print the projected state at a message",
    )
    project_parser.add_argument("--chat-id", required=True, help="Stored chat id")
    project_parser.add_argument("--message", type=int, required=True, help="Message index")
    project_parser.add_argument(
        "--swipe",
        type=int,
        help="Swipe index. Defaults to the active swipe.",
    )

    # truncate command
    truncate_parser = subparsers.add_parser(
        "truncate",
        help="Drop events from a message onwards",
    )
    truncate_parser.add_argument("--chat-id", required=True, help="Stored chat id")
    truncate_parser.add_argument("--message", type=int, required=True, help="First message to drop")

    # swipe command
    swipe_parser = subparsers.add_parser(
        "swipe",
        help="Select the active swipe of a message",
    )
    swipe_parser.add_argument("--chat-id", required=True, help="Stored chat id")
    swipe_parser.add_argument("--message", type=int, required=True, help="Message index")
    swipe_parser.add_argument("--swipe", type=int, required=True, help="Swipe to activate")
    swipe_parser.add_argument(
        "--discard",
        action="store_true",
        help="Soft-delete the events of the previously active swipe",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show a summary of a chat's stored state",
    )
    status_parser.add_argument("--chat-id", required=True, help="Stored chat id")

    return parser


def main() -> int:
    """Main entry point."""
    configure_logging()

    parser = create_parser()
    args = parser.parse_args()

    commands = {
        "extract": cmd_extract,
        "project": cmd_project,
        "truncate": cmd_truncate,
        "swipe": cmd_swipe,
        "status": cmd_status,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
