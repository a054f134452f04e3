# ABOUTME: JSON-based persistence for per-chat event stores and extraction trackers.
# ABOUTME: Also loads chat transcripts used as extraction input by the CLI.

import re
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from narrative_ledger.config import Settings, get_settings
from narrative_ledger.extraction.context import ChatMessage, ExtractionTracker
from narrative_ledger.state.store import EventStore, StoreDocument

log = structlog.get_logger()

_CHAT_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class ChatTranscript(BaseModel):
    """A chat export: its id plus the visible messages of the active branch."""

    chat_id: str
    messages: list[ChatMessage] = Field(default_factory=list)


def load_transcript(path: Path) -> ChatTranscript:
    """Load a chat transcript from a JSON file."""
    transcript = ChatTranscript.model_validate_json(path.read_text(encoding="utf-8"))
    log.debug("transcript_loaded", path=str(path), messages=len(transcript.messages))
    return transcript


class ChatStorage:
    """Handles persistence of event stores to JSON files, one directory per chat."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        """Create data directory structure if it doesn't exist."""
        self.chats_dir.mkdir(parents=True, exist_ok=True)

    @property
    def chats_dir(self) -> Path:
        return self.settings.data_dir / "chats"

    def chat_dir(self, chat_id: str) -> Path:
        """Directory holding one chat's files.

        Raises:
            ValueError: If the chat id is not a safe file name.
        """
        if not _CHAT_ID.match(chat_id) or chat_id in (".", ".."):
            raise ValueError(f"Invalid chat id: {chat_id!r}")
        return self.chats_dir / chat_id

    def store_path(self, chat_id: str) -> Path:
        return self.chat_dir(chat_id) / "store.json"

    def tracker_path(self, chat_id: str) -> Path:
        return self.chat_dir(chat_id) / "tracker.json"

    def exists(self, chat_id: str) -> bool:
        return self.store_path(chat_id).exists()

    def load_store(self, chat_id: str) -> EventStore:
        """Load a chat's event store.

        Returns:
            The stored event store, or an empty one if the chat is new.
        """
        path = self.store_path(chat_id)
        if not path.exists():
            log.info("store_not_found", chat_id=chat_id)
            return EventStore(snapshot_interval=self.settings.extraction.snapshot_interval)

        document = StoreDocument.model_validate_json(path.read_text(encoding="utf-8"))
        store = EventStore.from_document(document)
        log.info(
            "store_loaded",
            chat_id=chat_id,
            events=store.event_count,
            snapshots=len(store.snapshots),
        )
        return store

    def save_store(self, chat_id: str, store: EventStore) -> Path:
        """Save a chat's event store, replacing the previous file atomically."""
        path = self.store_path(chat_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(store.to_document().model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(path)
        log.info("store_saved", chat_id=chat_id, events=store.event_count, path=str(path))
        return path

    def load_tracker(self, chat_id: str) -> ExtractionTracker:
        path = self.tracker_path(chat_id)
        if not path.exists():
            return ExtractionTracker()
        return ExtractionTracker.model_validate_json(path.read_text(encoding="utf-8"))

    def save_tracker(self, chat_id: str, tracker: ExtractionTracker) -> None:
        path = self.tracker_path(chat_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(tracker.model_dump_json(indent=2), encoding="utf-8")
        log.debug("tracker_saved", chat_id=chat_id)
