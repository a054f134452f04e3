# ABOUTME: Tests for JSON persistence of chat event stores, trackers, and transcripts.
# ABOUTME: Uses a temporary data directory so nothing touches real chat files.

import json
from pathlib import Path

import pytest

from conftest import at, make_snapshot
from narrative_ledger.config import ExtractionSettings, Settings
from narrative_ledger.extraction.context import ExtractionTracker
from narrative_ledger.state.events import MoodAdded, PropAdded
from narrative_ledger.state.store import EventStore
from narrative_ledger.storage import ChatStorage, load_transcript


@pytest.fixture
def storage(mock_settings: Settings) -> ChatStorage:
    return ChatStorage(mock_settings)


@pytest.fixture
def populated_store() -> EventStore:
    store = EventStore(snapshot_interval=50)
    store.replace_initial_snapshot(make_snapshot())
    store.append(
        at(1),
        [
            MoodAdded(source=at(1), character="Alice", mood="amused"),
            PropAdded(source=at(1), prop="dice"),
        ],
    )
    return store


class TestChatStorage:
    """Tests for ChatStorage."""

    def test_creates_data_dir(self, storage: ChatStorage, mock_settings: Settings) -> None:
        """The chats directory is created on construction."""
        assert (mock_settings.data_dir / "chats").is_dir()

    def test_missing_store_is_empty(self, storage: ChatStorage) -> None:
        """A chat without a file gets an empty, uninitialized store."""
        store = storage.load_store("new-chat")
        assert store.event_count == 0
        assert store.initial_snapshot is None
        assert not storage.exists("new-chat")

    def test_missing_store_uses_configured_interval(self, tmp_path: Path) -> None:
        """New stores take their snapshot interval from settings."""
        settings = Settings(
            data_dir=tmp_path,
            extraction=ExtractionSettings(snapshot_interval=7),
            _env_file=None,
        )
        store = ChatStorage(settings).load_store("chat")
        assert store.snapshot_interval == 7

    def test_store_round_trip(self, storage: ChatStorage, populated_store: EventStore) -> None:
        """A saved store projects the same state after loading."""
        path = storage.save_store("chat-1", populated_store)

        assert path == storage.store_path("chat-1")
        assert storage.exists("chat-1")
        loaded = storage.load_store("chat-1")
        assert loaded.event_count == 2
        assert loaded.project(at(1)).model_dump(exclude={"timestamp"}) == (
            populated_store.project(at(1)).model_dump(exclude={"timestamp"})
        )

    def test_saved_file_is_json(self, storage: ChatStorage, populated_store: EventStore) -> None:
        """The store is written as readable JSON and no temp file is left behind."""
        path = storage.save_store("chat-1", populated_store)

        document = json.loads(path.read_text(encoding="utf-8"))
        assert len(document["events"]) == 2
        assert not path.with_suffix(".json.tmp").exists()

    def test_save_overwrites(self, storage: ChatStorage, populated_store: EventStore) -> None:
        """Saving again replaces the earlier contents."""
        storage.save_store("chat-1", populated_store)
        populated_store.truncate(at(1), 1)
        storage.save_store("chat-1", populated_store)

        assert storage.load_store("chat-1").event_count == 0

    @pytest.mark.parametrize("chat_id", ["../escape", "a/b", "", "..", "with space"])
    def test_invalid_chat_id(self, storage: ChatStorage, chat_id: str) -> None:
        """Chat ids that are not plain file names are rejected."""
        with pytest.raises(ValueError, match="Invalid chat id"):
            storage.chat_dir(chat_id)

    def test_missing_tracker_is_empty(self, storage: ChatStorage) -> None:
        """A chat without a tracker file gets an empty tracker."""
        tracker = storage.load_tracker("chat-1")
        assert tracker.ran_at == {}
        assert tracker.produced_at == {}

    def test_tracker_round_trip(self, storage: ChatStorage) -> None:
        """Tracker records survive save and load."""
        tracker = ExtractionTracker()
        tracker.record("time", 1, True)
        tracker.record("outfit", 1, False)

        storage.save_tracker("chat-1", tracker)
        loaded = storage.load_tracker("chat-1")

        assert loaded.ran_at == {"time": [1], "outfit": [1]}
        assert loaded.produced_at == {"time": [1]}


class TestLoadTranscript:
    """Tests for load_transcript."""

    def test_loads_messages(self, tmp_path: Path) -> None:
        """Transcripts are parsed into chat messages."""
        path = tmp_path / "chat.json"
        path.write_text(
            json.dumps(
                {
                    "chat_id": "tavern",
                    "messages": [
                        {"message_id": 0, "name": "User", "is_user": True, "text": "Hello."},
                        {"message_id": 1, "name": "Narrator", "text": "Alice waves."},
                    ],
                }
            ),
            encoding="utf-8",
        )

        transcript = load_transcript(path)

        assert transcript.chat_id == "tavern"
        assert [m.message_id for m in transcript.messages] == [0, 1]
        assert transcript.messages[0].is_user
        assert not transcript.messages[1].is_user
        assert transcript.messages[1].swipe_id == 0

    def test_rejects_invalid_messages(self, tmp_path: Path) -> None:
        """Messages with negative ids fail validation."""
        path = tmp_path / "chat.json"
        path.write_text(
            json.dumps({"chat_id": "x", "messages": [{"message_id": -1, "name": "A", "text": ""}]}),
            encoding="utf-8",
        )
        with pytest.raises(ValueError):
            load_transcript(path)
