# ABOUTME: Pytest fixtures and configuration for narrative ledger tests.
# ABOUTME: Provides mock settings, a scripted generator, seeded stores, and sample chat messages.

import json
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import structlog
from pydantic import SecretStr

from narrative_ledger.ai.generator import CancellationToken, GenerationError
from narrative_ledger.config import ExtractionSettings, Settings
from narrative_ledger.extraction.context import ChatMessage
from narrative_ledger.state.events import BranchPosition
from narrative_ledger.state.snapshot import (
    Attitude,
    CharacterState,
    LocationState,
    Outfit,
    RelationshipState,
    SceneState,
    Snapshot,
)
from narrative_ledger.state.store import EventStore

# A phrase unique to each prompt's system instructions
PROMPT_MARKERS = {
    "time_initial": "in-story date and time",
    "time_change": "how much in-story time passes",
    "location_change": "where the scene takes place",
    "climate": "describe the weather",
    "topic_tone": "what the current scene is about",
    "tension": "dramatic tension",
    "presence": "physically present",
    "profile": "short profile",
    "position_activity": "where a character is within",
    "mood_physical": "moods and physical states",
    "outfit": "what a character wears",
    "character_consolidation": "mood and physical state lists",
    "props_change": "notable objects",
    "props_confirmation": "verify the scene's prop list",
    "subjects": "meaningful interactions",
    "feelings": "track the feelings",
    "secrets": "track the secrets",
    "wants": "track the wants",
    "status": "overall status of a relationship",
    "attitude_consolidation": "feels toward and wants from",
    "narrative": "one or two sentence summary",
    "milestone": "relationship milestone",
    "chapter_ended": "natural chapter break",
    "chapter_description": "title and summarize",
}


@dataclass
class GeneratorCall:
    name: str
    prompt: str
    system_prompt: str
    temperature: float


Response = str | dict[str, Any] | Exception | Callable[[str], Any]


class ScriptedGenerator:
    """Generator returning canned responses chosen by which prompt it receives.

    Responses may be JSON strings, dicts, exceptions to raise, or callables
    receiving the user prompt. Prompts without a scripted response fail with
    a GenerationError.
    """

    def __init__(self, responses: dict[str, Response] | None = None) -> None:
        self.responses: dict[str, Response] = dict(responses or {})
        self.calls: list[GeneratorCall] = []
        self.before_call: Callable[[str], None] | None = None

    @staticmethod
    def identify(system_prompt: str) -> str:
        for name, marker in PROMPT_MARKERS.items():
            if marker in system_prompt:
                return name
        return "unknown"

    def called(self, name: str) -> list[GeneratorCall]:
        return [c for c in self.calls if c.name == name]

    async def generate(
        self,
        prompt: str,
        temperature: float,
        *,
        system_prompt: str = "",
        cancel: CancellationToken | None = None,
    ) -> str:
        if cancel is not None:
            cancel.raise_if_cancelled()
        name = self.identify(system_prompt)
        self.calls.append(GeneratorCall(name, prompt, system_prompt, temperature))
        if self.before_call is not None:
            self.before_call(name)
        if cancel is not None:
            cancel.raise_if_cancelled()

        response = self.responses.get(name)
        if response is None:
            raise GenerationError(f"no scripted response for {name}")
        if callable(response):
            response = response(prompt)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """Create mock settings for testing."""
    return Settings(
        gemini_api_key=SecretStr("test-api-key"),
        gemini_model="gemini-test",
        data_dir=tmp_path / "data",
        log_level="DEBUG",
    )


@pytest.fixture
def extraction_settings() -> ExtractionSettings:
    """Extraction settings with short timeouts."""
    return ExtractionSettings(generation_timeout=5, snapshot_interval=50)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


def make_snapshot(message_id: int = 0) -> Snapshot:
    """Initial snapshot with Alice and Bob together in a tavern."""
    return Snapshot(
        type="initial",
        source=BranchPosition(message_id=message_id),
        time=datetime(2024, 5, 1, 18, 0),
        location=LocationState(
            area="Old Town",
            place="Tavern",
            position="by the bar",
            props=["oak table", "lantern"],
        ),
        scene=SceneState(topic="reunion", tone="warm"),
        characters={
            "Alice": CharacterState(
                name="Alice",
                position="at the bar",
                mood=["curious"],
                outfit=Outfit(jacket="leather jacket", torso="white shirt"),
            ),
            "Bob": CharacterState(name="Bob", position="by the fire", mood=["tired"]),
        },
        characters_present=["Alice", "Bob"],
        relationships={
            "Alice|Bob": RelationshipState(
                pair=("Alice", "Bob"),
                status="acquaintances",
                a_to_b=Attitude(feelings=["fond"]),
            ),
        },
    )


@pytest.fixture
def seeded_store() -> EventStore:
    """Event store initialized at message 0."""
    store = EventStore(snapshot_interval=50)
    store.replace_initial_snapshot(make_snapshot())
    return store


def make_messages(count: int = 10) -> list[ChatMessage]:
    """Alternating user/assistant messages, user first."""
    return [
        ChatMessage(
            message_id=i,
            name="User" if i % 2 == 0 else "Narrator",
            is_user=i % 2 == 0,
            text=f"Message number {i}.",
        )
        for i in range(count)
    ]


@pytest.fixture
def messages() -> list[ChatMessage]:
    return make_messages()


def at(message_id: int, swipe_id: int = 0) -> BranchPosition:
    return BranchPosition(message_id=message_id, swipe_id=swipe_id)


@pytest.fixture(autouse=True)
def stderr_logging() -> Iterator[None]:
    """Route log output to stderr so command output on stdout stays parseable."""
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=sys.stderr))
    yield
    structlog.reset_defaults()
