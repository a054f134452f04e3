# ABOUTME: Per-pass context object threaded through every extractor of one scheduling pass.
# ABOUTME: Holds chat messages, turn-local events, run tracking, progress, and cancellation.

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from narrative_ledger.ai.generator import CancellationToken, Generator
from narrative_ledger.config import ExtractionSettings
from narrative_ledger.extraction.strategies import RunStrategyContext
from narrative_ledger.state.events import BaseEvent, BranchPosition
from narrative_ledger.state.projection import (
    get_prior_projection,
    project_from_snapshot,
    project_with_turn_events,
)
from narrative_ledger.state.snapshot import Projection, Snapshot
from narrative_ledger.state.store import EventStore

log = structlog.get_logger()


class ChatMessage(BaseModel):
    """One visible chat message on the active branch."""

    message_id: int = Field(ge=0)
    swipe_id: int = Field(default=0, ge=0)
    name: str
    is_user: bool = False
    text: str


class ExtractionTracker(BaseModel):
    """Messages at which each extractor ran and produced events.

    Owned by the caller and persisted between passes; each pass works on a
    copy and hands back the updated tracker.
    """

    ran_at: dict[str, list[int]] = Field(default_factory=dict)
    produced_at: dict[str, list[int]] = Field(default_factory=dict)

    def record(self, extractor: str, message_id: int, produced: bool) -> None:
        runs = self.ran_at.setdefault(extractor, [])
        if message_id not in runs:
            runs.append(message_id)
        if produced:
            hits = self.produced_at.setdefault(extractor, [])
            if message_id not in hits:
                hits.append(message_id)

    def forget_from(self, message_id: int) -> None:
        """Drop records at or after a message (after truncation)."""
        for records in (self.ran_at, self.produced_at):
            for name, ids in records.items():
                records[name] = [m for m in ids if m < message_id]


class ProgressSink(Protocol):
    """One-way progress notifications for an external display."""

    def section_started(self, section: str, total: int) -> None: ...

    def step(self, section: str, extractor: str) -> None: ...

    def section_completed(self, section: str) -> None: ...


class LoggingProgress:
    """Progress sink that only logs."""

    def section_started(self, section: str, total: int) -> None:
        log.debug("section_started", section=section, extractors=total)

    def step(self, section: str, extractor: str) -> None:
        log.debug("extractor_started", section=section, extractor=extractor)

    def section_completed(self, section: str) -> None:
        log.debug("section_completed", section=section)


class TurnEvents:
    """Accumulator for events produced during the current pass.

    Commits are serialized with a lock so concurrent fan-out units append
    whole batches, never interleaved events.
    """

    def __init__(self) -> None:
        self._events: list[BaseEvent] = []
        self._lock = asyncio.Lock()

    @property
    def events(self) -> tuple[BaseEvent, ...]:
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    async def commit(self, batch: Sequence[BaseEvent]) -> None:
        async with self._lock:
            self._events.extend(batch)

    async def revise(self, event: BaseEvent) -> bool:
        """Replace an uncommitted event with a revised copy carrying the same id."""
        async with self._lock:
            for i, existing in enumerate(self._events):
                if existing.id == event.id:
                    self._events[i] = event
                    return True
        return False


@dataclass
class RunContext:
    """Everything one scheduling pass needs, passed explicitly to each extractor."""

    settings: ExtractionSettings
    store: EventStore
    branch: BranchPosition
    messages: Sequence[ChatMessage]
    generator: Generator
    cancel: CancellationToken = field(default_factory=CancellationToken)
    progress: ProgressSink = field(default_factory=LoggingProgress)
    tracker: ExtractionTracker = field(default_factory=ExtractionTracker)
    turn: TurnEvents = field(default_factory=TurnEvents)
    seed: Snapshot | None = None
    prior: Projection | None = None

    def __post_init__(self) -> None:
        self.tracker = self.tracker.model_copy(deep=True)
        if self.seed is None and self.prior is None:
            self.prior = get_prior_projection(self.store, self.branch)

    @property
    def is_seed(self) -> bool:
        return self.seed is not None

    @property
    def message_id(self) -> int:
        return self.branch.message_id

    @property
    def is_user_message(self) -> bool:
        current = self.current_message
        return current.is_user if current else False

    @property
    def current_message(self) -> ChatMessage | None:
        return next((m for m in self.messages if m.message_id == self.message_id), None)

    def project(self) -> Projection:
        """Current state including this pass's events.

        Raises:
            NoSnapshotError: Outside a seed pass, if the branch is uninitialized.
        """
        if self.seed is not None:
            return project_from_snapshot(self.seed, self.turn.events, self.branch)
        return project_with_turn_events(self.store, self.turn.events, self.branch)

    def strategy_context(self, extractor: str) -> RunStrategyContext:
        return RunStrategyContext(
            store=self.store,
            branch=self.branch,
            turn_events=self.turn.events,
            is_user_message=self.is_user_message,
            produced_at=list(self.tracker.produced_at.get(extractor, [])),
        )

    def window(self, count: int) -> list[ChatMessage]:
        """The last ``count`` messages ending at the current one."""
        start = max(0, self.message_id - count + 1)
        return [m for m in self.messages if start <= m.message_id <= self.message_id]

    def format_messages(self, count: int) -> str:
        return "\n\n".join(f"[{m.message_id}] {m.name}: {m.text}" for m in self.window(count))
