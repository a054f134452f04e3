# ABOUTME: Append-only event store over a branching (swipe-based) chat history.
# ABOUTME: Keeps ordered events, replay checkpoints, swipe selection, and truncation.

import bisect
from collections.abc import Iterable

import structlog
from pydantic import BaseModel, Field

from narrative_ledger.state.errors import DuplicateEventError, NoActiveBranch, NoSnapshotError
from narrative_ledger.state.events import (
    BaseEvent,
    BranchPosition,
    ChapterEnded,
    Event,
    EventKindFilter,
    matches_any,
)
from narrative_ledger.state.projection import project_from_snapshot
from narrative_ledger.state.snapshot import Projection, Snapshot

log = structlog.get_logger()

DEFAULT_SNAPSHOT_INTERVAL = 50


def _message_id(event: BaseEvent) -> int:
    return event.source.message_id


class StoreDocument(BaseModel):
    """Serialized form of an event store."""

    version: int = 1
    snapshot_interval: int = DEFAULT_SNAPSHOT_INTERVAL
    events: list[Event] = Field(default_factory=list)  # type: ignore[valid-type]
    snapshots: list[Snapshot] = Field(default_factory=list)
    active_swipes: dict[int, int] = Field(default_factory=dict)
    abandoned: list[BranchPosition] = Field(default_factory=list)


class EventStore:
    """Per-branch event log with periodic snapshots.

    A branch is the path through the chat tree that follows the active swipe
    of every message. Events are never edited once appended; abandoning a
    swipe flags its events as deleted and truncation drops them outright.
    """

    def __init__(self, snapshot_interval: int = DEFAULT_SNAPSHOT_INTERVAL) -> None:
        if snapshot_interval < 1:
            raise ValueError("snapshot_interval must be positive")
        self.snapshot_interval = snapshot_interval
        self._events: list[BaseEvent] = []
        self._ids: set[str] = set()
        self._snapshots: list[Snapshot] = []
        self._active_swipes: dict[int, int] = {}
        self._abandoned: set[tuple[int, int]] = set()
        self._invalidations: list[int] = []

    # Swipe selection

    def active_swipe(self, message_id: int) -> int:
        """Swipe currently shown for a message (0 when never selected)."""
        return self._active_swipes.get(message_id, 0)

    def is_active(self, branch: BranchPosition) -> bool:
        if (branch.message_id, branch.swipe_id) in self._abandoned:
            return False
        return self.active_swipe(branch.message_id) == branch.swipe_id

    def is_abandoned(self, branch: BranchPosition) -> bool:
        return (branch.message_id, branch.swipe_id) in self._abandoned

    @property
    def generation(self) -> int:
        """Counter bumped whenever positions are abandoned by truncation or discard."""
        return len(self._invalidations)

    def invalidated_since(self, generation: int) -> int | None:
        """Earliest message touched by a truncation or discard after ``generation``."""
        later = self._invalidations[generation:]
        return min(later) if later else None

    def select_swipe(self, position: BranchPosition) -> None:
        """Make ``position`` the active swipe of its message.

        Switching away from another swipe invalidates every derived snapshot
        of later messages, since they were built on the old path.
        """
        previous = self.active_swipe(position.message_id)
        self._active_swipes[position.message_id] = position.swipe_id
        self._abandoned.discard((position.message_id, position.swipe_id))
        if previous != position.swipe_id:
            dropped = self._drop_snapshots(
                lambda s: s.type != "initial" and s.source.message_id > position.message_id
            )
            log.info(
                "swipe_selected",
                position=str(position),
                previous_swipe=previous,
                snapshots_dropped=dropped,
            )

    def discard_swipe(self, position: BranchPosition) -> int:
        """Soft-delete every event of an abandoned swipe.

        Returns:
            Number of events flagged as deleted.
        """
        flagged = 0
        for i, event in enumerate(self._events):
            if event.source == position and not event.deleted:
                self._events[i] = event.model_copy(update={"deleted": True})
                flagged += 1
        self._abandoned.add((position.message_id, position.swipe_id))
        if self._active_swipes.get(position.message_id) == position.swipe_id:
            del self._active_swipes[position.message_id]
        self._invalidations.append(position.message_id)
        # Later snapshots were built on a path through the discarded swipe
        snapshots_dropped = self._drop_snapshots(
            lambda s: s.source == position
            or (s.type != "initial" and s.source.message_id > position.message_id)
        )
        log.info(
            "swipe_discarded",
            position=str(position),
            events_flagged=flagged,
            snapshots_dropped=snapshots_dropped,
        )
        return flagged

    # Reads

    def _on_path(self, event: BaseEvent, branch: BranchPosition) -> bool:
        message_id = event.source.message_id
        if message_id == branch.message_id:
            return event.source.swipe_id == branch.swipe_id
        return event.source.swipe_id == self.active_swipe(message_id)

    def _snapshot_on_path(self, snapshot: Snapshot, branch: BranchPosition) -> bool:
        message_id = snapshot.source.message_id
        if message_id == branch.message_id:
            return snapshot.swipe_id == branch.swipe_id
        return snapshot.swipe_id == self.active_swipe(message_id)

    def events_between(
        self,
        branch: BranchPosition,
        after_message_id: int,
        upto_message_id: int,
    ) -> tuple[BaseEvent, ...]:
        """Events on the branch path after one message, up to another (inclusive)."""
        start = bisect.bisect_right(self._events, after_message_id, key=_message_id)
        end = bisect.bisect_right(self._events, upto_message_id, key=_message_id)
        return tuple(
            e for e in self._events[start:end] if not e.deleted and self._on_path(e, branch)
        )

    def active_events(
        self,
        branch: BranchPosition,
        upto_message_id: int | None = None,
    ) -> tuple[BaseEvent, ...]:
        """Ordered events on the branch's active path up to a message (inclusive)."""
        upto = branch.message_id if upto_message_id is None else upto_message_id
        return self.events_between(branch, -1, upto)

    def nearest_snapshot(
        self,
        branch: BranchPosition,
        upto_message_id: int | None = None,
    ) -> Snapshot | None:
        """Latest snapshot at or before a message that lies on the branch's path."""
        upto = branch.message_id if upto_message_id is None else upto_message_id
        best: Snapshot | None = None
        for snapshot in self._snapshots:
            if snapshot.source.message_id > upto:
                continue
            if not self._snapshot_on_path(snapshot, branch):
                continue
            if best is None or (snapshot.source.message_id, snapshot.timestamp) > (
                best.source.message_id,
                best.timestamp,
            ):
                best = snapshot
        return best

    def project(self, branch: BranchPosition) -> Projection:
        """Committed state at ``branch``.

        Replays only the events recorded after the nearest snapshot.

        Raises:
            NoSnapshotError: If the branch has never been initialized.
        """
        snapshot = self.nearest_snapshot(branch)
        if snapshot is None:
            raise NoSnapshotError(f"No snapshot available at {branch}; initial extraction required")
        events = self.events_between(branch, snapshot.source.message_id, branch.message_id)
        return project_from_snapshot(snapshot, events, branch)

    def last_event_message(
        self,
        branch: BranchPosition,
        kinds: list[EventKindFilter],
        upto_message_id: int | None = None,
    ) -> int | None:
        """Message id of the most recent event matching any filter."""
        upto = branch.message_id if upto_message_id is None else upto_message_id
        end = bisect.bisect_right(self._events, upto, key=_message_id)
        for i in range(end - 1, -1, -1):
            event = self._events[i]
            if event.deleted or not self._on_path(event, branch):
                continue
            if matches_any(event, kinds):
                return event.source.message_id
        return None

    @property
    def event_count(self) -> int:
        return sum(1 for e in self._events if not e.deleted)

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return tuple(self._snapshots)

    @property
    def initial_snapshot(self) -> Snapshot | None:
        return next((s for s in self._snapshots if s.type == "initial"), None)

    @property
    def head(self) -> BranchPosition | None:
        """Latest position on the active path, or None for an empty store."""
        candidates = [*self._active_swipes, *(s.source.message_id for s in self._snapshots)]
        if not candidates:
            return None
        message_id = max(candidates)
        return BranchPosition(message_id=message_id, swipe_id=self.active_swipe(message_id))

    # Writes

    def append(self, branch: BranchPosition, events: Iterable[BaseEvent]) -> int:
        """Append a pass's events to the branch.

        Args:
            branch: Position the events belong to.
            events: Events produced for that position.

        Returns:
            Number of events appended.

        Raises:
            NoActiveBranch: If the branch was truncated or abandoned.
            DuplicateEventError: If an event id is already stored.
            ValueError: If an event belongs to another position.
        """
        if not self.is_active(branch):
            raise NoActiveBranch(f"Branch {branch} is not active")

        batch = list(events)
        seen: set[str] = set()
        for event in batch:
            if event.id in self._ids or event.id in seen:
                raise DuplicateEventError(f"Duplicate event id {event.id}")
            if event.source != branch:
                raise ValueError(f"Event {event.id} belongs to {event.source}, not {branch}")
            seen.add(event.id)

        if not batch:
            return 0

        self._drop_snapshots(
            lambda s: s.type != "initial" and s.source.message_id >= branch.message_id
        )
        for event in batch:
            bisect.insort(self._events, event, key=lambda e: e.sort_key())
        self._ids.update(seen)
        self._active_swipes.setdefault(branch.message_id, branch.swipe_id)

        log.debug("events_appended", branch=str(branch), count=len(batch))
        self._maybe_checkpoint(branch)
        return len(batch)

    def _maybe_checkpoint(self, branch: BranchPosition) -> None:
        snapshot = self.nearest_snapshot(branch)
        if snapshot is None:
            return
        pending = self.events_between(branch, snapshot.source.message_id, branch.message_id)
        if len(pending) < self.snapshot_interval:
            return
        checkpoint = project_from_snapshot(snapshot, pending, branch).to_snapshot("checkpoint")
        self._snapshots.append(checkpoint)
        log.info("checkpoint_created", branch=str(branch), events_folded=len(pending))

    def truncate(self, branch: BranchPosition, from_message_id: int) -> int:
        """Drop every event at or after a message.

        Used when an earlier message is edited or regenerated so the log stays
        consistent with the visible chat. Swipe selections from that point on
        are abandoned, so passes that were started on them can no longer
        append.

        Returns:
            Number of events dropped.
        """
        cut = bisect.bisect_left(self._events, from_message_id, key=_message_id)
        dropped = self._events[cut:]
        self._events = self._events[:cut]
        self._ids.difference_update(e.id for e in dropped)

        for event in dropped:
            self._abandoned.add((event.source.message_id, event.source.swipe_id))
        for message_id in [m for m in self._active_swipes if m >= from_message_id]:
            self._abandoned.add((message_id, self._active_swipes.pop(message_id)))
        self._invalidations.append(from_message_id)

        snapshots_dropped = self._drop_snapshots(lambda s: s.source.message_id >= from_message_id)
        log.info(
            "branch_truncated",
            branch=str(branch),
            from_message=from_message_id,
            events_dropped=len(dropped),
            snapshots_dropped=snapshots_dropped,
        )
        return len(dropped)

    def replace_initial_snapshot(self, snapshot: Snapshot) -> None:
        """Install the seed snapshot, replacing any earlier one."""
        if snapshot.type != "initial":
            snapshot = snapshot.model_copy(update={"type": "initial"})
        self._drop_snapshots(lambda s: s.type == "initial")
        self._snapshots.append(snapshot)
        self._active_swipes[snapshot.source.message_id] = snapshot.swipe_id
        self._abandoned.discard((snapshot.source.message_id, snapshot.swipe_id))
        log.info("initial_snapshot_replaced", position=str(snapshot.source))

    def add_chapter_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot.type != "chapter":
            raise ValueError("add_chapter_snapshot requires a chapter snapshot")
        self._drop_snapshots(
            lambda s: s.type == "chapter" and s.chapter_index == snapshot.chapter_index
        )
        self._snapshots.append(snapshot)
        log.info(
            "chapter_snapshot_added",
            chapter=snapshot.chapter_index,
            position=str(snapshot.source),
        )

    def rebuild_snapshots_after(self, message_id: int) -> int:
        """Recompute derived snapshots invalidated by an edit at ``message_id``.

        Checkpoints are dropped (they are recreated lazily on append); chapter
        snapshots are rebuilt for every chapter end still on the active path.

        Returns:
            Number of chapter snapshots rebuilt.
        """
        self._drop_snapshots(lambda s: s.type != "initial" and s.source.message_id >= message_id)

        rebuilt = 0
        for event in list(self._events):
            if not isinstance(event, ChapterEnded) or event.deleted:
                continue
            if event.source.message_id < message_id:
                continue
            if event.source.swipe_id != self.active_swipe(event.source.message_id):
                continue
            try:
                projection = self.project(event.source)
            except NoSnapshotError:
                continue
            self.add_chapter_snapshot(projection.to_snapshot("chapter", event.chapter_index))
            rebuilt += 1
        return rebuilt

    def _drop_snapshots(self, predicate) -> int:
        before = len(self._snapshots)
        self._snapshots = [s for s in self._snapshots if not predicate(s)]
        return before - len(self._snapshots)

    # Serialization

    def to_document(self) -> StoreDocument:
        return StoreDocument(
            snapshot_interval=self.snapshot_interval,
            events=list(self._events),
            snapshots=list(self._snapshots),
            active_swipes=dict(self._active_swipes),
            abandoned=[
                BranchPosition(message_id=m, swipe_id=s) for m, s in sorted(self._abandoned)
            ],
        )

    @classmethod
    def from_document(cls, document: StoreDocument) -> "EventStore":
        store = cls(snapshot_interval=document.snapshot_interval)
        store._events = sorted(document.events, key=lambda e: e.sort_key())
        store._ids = {e.id for e in store._events}
        if len(store._ids) != len(store._events):
            raise DuplicateEventError("Stored document contains duplicate event ids")
        store._snapshots = list(document.snapshots)
        store._active_swipes = dict(document.active_swipes)
        store._abandoned = {(p.message_id, p.swipe_id) for p in document.abandoned}
        return store

    def clone(self) -> "EventStore":
        """Independent deep copy of the store."""
        return EventStore.from_document(self.to_document().model_copy(deep=True))
