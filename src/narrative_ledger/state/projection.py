# ABOUTME: Pure projection engine folding snapshots and events into world state.
# ABOUTME: Includes turn-local projection and the committed prior-state lookup used by validation.

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from narrative_ledger.state.apply import apply_event
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import (
    BaseEvent,
    BranchPosition,
    NarrativeDescribed,
    SubjectOccurred,
    sort_events,
)
from narrative_ledger.state.snapshot import (
    NarrativeEntry,
    NarrativeSubject,
    Projection,
    Snapshot,
)

if TYPE_CHECKING:
    from narrative_ledger.state.store import EventStore

log = structlog.get_logger()


@dataclass(frozen=True)
class _MessageState:
    time: datetime | None
    witnesses: list[str]
    location: str
    tension_level: str
    tension_type: str
    chapter: int


def _capture(projection: Projection) -> _MessageState:
    tension = projection.scene.tension if projection.scene else None
    return _MessageState(
        time=projection.time,
        witnesses=list(projection.characters_present),
        location=projection.location.describe() if projection.location else "",
        tension_level=tension.level if tension else "relaxed",
        tension_type=tension.type if tension else "conversation",
        chapter=projection.current_chapter,
    )


def _narrative_entries(
    events: Sequence[BaseEvent],
    state_at: dict[int, _MessageState],
) -> list[NarrativeEntry]:
    """Build narrative entries for every message carrying a description."""
    by_message: dict[int, list[BaseEvent]] = {}
    for event in events:
        by_message.setdefault(event.source.message_id, []).append(event)

    entries = []
    for message_id, message_events in by_message.items():
        description = next(
            (e for e in message_events if isinstance(e, NarrativeDescribed)),
            None,
        )
        if description is None:
            continue
        subjects = [
            NarrativeSubject(
                pair=e.pair,
                subject=e.subject,
                milestone_description=e.milestone_description,
            )
            for e in message_events
            if isinstance(e, SubjectOccurred)
        ]
        state = state_at[message_id]
        entries.append(
            NarrativeEntry(
                source=description.source,
                description=description.description,
                witnesses=state.witnesses,
                location=state.location,
                tension_level=state.tension_level,
                tension_type=state.tension_type,
                subjects=subjects,
                chapter_index=state.chapter,
                time=state.time,
            )
        )
    return entries


def project_from_snapshot(
    snapshot: Snapshot,
    events: Iterable[BaseEvent],
    source: BranchPosition,
) -> Projection:
    """Fold ordered events onto a snapshot.

    The fold is pure: the snapshot is deep-copied and identical inputs always
    produce structurally identical projections.

    Args:
        snapshot: Starting checkpoint.
        events: Events to apply, already filtered to the active path and ordered.
        source: Position the resulting projection represents.

    Returns:
        The projected state.
    """
    projection = Projection.from_snapshot(snapshot, source)
    applied = [e for e in events if not e.deleted]

    state_at: dict[int, _MessageState] = {}
    for event in applied:
        apply_event(projection, event)
        state_at[event.source.message_id] = _capture(projection)

    projection.narrative_events.extend(_narrative_entries(applied, state_at))
    return projection


def project_with_turn_events(
    store: "EventStore",
    turn_events: Sequence[BaseEvent],
    branch: BranchPosition,
) -> Projection:
    """Project committed state at ``branch`` plus this pass's uncommitted events.

    Raises:
        NoSnapshotError: If the branch has never been initialized.
    """
    snapshot = store.nearest_snapshot(branch)
    if snapshot is None:
        raise NoSnapshotError(f"No snapshot available at {branch}; initial extraction required")

    committed = store.events_between(branch, snapshot.source.message_id, branch.message_id)
    return project_from_snapshot(snapshot, [*committed, *sort_events(list(turn_events))], branch)


def get_prior_projection(store: "EventStore", branch: BranchPosition) -> Projection | None:
    """Committed state at the message before ``branch``, excluding this pass.

    Returns None for the first message, for an uninitialized branch, or when
    the prior state cannot be projected.
    """
    if branch.message_id < 1:
        return None

    prior = BranchPosition(
        message_id=branch.message_id - 1,
        swipe_id=store.active_swipe(branch.message_id - 1),
    )
    try:
        return store.project(prior)
    except NoSnapshotError:
        return None
    except ValueError as e:
        log.warning("prior_projection_failed", position=str(prior), error=str(e))
        return None
