# ABOUTME: Narrative state module: events, snapshots, the event store, and projection.
# ABOUTME: Everything needed to record state changes and replay them into a projection.

from narrative_ledger.state.errors import (
    DuplicateEventError,
    NoActiveBranch,
    NoSnapshotError,
    StoreError,
)
from narrative_ledger.state.events import BaseEvent, BranchPosition, Event, EventKindFilter
from narrative_ledger.state.projection import (
    get_prior_projection,
    project_from_snapshot,
    project_with_turn_events,
)
from narrative_ledger.state.snapshot import Projection, Snapshot
from narrative_ledger.state.store import EventStore, StoreDocument

__all__ = [
    "BaseEvent",
    "BranchPosition",
    "DuplicateEventError",
    "Event",
    "EventKindFilter",
    "EventStore",
    "NoActiveBranch",
    "NoSnapshotError",
    "Projection",
    "Snapshot",
    "StoreDocument",
    "StoreError",
    "get_prior_projection",
    "project_from_snapshot",
    "project_with_turn_events",
]
