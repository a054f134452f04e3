# ABOUTME: Event-sourced narrative state tracker for branching roleplay chats.
# ABOUTME: Exports settings, the event store, and the projected state models.

from narrative_ledger.config import get_settings
from narrative_ledger.state import BranchPosition, EventStore, Projection, Snapshot

__version__ = "0.1.0"

__all__ = [
    "BranchPosition",
    "EventStore",
    "Projection",
    "Snapshot",
    "get_settings",
]
