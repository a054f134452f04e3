# ABOUTME: Exceptions raised by the event store and projection engine.
# ABOUTME: Separates the expected "not initialized" signal from fatal data corruption.


class StoreError(Exception):
    """Base class for store conditions that indicate corrupted or stale data."""


class NoActiveBranch(StoreError):
    """The referenced branch position was truncated or abandoned."""


class DuplicateEventError(StoreError):
    """An event id is already present in the store."""


class NoSnapshotError(Exception):
    """The branch has no snapshot yet, so no projection can be computed.

    This is the cold-start signal: extractors that need prior state treat it
    as a no-op rather than a failure.
    """
