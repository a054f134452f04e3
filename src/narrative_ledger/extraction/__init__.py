# ABOUTME: Extraction module turning chat messages into narrative events.
# ABOUTME: Exports the scheduler, run context types, and strategy models.

from narrative_ledger.extraction.context import (
    ChatMessage,
    ExtractionTracker,
    LoggingProgress,
    ProgressSink,
    RunContext,
    TurnEvents,
)
from narrative_ledger.extraction.scheduler import ExtractionScheduler, ExtractorFailure, PassResult

__all__ = [
    "ChatMessage",
    "ExtractionScheduler",
    "ExtractionTracker",
    "ExtractorFailure",
    "LoggingProgress",
    "PassResult",
    "ProgressSink",
    "RunContext",
    "TurnEvents",
]
