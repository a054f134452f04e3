# ABOUTME: Chapter extractors: detect chapter breaks and title/summarize finished chapters.
# ABOUTME: Breaks are only considered after a location move or a significant time jump.

from narrative_ledger.extraction.base import GlobalExtractor, format_state
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import map_chapter_described, map_chapter_ended
from narrative_ledger.extraction.prompts import CHAPTER_DESCRIPTION, CHAPTER_ENDED
from narrative_ledger.extraction.schemas import ChapterDescriptionExtraction, ChapterEndedExtraction
from narrative_ledger.extraction.strategies import (
    CustomRun,
    FixedNumber,
    LocationMovedOrTimeJump,
    NewEventsOfKind,
    SinceLastEventOfKind,
)
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import (
    BaseEvent,
    ChapterEnded,
    EventKindFilter,
    LocationMoved,
    TimeDelta,
)

_CHAPTER_ENDED = [EventKindFilter(kind="chapter", subkind="ended")]


def _turn_reason(ctx: RunContext) -> str:
    moved = any(isinstance(e, LocationMoved) for e in ctx.turn.events)
    jumped = any(isinstance(e, TimeDelta) for e in ctx.turn.events)
    if moved and jumped:
        return "both"
    if moved:
        return "location_change"
    if jumped:
        return "time_jump"
    return "manual"


class ChapterEndedExtractor(GlobalExtractor):
    name = "chapter_ended"
    category = "chapters"
    default_temperature = 0.3
    prompt = CHAPTER_ENDED
    run_strategy = CustomRun(condition=LocationMovedOrTimeJump())
    message_strategy = FixedNumber(n=3)
    seeds = False

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, ChapterEndedExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        payload = outcome.data
        if payload.reason == "manual":
            payload = payload.model_copy(update={"reason": _turn_reason(ctx)})
        return map_chapter_ended(payload, state.current_chapter, ctx.branch)


class ChapterDescriptionExtractor(GlobalExtractor):
    """Titles and summarizes the chapter that ended this turn."""

    name = "chapter_description"
    category = "chapters"
    prompt = CHAPTER_DESCRIPTION
    run_strategy = NewEventsOfKind(kinds=_CHAPTER_ENDED)
    message_strategy = SinceLastEventOfKind(kinds=_CHAPTER_ENDED)
    seeds = False

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        ended = next((e for e in ctx.turn.events if isinstance(e, ChapterEnded)), None)
        if ended is None:
            return []
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, ChapterDescriptionExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        return map_chapter_described(outcome.data, ended.chapter_index, ctx.branch)
