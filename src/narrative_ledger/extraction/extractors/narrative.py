# ABOUTME: Narrative extractors: periodic story-beat descriptions and relationship milestones.
# ABOUTME: Milestones revise this turn's subject events in place instead of adding new ones.

import structlog

from narrative_ledger.extraction.base import GlobalExtractor, format_state
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import map_narrative
from narrative_ledger.extraction.prompts import MILESTONE, NARRATIVE
from narrative_ledger.extraction.schemas import MilestoneExtraction, NarrativeExtraction
from narrative_ledger.extraction.strategies import EveryNMessages, FixedNumber, NewEventsOfKind
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import BaseEvent, EventKindFilter, SubjectOccurred
from narrative_ledger.state.vocabulary import NEUTRAL_SUBJECTS

log = structlog.get_logger()


class NarrativeExtractor(GlobalExtractor):
    name = "narrative"
    category = "narrative"
    prompt = NARRATIVE
    run_strategy = EveryNMessages(n=4)
    message_strategy = FixedNumber(n=4)
    seeds = False

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, NarrativeExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        return map_narrative(outcome.data.description, ctx.branch)


class MilestoneExtractor(GlobalExtractor):
    """Describes the first occurrence of a status-gating subject for a pair.

    The description is written onto the subject event committed earlier in
    the same pass, so the extractor itself returns no events.
    """

    name = "milestone"
    category = "narrative"
    prompt = MILESTONE
    run_strategy = NewEventsOfKind(kinds=[EventKindFilter(kind="relationship", subkind="subject")])
    message_strategy = FixedNumber(n=2)
    seeds = False

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []
        location = state.location.describe() if state.location else "unknown"

        for event in ctx.turn.events:
            if not isinstance(event, SubjectOccurred) or event.milestone_description:
                continue
            if event.subject in NEUTRAL_SUBJECTS:
                continue
            if ctx.prior is not None and event.subject in ctx.prior.pair_subjects(*event.pair):
                continue

            a, b = event.pair
            outcome = await self.ask(
                ctx,
                MilestoneExtraction,
                subject=event.subject,
                a=a,
                b=b,
                location=location,
            )
            if not outcome.success or outcome.data is None:
                continue
            revised = event.model_copy(
                update={"milestone_description": outcome.data.description.strip()}
            )
            if await ctx.turn.revise(revised):
                log.debug("milestone_described", pair=f"{a}|{b}", subject=event.subject)
        return []
