# ABOUTME: Prop extractors: per-message prop changes and a confirmation pass after changes.
# ABOUTME: Confirmation drops worn clothing and props that do not belong to the location.

from narrative_ledger.extraction.base import (
    GlobalExtractor,
    format_list,
    format_outfits,
    format_state,
)
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import diff_lists, map_props
from narrative_ledger.extraction.prompts import PROPS_CHANGE, PROPS_CONFIRMATION
from narrative_ledger.extraction.schemas import PropsChangeExtraction, PropsConfirmationExtraction
from narrative_ledger.extraction.strategies import FixedNumber, NewEventsOfKind
from narrative_ledger.extraction.validation import filter_props_to_add, filter_props_to_remove
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import BaseEvent, EventKindFilter, LocationMoved
from narrative_ledger.state.snapshot import Projection, contains_ci


def _validation_basis(ctx: RunContext, state: Projection) -> Projection | None:
    """Committed state, unless this turn moved somewhere new and reset the props."""
    if any(isinstance(e, LocationMoved) for e in ctx.turn.events):
        return state
    return ctx.prior


def _worn_items(state: Projection) -> list[str]:
    items = []
    for name in state.characters_present:
        character = state.find_character(name)
        if character is not None:
            items.extend(item for item in character.outfit.model_dump().values() if item)
    return items


class PropsChangeExtractor(GlobalExtractor):
    name = "props"
    category = "props"
    prompt = PROPS_CHANGE
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, PropsChangeExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []

        basis = _validation_basis(ctx, state)
        return map_props(
            filter_props_to_add(basis, outcome.data.added),
            filter_props_to_remove(basis, outcome.data.removed),
            ctx.branch,
        )


class PropsConfirmationExtractor(GlobalExtractor):
    """Re-checks the prop list whenever this turn changed it."""

    name = "props_confirmation"
    category = "props"
    default_temperature = 0.3
    prompt = PROPS_CONFIRMATION
    message_strategy = FixedNumber(n=2)
    run_strategy = NewEventsOfKind(
        kinds=[
            EventKindFilter(kind="location", subkind="prop_added"),
            EventKindFilter(kind="location", subkind="prop_removed"),
        ]
    )

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []
        if state.location is None or not state.location.props:
            return []

        current = state.location.props
        outcome = await self.ask(
            ctx,
            PropsConfirmationExtraction,
            props=format_list(current),
            outfits=format_outfits(state),
        )
        if not outcome.success or outcome.data is None:
            return []

        worn = _worn_items(state)
        confirmed = [p for p in outcome.data.props if not contains_ci(worn, p)]
        removed, added = diff_lists(current, confirmed)
        return map_props(added, removed, ctx.branch)
