# ABOUTME: Relationship extractors: interaction subjects, attitudes, status, and consolidation.
# ABOUTME: Attitude and status extractors fan out over present pairs; subjects run once per message.

from dataclasses import replace
from typing import ClassVar

import structlog

from narrative_ledger.extraction.base import (
    GlobalExtractor,
    PerPairExtractor,
    format_list,
    format_relationship,
    format_state,
)
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import (
    CONSOLIDATION_FLOOR,
    bound_consolidated,
    map_attitude,
    map_attitude_consolidation,
    map_status,
    map_subjects,
)
from narrative_ledger.extraction.prompts import ATTITUDE, ATTITUDE_CONSOLIDATION, STATUS, SUBJECTS
from narrative_ledger.extraction.schemas import (
    AttitudeExtraction,
    DirectionalConsolidation,
    StatusExtraction,
    SubjectsExtraction,
)
from narrative_ledger.extraction.strategies import (
    EveryNMessages,
    FixedNumber,
    NSinceLastEventOfKind,
)
from narrative_ledger.extraction.validation import (
    filter_attitude_to_add,
    filter_attitude_to_remove,
)
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import BaseEvent, EventKindFilter

log = structlog.get_logger()


class SubjectsExtractor(GlobalExtractor):
    """Records meaningful interactions between present characters."""

    name = "subjects"
    category = "relationships"
    prompt = SUBJECTS
    run_strategy = EveryNMessages(n=2, offset=1)
    message_strategy = FixedNumber(n=2)
    seeds = False

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []
        if len(state.characters_present) < 2:
            return []

        outcome = await self.ask(ctx, SubjectsExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        return map_subjects(outcome.data.interactions, state.characters_present, ctx.branch)


class AttitudeExtractor(PerPairExtractor):
    """Tracks one attitude list (feelings, secrets, or wants) in both directions."""

    field: ClassVar[str]
    category = "relationships"
    run_strategy = EveryNMessages(n=4)
    message_strategy = FixedNumber(n=4)

    async def run(self, ctx: RunContext, pair: tuple[str, str]) -> list[BaseEvent]:
        a, b = pair
        try:
            relationship = ctx.project().relationship(a, b)
        except NoSnapshotError:
            return []

        outcome = await self.ask(
            ctx,
            AttitudeExtraction,
            field=self.field,
            a=a,
            b=b,
            relationship=format_relationship(relationship),
        )
        if not outcome.success or outcome.data is None:
            return []

        events: list[BaseEvent] = []
        for from_character, toward, change in (
            (a, b, outcome.data.a_to_b),
            (b, a, outcome.data.b_to_a),
        ):
            added = filter_attitude_to_add(
                ctx.prior, from_character, toward, self.field, change.added
            )
            removed = filter_attitude_to_remove(
                ctx.prior, from_character, toward, self.field, change.removed
            )
            events.extend(
                map_attitude(self.field, from_character, toward, added, removed, ctx.branch)
            )
        return events


class FeelingsExtractor(AttitudeExtractor):
    name = "feelings"
    field = "feelings"
    prompt = replace(ATTITUDE, name="feelings")


class SecretsExtractor(AttitudeExtractor):
    name = "secrets"
    field = "secrets"
    prompt = replace(ATTITUDE, name="secrets")


class WantsExtractor(AttitudeExtractor):
    name = "wants"
    field = "wants"
    prompt = replace(ATTITUDE, name="wants")


class StatusExtractor(PerPairExtractor):
    """Re-evaluates relationship status, gated by the pair's interaction history."""

    name = "status"
    category = "relationships"
    prompt = STATUS
    run_strategy = NSinceLastEventOfKind(
        n=8,
        kinds=[EventKindFilter(kind="relationship", subkind="status_changed")],
    )
    message_strategy = FixedNumber(n=8)

    async def run(self, ctx: RunContext, pair: tuple[str, str]) -> list[BaseEvent]:
        a, b = pair
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []
        relationship = state.relationship(a, b)

        outcome = await self.ask(
            ctx,
            StatusExtraction,
            a=a,
            b=b,
            relationship=format_relationship(relationship),
        )
        if not outcome.success or outcome.data is None:
            return []

        current = relationship.status if relationship else "strangers"
        subjects = state.pair_subjects(a, b)
        events = map_status(pair, outcome.data.status, current, subjects, ctx.branch)
        if not events and outcome.data.status != current:
            log.debug(
                "status_change_gated",
                pair=f"{a}|{b}",
                proposed=outcome.data.status,
                current=current,
            )
        return events


class AttitudeConsolidationExtractor(PerPairExtractor):
    """Collapses near-duplicate feelings and wants in each direction of a pair."""

    name = "attitude_consolidation"
    category = "relationships"
    default_temperature = 0.3
    prompt = ATTITUDE_CONSOLIDATION
    run_strategy = EveryNMessages(n=6)
    message_strategy = FixedNumber(n=6)
    seeds = False

    async def run(self, ctx: RunContext, pair: tuple[str, str]) -> list[BaseEvent]:
        a, b = pair
        try:
            relationship = ctx.project().relationship(a, b)
        except NoSnapshotError:
            return []
        if relationship is None:
            return []

        events: list[BaseEvent] = []
        for from_character, toward in ((a, b), (b, a)):
            attitude = relationship.attitude(from_character)
            if max(len(attitude.feelings), len(attitude.wants)) <= CONSOLIDATION_FLOOR:
                continue

            outcome = await self.ask(
                ctx,
                DirectionalConsolidation,
                from_character=from_character,
                toward_character=toward,
                feelings=format_list(attitude.feelings),
                wants=format_list(attitude.wants),
            )
            if not outcome.success or outcome.data is None:
                continue

            events.extend(
                map_attitude_consolidation(
                    from_character,
                    toward,
                    attitude.feelings,
                    bound_consolidated(attitude.feelings, outcome.data.feelings),
                    attitude.wants,
                    bound_consolidated(attitude.wants, outcome.data.wants),
                    ctx.branch,
                )
            )
        return events
