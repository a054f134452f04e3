# ABOUTME: Scene-level extractors: time, location, climate, topic/tone, and tension.
# ABOUTME: Each runs once per message and emits at most a handful of global events.

from narrative_ledger.extraction.base import GlobalExtractor, format_state
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import (
    map_climate,
    map_initial_time,
    map_location,
    map_tension,
    map_time_change,
    map_topic_tone,
)
from narrative_ledger.extraction.prompts import (
    CLIMATE,
    LOCATION_CHANGE,
    TENSION,
    TIME_CHANGE,
    TIME_INITIAL,
    TOPIC_TONE,
)
from narrative_ledger.extraction.schemas import (
    ClimateExtraction,
    InitialTimeExtraction,
    LocationExtraction,
    TensionExtraction,
    TimeChangeExtraction,
    TopicToneExtraction,
)
from narrative_ledger.extraction.strategies import (
    CustomRun,
    CustomWindow,
    EveryAssistantMessage,
    FixedNumber,
    TurnHasEventOfKind,
)
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import BaseEvent, EventKindFilter


class TimeExtractor(GlobalExtractor):
    """Sets the story clock once, then tracks elapsed time."""

    name = "time"
    category = "time"
    default_temperature = 0.3
    prompt = TIME_CHANGE
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        if state.time is None:
            initial = await self.ask(
                ctx, InitialTimeExtraction, TIME_INITIAL, state=format_state(state)
            )
            if not initial.success or initial.data is None:
                return []
            return map_initial_time(initial.data.time, ctx.branch)

        outcome = await self.ask(ctx, TimeChangeExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        return map_time_change(outcome.data, ctx.branch)


class LocationExtractor(GlobalExtractor):
    name = "location"
    category = "location"
    prompt = LOCATION_CHANGE
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, LocationExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        payload = outcome.data
        # With no location yet, whatever the generator reports is the starting point
        if state.location is None:
            payload = payload.model_copy(update={"changed": True})
        return map_location(payload, ctx.branch)


class ClimateExtractor(GlobalExtractor):
    """Describes the weather whenever the scene moves in time or space."""

    name = "climate"
    category = "climate"
    prompt = CLIMATE
    message_strategy = FixedNumber(n=2)
    run_strategy = CustomRun(
        condition=TurnHasEventOfKind(
            kinds=[
                EventKindFilter(kind="location", subkind="moved"),
                EventKindFilter(kind="time"),
            ]
        )
    )

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, ClimateExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        if state.climate and state.climate.conditions.lower() == outcome.data.conditions.lower():
            return []
        return map_climate(outcome.data, ctx.branch)


class TopicToneExtractor(GlobalExtractor):
    name = "topic_tone"
    category = "scene"
    prompt = TOPIC_TONE
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, TopicToneExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        previous = (state.scene.topic, state.scene.tone) if state.scene else None
        return map_topic_tone(outcome.data, ctx.branch, previous)


class TensionExtractor(GlobalExtractor):
    """Rates tension after assistant messages, reading back to the last rating."""

    name = "tension"
    category = "scene"
    prompt = TENSION
    run_strategy = EveryAssistantMessage()
    message_strategy = CustomWindow(
        description="messages since the last tension rating",
        kinds=[EventKindFilter(kind="scene", subkind="tension")],
        min_messages=2,
        max_messages=8,
    )

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, TensionExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []
        tension = state.scene.tension if state.scene else None
        return map_tension(
            outcome.data,
            ctx.branch,
            previous_level=tension.level if tension else None,
            previous_type=tension.type if tension else None,
        )
