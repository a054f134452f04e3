# ABOUTME: Character extractors: presence, profiles, position/activity, mood, outfit, consolidation.
# ABOUTME: Presence runs once per message; the rest fan out over present characters.

from narrative_ledger.extraction.base import (
    GlobalExtractor,
    PerCharacterExtractor,
    format_character,
    format_state,
)
from narrative_ledger.extraction.context import RunContext
from narrative_ledger.extraction.mapping import (
    CONSOLIDATION_FLOOR,
    bound_consolidated,
    heal_outfit_changes,
    map_character_consolidation,
    map_mood_physical,
    map_outfit,
    map_position_activity,
    map_presence,
    map_profile,
)
from narrative_ledger.extraction.prompts import (
    CHARACTER_CONSOLIDATION,
    MOOD_PHYSICAL,
    OUTFIT,
    POSITION_ACTIVITY,
    PRESENCE,
    PROFILE,
)
from narrative_ledger.extraction.schemas import (
    CharacterConsolidationExtraction,
    MoodPhysicalExtraction,
    OutfitExtraction,
    PositionActivityExtraction,
    PresenceExtraction,
    ProfileExtraction,
)
from narrative_ledger.extraction.strategies import (
    CustomWindow,
    EveryNMessages,
    FixedNumber,
    NewEventsOfKind,
)
from narrative_ledger.extraction.validation import (
    filter_characters_appeared,
    filter_characters_departed,
    filter_moods_to_add,
    filter_moods_to_remove,
    filter_outfit_slots_to_add,
    filter_outfit_slots_to_remove,
    filter_physical_to_add,
    filter_physical_to_remove,
)
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import BaseEvent, CharacterAppeared, EventKindFilter
from narrative_ledger.state.snapshot import Projection

_MOOD_PHYSICAL_KINDS = [
    EventKindFilter(kind="character", subkind=subkind)
    for subkind in ("mood_added", "mood_removed", "physical_added", "physical_removed")
]


class PresenceExtractor(GlobalExtractor):
    """Detects characters entering and leaving the scene."""

    name = "presence"
    category = "characters"
    prompt = PRESENCE
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext) -> list[BaseEvent]:
        try:
            state = ctx.project()
        except NoSnapshotError:
            return []

        outcome = await self.ask(ctx, PresenceExtraction, state=format_state(state))
        if not outcome.success or outcome.data is None:
            return []

        kept = {
            name.lower()
            for name in filter_characters_appeared(
                ctx.prior, [c.name for c in outcome.data.appeared]
            )
        }
        appeared = []
        for character in outcome.data.appeared:
            if character.name.lower() in kept:
                appeared.append(character)
                kept.discard(character.name.lower())

        departed = filter_characters_departed(ctx.prior, outcome.data.departed)
        return map_presence(appeared, departed, ctx.branch)


class ProfileExtractor(PerCharacterExtractor):
    """Writes a profile for each character that appeared this turn."""

    name = "profile"
    category = "characters"
    prompt = PROFILE
    message_strategy = FixedNumber(n=2)
    run_strategy = NewEventsOfKind(kinds=[EventKindFilter(kind="character", subkind="appeared")])

    def characters(self, ctx: RunContext, projection: Projection) -> list[str]:
        names = []
        for event in ctx.turn.events:
            if not isinstance(event, CharacterAppeared):
                continue
            state = projection.find_character(event.character)
            if state is not None and state.profile is None and state.name not in names:
                names.append(state.name)
        return names

    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]:
        outcome = await self.ask(ctx, ProfileExtraction, character=character)
        if not outcome.success or outcome.data is None:
            return []
        return map_profile(character, outcome.data, ctx.branch)


class PositionActivityExtractor(PerCharacterExtractor):
    name = "position_activity"
    category = "characters"
    prompt = POSITION_ACTIVITY
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]:
        try:
            current = ctx.project().find_character(character)
        except NoSnapshotError:
            return []

        outcome = await self.ask(
            ctx,
            PositionActivityExtraction,
            character=character,
            character_state=format_character(current),
        )
        if not outcome.success or outcome.data is None:
            return []
        return map_position_activity(
            character,
            outcome.data,
            ctx.branch,
            current_position=current.position if current else "",
            current_activity=current.activity if current else None,
        )


class MoodPhysicalExtractor(PerCharacterExtractor):
    """Tracks moods and physical states every few messages."""

    name = "mood_physical"
    category = "characters"
    prompt = MOOD_PHYSICAL
    run_strategy = EveryNMessages(n=3)
    message_strategy = CustomWindow(
        description="messages since the character's mood or condition last changed",
        kinds=_MOOD_PHYSICAL_KINDS,
        min_messages=3,
        max_messages=10,
    )

    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]:
        try:
            current = ctx.project().find_character(character)
        except NoSnapshotError:
            return []

        outcome = await self.ask(
            ctx,
            MoodPhysicalExtraction,
            character=character,
            character_state=format_character(current),
        )
        if not outcome.success or outcome.data is None:
            return []

        mood, physical = outcome.data.mood, outcome.data.physical_state
        return map_mood_physical(
            character,
            filter_moods_to_add(ctx.prior, character, mood.added),
            filter_moods_to_remove(ctx.prior, character, mood.removed),
            filter_physical_to_add(ctx.prior, character, physical.added),
            filter_physical_to_remove(ctx.prior, character, physical.removed),
            ctx.branch,
        )


class OutfitExtractor(PerCharacterExtractor):
    name = "outfit"
    category = "characters"
    prompt = OUTFIT
    message_strategy = FixedNumber(n=2)

    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]:
        try:
            current = ctx.project().find_character(character)
        except NoSnapshotError:
            return []

        outcome = await self.ask(
            ctx,
            OutfitExtraction,
            character=character,
            character_state=format_character(current),
        )
        if not outcome.success or outcome.data is None:
            return []

        added, removed = heal_outfit_changes(outcome.data.added, outcome.data.removed)
        return map_outfit(
            character,
            filter_outfit_slots_to_add(ctx.prior, character, added),
            filter_outfit_slots_to_remove(ctx.prior, character, removed),
            ctx.branch,
        )


class CharacterConsolidationExtractor(PerCharacterExtractor):
    """Collapses near-duplicate moods and physical states."""

    name = "character_consolidation"
    category = "characters"
    default_temperature = 0.3
    prompt = CHARACTER_CONSOLIDATION
    run_strategy = EveryNMessages(n=6)
    message_strategy = FixedNumber(n=6)
    seeds = False

    async def run(self, ctx: RunContext, character: str) -> list[BaseEvent]:
        try:
            current = ctx.project().find_character(character)
        except NoSnapshotError:
            return []
        if current is None:
            return []
        lengths = (len(current.mood), len(current.physical_state))
        if max(lengths) <= CONSOLIDATION_FLOOR:
            return []

        outcome = await self.ask(
            ctx,
            CharacterConsolidationExtraction,
            character=character,
            character_state=format_character(current),
        )
        if not outcome.success or outcome.data is None:
            return []

        mood = bound_consolidated(current.mood, outcome.data.mood)
        physical = bound_consolidated(current.physical_state, outcome.data.physical_state)
        return map_character_consolidation(
            character,
            current.mood,
            mood,
            current.physical_state,
            physical,
            ctx.branch,
        )
