# ABOUTME: Pure functions turning validated extraction payloads into stamped events.
# ABOUTME: Never reads the store; includes the outfit removal self-heal and status gating.

from datetime import datetime

from narrative_ledger.extraction.schemas import (
    AppearedCharacter,
    ChapterDescriptionExtraction,
    ChapterEndedExtraction,
    ClimateExtraction,
    Interaction,
    LocationExtraction,
    PositionActivityExtraction,
    ProfileExtraction,
    TensionExtraction,
    TimeChangeExtraction,
    TopicToneExtraction,
)
from narrative_ledger.extraction.validation import dedupe_strings
from narrative_ledger.state.events import (
    ActivityChanged,
    BaseEvent,
    BranchPosition,
    ChapterDescribed,
    ChapterEnded,
    CharacterAppeared,
    CharacterDeparted,
    CharacterProfile,
    ClimateChanged,
    FeelingAdded,
    FeelingRemoved,
    LocationMoved,
    MoodAdded,
    MoodRemoved,
    NarrativeDescribed,
    OutfitChanged,
    PhysicalAdded,
    PhysicalRemoved,
    PositionChanged,
    ProfileSet,
    PropAdded,
    PropRemoved,
    SecretAdded,
    SecretRemoved,
    StatusChanged,
    SubjectOccurred,
    TensionChanged,
    TimeDelta,
    TimeInitial,
    TopicToneChanged,
    WantAdded,
    WantRemoved,
)
from narrative_ledger.state.names import find_matching_name
from narrative_ledger.state.snapshot import sorted_pair
from narrative_ledger.state.vocabulary import SUBJECTS, gate_status, tension_direction

REMOVAL_MARKERS = (
    "(removed)",
    "(taken off)",
    "(undressed)",
    "(off)",
    "(discarded)",
    "(shed)",
    "(stripped)",
    "(gone)",
    "(pulled off)",
    "(slipped off)",
    "(tossed aside)",
)

CONSOLIDATION_FLOOR = 2
CONSOLIDATION_CEILING = 5

_ATTITUDE_EVENTS: dict[str, tuple[type[BaseEvent], type[BaseEvent]]] = {
    "feelings": (FeelingAdded, FeelingRemoved),
    "secrets": (SecretAdded, SecretRemoved),
    "wants": (WantAdded, WantRemoved),
}


def map_initial_time(time_value: datetime, source: BranchPosition) -> list[BaseEvent]:
    return [TimeInitial(source=source, time=time_value)]


def map_time_change(payload: TimeChangeExtraction, source: BranchPosition) -> list[BaseEvent]:
    if not payload.changed:
        return []
    if not any((payload.days, payload.hours, payload.minutes, payload.seconds)):
        return []
    return [
        TimeDelta(
            source=source,
            days=payload.days,
            hours=payload.hours,
            minutes=payload.minutes,
            seconds=payload.seconds,
        )
    ]


def map_location(payload: LocationExtraction, source: BranchPosition) -> list[BaseEvent]:
    if not payload.changed:
        return []
    if not (payload.area or payload.place or payload.position):
        return []
    return [
        LocationMoved(
            source=source,
            new_area=payload.area.strip(),
            new_place=payload.place.strip(),
            new_position=payload.position.strip(),
            new_location_type=payload.location_type,
        )
    ]


def map_props(added: list[str], removed: list[str], source: BranchPosition) -> list[BaseEvent]:
    """Removals first so a re-added prop ends up present."""
    events: list[BaseEvent] = [PropRemoved(source=source, prop=p) for p in removed]
    events.extend(PropAdded(source=source, prop=p) for p in added)
    return events


def map_climate(payload: ClimateExtraction, source: BranchPosition) -> list[BaseEvent]:
    if not payload.conditions.strip():
        return []
    return [
        ClimateChanged(
            source=source,
            conditions=payload.conditions.strip(),
            temperature=payload.temperature,
        )
    ]


def map_topic_tone(
    payload: TopicToneExtraction,
    source: BranchPosition,
    previous: tuple[str, str] | None = None,
) -> list[BaseEvent]:
    topic, tone = payload.topic.strip(), payload.tone.strip()
    if not topic and not tone:
        return []
    if previous and (topic.lower(), tone.lower()) == (previous[0].lower(), previous[1].lower()):
        return []
    return [TopicToneChanged(source=source, topic=topic, tone=tone)]


def map_tension(
    payload: TensionExtraction,
    source: BranchPosition,
    previous_level: str | None = None,
    previous_type: str | None = None,
) -> list[BaseEvent]:
    """Emit a tension event with direction derived from the level scale."""
    direction = tension_direction(previous_level, payload.level)
    if previous_level == payload.level and previous_type == payload.type:
        return []
    return [
        TensionChanged(
            source=source,
            level=payload.level,
            type=payload.type,
            direction=direction,
        )
    ]


def map_presence(
    appeared: list[AppearedCharacter],
    departed: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    events: list[BaseEvent] = [
        CharacterAppeared(
            source=source,
            character=c.name,
            initial_position=c.position or None,
            initial_activity=c.activity or None,
            initial_mood=dedupe_strings(c.mood),
            initial_physical_state=dedupe_strings(c.physical_state),
        )
        for c in appeared
    ]
    events.extend(CharacterDeparted(source=source, character=name) for name in departed)
    return events


def map_profile(
    character: str,
    payload: ProfileExtraction,
    source: BranchPosition,
) -> list[BaseEvent]:
    profile = CharacterProfile(
        sex=payload.sex,  # type: ignore[arg-type]
        species=payload.species.strip() or "human",
        age=payload.age,
        appearance=dedupe_strings(payload.appearance),
        personality=dedupe_strings(payload.personality),
    )
    return [ProfileSet(source=source, character=character, profile=profile)]


def map_position_activity(
    character: str,
    payload: PositionActivityExtraction,
    source: BranchPosition,
    current_position: str = "",
    current_activity: str | None = None,
) -> list[BaseEvent]:
    events: list[BaseEvent] = []
    position = (payload.position or "").strip()
    if position and position.lower() != current_position.strip().lower():
        events.append(PositionChanged(source=source, character=character, new_value=position))
    if payload.activity_changed:
        activity = (payload.activity or "").strip() or None
        if (activity or "").lower() != (current_activity or "").strip().lower():
            events.append(ActivityChanged(source=source, character=character, new_value=activity))
    return events


def map_mood_physical(
    character: str,
    mood_added: list[str],
    mood_removed: list[str],
    physical_added: list[str],
    physical_removed: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    events: list[BaseEvent] = [
        MoodRemoved(source=source, character=character, mood=m) for m in mood_removed
    ]
    events.extend(MoodAdded(source=source, character=character, mood=m) for m in mood_added)
    events.extend(
        PhysicalRemoved(source=source, character=character, physical_state=p)
        for p in physical_removed
    )
    events.extend(
        PhysicalAdded(source=source, character=character, physical_state=p)
        for p in physical_added
    )
    return events


def has_removal_marker(value: str) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in REMOVAL_MARKERS)


def heal_outfit_changes(
    added: dict[str, str],
    removed: list[str],
) -> tuple[dict[str, str], list[str]]:
    """Reclassify "added" values that describe taking something off.

    Generators sometimes report ``{"jacket": "denim jacket (taken off)"}``
    as an addition; such slots become removals instead.
    """
    healed_added = {}
    healed_removed = list(removed)
    for slot, value in added.items():
        if has_removal_marker(value):
            if slot not in healed_removed:
                healed_removed.append(slot)
        else:
            healed_added[slot] = value
    return healed_added, healed_removed


def map_outfit(
    character: str,
    added: dict[str, str],
    removed: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    """Removals first, then new items; a slot both removed and filled ends up filled."""
    events: list[BaseEvent] = [
        OutfitChanged(source=source, character=character, slot=slot, new_value=None)
        for slot in removed
        if slot not in added
    ]
    events.extend(
        OutfitChanged(source=source, character=character, slot=slot, new_value=value)
        for slot, value in added.items()
    )
    return events


def map_attitude(
    field: str,
    from_character: str,
    toward_character: str,
    added: list[str],
    removed: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    """Events for one attitude list (feelings, secrets, or wants) in one direction."""
    added_type, removed_type = _ATTITUDE_EVENTS[field]
    events: list[BaseEvent] = [
        removed_type(
            source=source,
            from_character=from_character,
            toward_character=toward_character,
            value=v,
        )
        for v in removed
    ]
    events.extend(
        added_type(
            source=source,
            from_character=from_character,
            toward_character=toward_character,
            value=v,
        )
        for v in added
    )
    return events


def map_status(
    pair: tuple[str, str],
    proposed: str,
    current: str,
    subjects: set[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    """Gate the proposed status and emit an event only on a real change."""
    gated = gate_status(proposed, current, subjects)
    if gated == current:
        return []
    return [StatusChanged(source=source, pair=sorted_pair(*pair), new_status=gated)]


def map_subjects(
    interactions: list[Interaction],
    present: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    """Subject events for known subjects between two distinct present characters."""
    seen: set[tuple[tuple[str, str], str]] = set()
    events: list[BaseEvent] = []
    for interaction in interactions:
        a = find_matching_name(interaction.pair[0], present)
        b = find_matching_name(interaction.pair[1], present)
        if a is None or b is None or a == b:
            continue
        if interaction.subject not in SUBJECTS:
            continue
        pair = sorted_pair(a, b)
        if (pair, interaction.subject) in seen:
            continue
        seen.add((pair, interaction.subject))
        events.append(SubjectOccurred(source=source, pair=pair, subject=interaction.subject))
    return events


def map_narrative(description: str | None, source: BranchPosition) -> list[BaseEvent]:
    if not description or not description.strip():
        return []
    return [NarrativeDescribed(source=source, description=description.strip())]


def map_chapter_ended(
    payload: ChapterEndedExtraction,
    chapter_index: int,
    source: BranchPosition,
) -> list[BaseEvent]:
    if not payload.ended:
        return []
    return [ChapterEnded(source=source, chapter_index=chapter_index, reason=payload.reason)]


def map_chapter_described(
    payload: ChapterDescriptionExtraction,
    chapter_index: int,
    source: BranchPosition,
) -> list[BaseEvent]:
    return [
        ChapterDescribed(
            source=source,
            chapter_index=chapter_index,
            title=payload.title.strip(),
            summary=payload.summary.strip(),
        )
    ]


def bound_consolidated(
    old: list[str],
    new: list[str],
    floor: int = CONSOLIDATION_FLOOR,
    ceiling: int = CONSOLIDATION_CEILING,
) -> list[str]:
    """Clamp a consolidated list to ``[floor, ceiling]`` entries.

    Lists that were already below the floor are left as they were; a
    consolidation that went too far is topped up from the original entries.
    """
    old = dedupe_strings(old)
    if len(old) < floor:
        return old
    result = dedupe_strings(new)[:ceiling]
    keys = {v.lower() for v in result}
    for value in old:
        if len(result) >= floor:
            break
        if value.lower() not in keys:
            result.append(value)
            keys.add(value.lower())
    return result


def diff_lists(old: list[str], new: list[str]) -> tuple[list[str], list[str]]:
    """Entries to remove from ``old`` and to add from ``new`` (trimmed, case-insensitive)."""
    old_keys = {v.strip().lower() for v in old}
    new_keys = {v.strip().lower() for v in new}
    removed = [v for v in dedupe_strings(old) if v.lower() not in new_keys]
    added = [v for v in dedupe_strings(new) if v.lower() not in old_keys]
    return removed, added


def map_character_consolidation(
    character: str,
    old_mood: list[str],
    new_mood: list[str],
    old_physical: list[str],
    new_physical: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    """Removals first, then additions, so the folded list matches the consolidated one."""
    mood_removed, mood_added = diff_lists(old_mood, new_mood)
    physical_removed, physical_added = diff_lists(old_physical, new_physical)
    return map_mood_physical(
        character,
        mood_added,
        mood_removed,
        physical_added,
        physical_removed,
        source,
    )


def map_attitude_consolidation(
    from_character: str,
    toward_character: str,
    old_feelings: list[str],
    new_feelings: list[str],
    old_wants: list[str],
    new_wants: list[str],
    source: BranchPosition,
) -> list[BaseEvent]:
    feelings_removed, feelings_added = diff_lists(old_feelings, new_feelings)
    wants_removed, wants_added = diff_lists(old_wants, new_wants)
    return [
        *map_attitude(
            "feelings",
            from_character,
            toward_character,
            feelings_added,
            feelings_removed,
            source,
        ),
        *map_attitude(
            "wants",
            from_character,
            toward_character,
            wants_added,
            wants_removed,
            source,
        ),
    ]
