# ABOUTME: Applies single events to a projection in place.
# ABOUTME: The per-event rules of the fold used by the projection engine.

from datetime import timedelta

import structlog

from narrative_ledger.state.events import (
    ActivityChanged,
    BaseEvent,
    ChapterDescribed,
    ChapterEnded,
    CharacterAppeared,
    CharacterDeparted,
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
from narrative_ledger.state.snapshot import (
    Chapter,
    CharacterState,
    ClimateState,
    LocationState,
    Projection,
    RelationshipState,
    SceneState,
    Tension,
    contains_ci,
    pair_key,
    remove_ci,
    sorted_pair,
)

log = structlog.get_logger()

_ATTITUDE_FIELDS: dict[type[BaseEvent], tuple[str, bool]] = {
    FeelingAdded: ("feelings", True),
    FeelingRemoved: ("feelings", False),
    SecretAdded: ("secrets", True),
    SecretRemoved: ("secrets", False),
    WantAdded: ("wants", True),
    WantRemoved: ("wants", False),
}


def canonical_name(projection: Projection, name: str) -> str:
    """Resolve a name to the spelling already used in the projection."""
    existing = projection.find_character(name)
    return existing.name if existing else name.strip()


def _ensure_character(projection: Projection, name: str) -> CharacterState:
    state = projection.find_character(name)
    if state is None:
        state = CharacterState(name=name.strip())
        projection.characters[state.name] = state
    return state


def ensure_relationship(projection: Projection, a: str, b: str) -> RelationshipState:
    """Fetch the relationship for a pair, creating an empty one if missing."""
    a = canonical_name(projection, a)
    b = canonical_name(projection, b)
    key = pair_key(a, b)
    rel = projection.relationships.get(key)
    if rel is None:
        rel = RelationshipState(pair=sorted_pair(a, b))
        projection.relationships[key] = rel
    return rel


def _add_unique(values: list[str], value: str) -> None:
    if value.strip() and not contains_ci(values, value):
        values.append(value.strip())


def _apply_time(projection: Projection, event: TimeInitial | TimeDelta) -> None:
    if isinstance(event, TimeInitial):
        projection.time = event.time
        return
    if projection.time is None:
        log.debug("time_delta_without_base", event_id=event.id)
        return
    projection.time = projection.time + timedelta(
        days=event.days,
        hours=event.hours,
        minutes=event.minutes,
        seconds=event.seconds,
    )


def _apply_location(projection: Projection, event: BaseEvent) -> None:
    if projection.location is None:
        projection.location = LocationState()
    location = projection.location

    if isinstance(event, LocationMoved):
        if event.new_place and event.new_place.lower() != location.place.lower():
            location.props = []
        if event.new_area:
            location.area = event.new_area
        if event.new_place:
            location.place = event.new_place
        if event.new_position:
            location.position = event.new_position
        if event.new_location_type:
            location.location_type = event.new_location_type
    elif isinstance(event, PropAdded):
        _add_unique(location.props, event.prop)
    elif isinstance(event, PropRemoved):
        location.props = remove_ci(location.props, event.prop)


def _apply_appeared(projection: Projection, event: CharacterAppeared) -> None:
    state = _ensure_character(projection, event.character)
    if event.initial_position:
        state.position = event.initial_position
    if event.initial_activity:
        state.activity = event.initial_activity
    for mood in event.initial_mood:
        _add_unique(state.mood, mood)
    for physical in event.initial_physical_state:
        _add_unique(state.physical_state, physical)

    for other in projection.characters_present:
        if other.lower() != state.name.lower():
            ensure_relationship(projection, state.name, other)

    if not projection.is_present(state.name):
        projection.characters_present.append(state.name)


def _apply_character(projection: Projection, event: BaseEvent) -> None:
    if isinstance(event, CharacterAppeared):
        _apply_appeared(projection, event)
        return
    if isinstance(event, CharacterDeparted):
        present = projection.present_name(event.character) or event.character
        projection.characters_present = remove_ci(projection.characters_present, present)
        return

    state = _ensure_character(projection, event.character)  # type: ignore[attr-defined]
    if isinstance(event, ProfileSet):
        state.profile = event.profile
    elif isinstance(event, PositionChanged):
        state.position = event.new_value
    elif isinstance(event, ActivityChanged):
        state.activity = event.new_value
    elif isinstance(event, MoodAdded):
        _add_unique(state.mood, event.mood)
    elif isinstance(event, MoodRemoved):
        state.mood = remove_ci(state.mood, event.mood)
    elif isinstance(event, PhysicalAdded):
        _add_unique(state.physical_state, event.physical_state)
    elif isinstance(event, PhysicalRemoved):
        state.physical_state = remove_ci(state.physical_state, event.physical_state)
    elif isinstance(event, OutfitChanged):
        setattr(state.outfit, event.slot, event.new_value)


def _apply_relationship(projection: Projection, event: BaseEvent) -> None:
    field_info = _ATTITUDE_FIELDS.get(type(event))
    if field_info is not None:
        field_name, adding = field_info
        rel = ensure_relationship(
            projection,
            event.from_character,  # type: ignore[attr-defined]
            event.toward_character,  # type: ignore[attr-defined]
        )
        attitude = rel.attitude(event.from_character)  # type: ignore[attr-defined]
        values = getattr(attitude, field_name)
        if adding:
            _add_unique(values, event.value)  # type: ignore[attr-defined]
        else:
            remaining = remove_ci(values, event.value)  # type: ignore[attr-defined]
            setattr(attitude, field_name, remaining)
        return

    if isinstance(event, StatusChanged):
        ensure_relationship(projection, *event.pair).status = event.new_status
    elif isinstance(event, SubjectOccurred):
        rel = ensure_relationship(projection, *event.pair)
        if event.subject not in rel.subjects:
            rel.subjects.append(event.subject)


def _apply_scene(projection: Projection, event: TopicToneChanged | TensionChanged) -> None:
    if projection.scene is None:
        projection.scene = SceneState()
    if isinstance(event, TopicToneChanged):
        projection.scene.topic = event.topic
        projection.scene.tone = event.tone
    else:
        projection.scene.tension = Tension(
            level=event.level,
            type=event.type,
            direction=event.direction,
        )


def _chapter(projection: Projection, index: int) -> Chapter:
    for chapter in projection.chapters:
        if chapter.index == index:
            return chapter
    chapter = Chapter(index=index)
    projection.chapters.append(chapter)
    projection.chapters.sort(key=lambda c: c.index)
    return chapter


def apply_event(projection: Projection, event: BaseEvent) -> None:
    """Mutate ``projection`` to reflect one event.

    Deleted events and unrecognized kinds leave the projection untouched.
    """
    if event.deleted:
        return

    kind = getattr(event, "kind", None)
    if kind == "time":
        _apply_time(projection, event)  # type: ignore[arg-type]
    elif kind == "location":
        _apply_location(projection, event)
    elif isinstance(event, ClimateChanged):
        projection.climate = ClimateState(
            conditions=event.conditions,
            temperature=event.temperature,
        )
    elif kind == "character":
        _apply_character(projection, event)
    elif kind == "relationship":
        _apply_relationship(projection, event)
    elif kind == "scene":
        _apply_scene(projection, event)  # type: ignore[arg-type]
    elif isinstance(event, ChapterEnded):
        chapter = _chapter(projection, event.chapter_index)
        chapter.ended_at = event.source
        chapter.end_reason = event.reason
        projection.current_chapter = event.chapter_index + 1
    elif isinstance(event, ChapterDescribed):
        chapter = _chapter(projection, event.chapter_index)
        chapter.title = event.title
        chapter.summary = event.summary
    elif isinstance(event, NarrativeDescribed):
        # Narrative entries need per-message context and are built by the fold
        pass
    else:
        log.debug("unknown_event_ignored", tag=f"{kind}/{getattr(event, 'subkind', None)}")

