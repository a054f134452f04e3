# ABOUTME: Typed event records, the only unit of narrative state mutation.
# ABOUTME: Defines BranchPosition, every kind/subkind variant, and the tagged Event union.

import itertools
import time
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

from narrative_ledger.state.vocabulary import (
    ChapterEndReason,
    LocationType,
    OutfitSlot,
    RelationshipStatus,
    TensionDirection,
    TensionLevel,
    TensionType,
)

_sequence = itertools.count()


def new_event_id() -> str:
    """Generate a unique, time-ordered event id.

    Fixed-width so that plain string comparison follows creation order.
    """
    return f"{time.time_ns():020d}-{next(_sequence) % 1_000_000:06d}"


def now_ms() -> int:
    """Current wall clock in milliseconds."""
    return time.time_ns() // 1_000_000


class BranchPosition(BaseModel):
    """A point in the branching chat tree: message index plus swipe variant."""

    model_config = ConfigDict(frozen=True)

    message_id: int = Field(ge=0)
    swipe_id: int = Field(default=0, ge=0)

    def __str__(self) -> str:
        return f"{self.message_id}.{self.swipe_id}"


class BaseEvent(BaseModel):
    """Fields shared by every event variant."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_event_id)
    source: BranchPosition
    timestamp: int = Field(default_factory=now_ms)
    deleted: bool = False

    @property
    def tag(self) -> str:
        """The kind/subkind tag, e.g. ``character/mood_added``."""
        return f"{self.kind}/{self.subkind}"  # type: ignore[attr-defined]

    @property
    def payload(self) -> dict[str, Any]:
        """Variant-specific fields without the envelope."""
        return self.model_dump(exclude={"id", "source", "timestamp", "deleted", "kind", "subkind"})

    def sort_key(self) -> tuple[int, int, str]:
        return (self.source.message_id, self.timestamp, self.id)


# Time


class TimeInitial(BaseEvent):
    kind: Literal["time"] = "time"
    subkind: Literal["initial"] = "initial"
    time: datetime


class TimeDelta(BaseEvent):
    kind: Literal["time"] = "time"
    subkind: Literal["delta"] = "delta"
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0


# Location


class LocationMoved(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["moved"] = "moved"
    new_area: str = ""
    new_place: str = ""
    new_position: str = ""
    new_location_type: LocationType | None = None


class PropAdded(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["prop_added"] = "prop_added"
    prop: str


class PropRemoved(BaseEvent):
    kind: Literal["location"] = "location"
    subkind: Literal["prop_removed"] = "prop_removed"
    prop: str


# Climate


class ClimateChanged(BaseEvent):
    kind: Literal["climate"] = "climate"
    subkind: Literal["changed"] = "changed"
    conditions: str
    temperature: float | None = None


# Characters


class CharacterProfile(BaseModel):
    """Stable descriptive facts about a character."""

    sex: Literal["M", "F", "O"] = "O"
    species: str = "human"
    age: int = Field(default=0, ge=0)
    appearance: list[str] = Field(default_factory=list)
    personality: list[str] = Field(default_factory=list)


class CharacterAppeared(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["appeared"] = "appeared"
    character: str
    initial_position: str | None = None
    initial_activity: str | None = None
    initial_mood: list[str] = Field(default_factory=list)
    initial_physical_state: list[str] = Field(default_factory=list)


class CharacterDeparted(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["departed"] = "departed"
    character: str


class ProfileSet(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["profile_set"] = "profile_set"
    character: str
    profile: CharacterProfile


class PositionChanged(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["position_changed"] = "position_changed"
    character: str
    new_value: str


class ActivityChanged(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["activity_changed"] = "activity_changed"
    character: str
    new_value: str | None = None


class MoodAdded(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["mood_added"] = "mood_added"
    character: str
    mood: str


class MoodRemoved(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["mood_removed"] = "mood_removed"
    character: str
    mood: str


class OutfitChanged(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["outfit_changed"] = "outfit_changed"
    character: str
    slot: OutfitSlot
    new_value: str | None = None


class PhysicalAdded(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["physical_added"] = "physical_added"
    character: str
    physical_state: str


class PhysicalRemoved(BaseEvent):
    kind: Literal["character"] = "character"
    subkind: Literal["physical_removed"] = "physical_removed"
    character: str
    physical_state: str


# Relationships


class _DirectionalAttitudeEvent(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    from_character: str
    toward_character: str
    value: str


class FeelingAdded(_DirectionalAttitudeEvent):
    subkind: Literal["feeling_added"] = "feeling_added"


class FeelingRemoved(_DirectionalAttitudeEvent):
    subkind: Literal["feeling_removed"] = "feeling_removed"


class SecretAdded(_DirectionalAttitudeEvent):
    subkind: Literal["secret_added"] = "secret_added"


class SecretRemoved(_DirectionalAttitudeEvent):
    subkind: Literal["secret_removed"] = "secret_removed"


class WantAdded(_DirectionalAttitudeEvent):
    subkind: Literal["want_added"] = "want_added"


class WantRemoved(_DirectionalAttitudeEvent):
    subkind: Literal["want_removed"] = "want_removed"


class StatusChanged(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    subkind: Literal["status_changed"] = "status_changed"
    pair: tuple[str, str]
    new_status: RelationshipStatus


class SubjectOccurred(BaseEvent):
    kind: Literal["relationship"] = "relationship"
    subkind: Literal["subject"] = "subject"
    pair: tuple[str, str]
    subject: str
    milestone_description: str | None = None


# Scene


class TopicToneChanged(BaseEvent):
    kind: Literal["scene"] = "scene"
    subkind: Literal["topic_tone"] = "topic_tone"
    topic: str
    tone: str


class TensionChanged(BaseEvent):
    kind: Literal["scene"] = "scene"
    subkind: Literal["tension"] = "tension"
    level: TensionLevel
    type: TensionType
    direction: TensionDirection


# Narrative and chapters


class NarrativeDescribed(BaseEvent):
    kind: Literal["narrative"] = "narrative"
    subkind: Literal["described"] = "described"
    description: str


class ChapterEnded(BaseEvent):
    kind: Literal["chapter"] = "chapter"
    subkind: Literal["ended"] = "ended"
    chapter_index: int = Field(ge=0)
    reason: ChapterEndReason


class ChapterDescribed(BaseEvent):
    kind: Literal["chapter"] = "chapter"
    subkind: Literal["described"] = "described"
    chapter_index: int = Field(ge=0)
    title: str
    summary: str


EVENT_TYPES: tuple[type[BaseEvent], ...] = (
    TimeInitial,
    TimeDelta,
    LocationMoved,
    PropAdded,
    PropRemoved,
    ClimateChanged,
    CharacterAppeared,
    CharacterDeparted,
    ProfileSet,
    PositionChanged,
    ActivityChanged,
    MoodAdded,
    MoodRemoved,
    OutfitChanged,
    PhysicalAdded,
    PhysicalRemoved,
    FeelingAdded,
    FeelingRemoved,
    SecretAdded,
    SecretRemoved,
    WantAdded,
    WantRemoved,
    StatusChanged,
    SubjectOccurred,
    TopicToneChanged,
    TensionChanged,
    NarrativeDescribed,
    ChapterEnded,
    ChapterDescribed,
)


def _type_tag(event_type: type[BaseEvent]) -> str:
    fields = event_type.model_fields
    return f"{fields['kind'].default}/{fields['subkind'].default}"


EVENT_TAGS: dict[str, type[BaseEvent]] = {_type_tag(t): t for t in EVENT_TYPES}


def _event_discriminator(value: Any) -> str | None:
    if isinstance(value, dict):
        return f"{value.get('kind')}/{value.get('subkind')}"
    return f"{getattr(value, 'kind', None)}/{getattr(value, 'subkind', None)}"


Event = Annotated[
    Union[tuple(Annotated[t, Tag(_type_tag(t))] for t in EVENT_TYPES)],  # type: ignore[valid-type]
    Discriminator(_event_discriminator),
]

EventListAdapter: TypeAdapter[list[BaseEvent]] = TypeAdapter(list[Event])


class EventKindFilter(BaseModel):
    """Matches events by kind and, optionally, subkind."""

    model_config = ConfigDict(frozen=True)

    kind: str
    subkind: str | None = None

    def matches(self, event: BaseEvent) -> bool:
        if event.kind != self.kind:  # type: ignore[attr-defined]
            return False
        return self.subkind is None or event.subkind == self.subkind  # type: ignore[attr-defined]


def matches_any(event: BaseEvent, filters: list[EventKindFilter]) -> bool:
    """True when the event matches at least one filter."""
    return any(f.matches(event) for f in filters)


def sort_events(events: list[BaseEvent]) -> list[BaseEvent]:
    """Order events by message, then timestamp, then id."""
    return sorted(events, key=lambda e: e.sort_key())
