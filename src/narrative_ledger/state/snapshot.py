# ABOUTME: Materialized narrative state models: Snapshot checkpoints and Projection views.
# ABOUTME: Characters, relationships, location, scene, chapters, and narrative entries.

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from narrative_ledger.state.events import BranchPosition, CharacterProfile, now_ms
from narrative_ledger.state.names import find_matching_name
from narrative_ledger.state.vocabulary import (
    ChapterEndReason,
    LocationType,
    RelationshipStatus,
    TensionDirection,
    TensionLevel,
    TensionType,
)


def pair_key(a: str, b: str) -> str:
    """Key for an unordered character pair, e.g. ``Alice|Bob``."""
    first, second = sorted_pair(a, b)
    return f"{first}|{second}"


def sorted_pair(a: str, b: str) -> tuple[str, str]:
    """Sort two names case-insensitively so pair identity ignores order."""
    return (a, b) if a.lower() <= b.lower() else (b, a)


def contains_ci(values: list[str], candidate: str) -> bool:
    """Case-insensitive, whitespace-trimmed membership test."""
    needle = candidate.strip().lower()
    return any(v.strip().lower() == needle for v in values)


def remove_ci(values: list[str], candidate: str) -> list[str]:
    needle = candidate.strip().lower()
    return [v for v in values if v.strip().lower() != needle]


class Outfit(BaseModel):
    """What a character wears, one optional item per slot."""

    head: str | None = None
    neck: str | None = None
    jacket: str | None = None
    back: str | None = None
    torso: str | None = None
    legs: str | None = None
    footwear: str | None = None
    socks: str | None = None
    underwear: str | None = None


class CharacterState(BaseModel):
    """Everything tracked about one character."""

    name: str
    profile: CharacterProfile | None = None
    position: str = ""
    activity: str | None = None
    mood: list[str] = Field(default_factory=list)
    physical_state: list[str] = Field(default_factory=list)
    outfit: Outfit = Field(default_factory=Outfit)


class Attitude(BaseModel):
    """One character's stance toward another."""

    feelings: list[str] = Field(default_factory=list)
    secrets: list[str] = Field(default_factory=list)
    wants: list[str] = Field(default_factory=list)


class RelationshipState(BaseModel):
    """Relationship between an unordered pair, with one attitude per direction."""

    pair: tuple[str, str]
    status: RelationshipStatus = "strangers"
    a_to_b: Attitude = Field(default_factory=Attitude)
    b_to_a: Attitude = Field(default_factory=Attitude)
    subjects: list[str] = Field(default_factory=list)

    def attitude(self, from_character: str) -> Attitude:
        """Attitude held by ``from_character`` toward the other member."""
        if from_character.lower() == self.pair[0].lower():
            return self.a_to_b
        return self.b_to_a


class LocationState(BaseModel):
    area: str = ""
    place: str = ""
    position: str = ""
    props: list[str] = Field(default_factory=list)
    location_type: LocationType = "modern"

    def describe(self) -> str:
        return " · ".join(p for p in (self.position, self.place) if p)


class ClimateState(BaseModel):
    conditions: str = ""
    temperature: float | None = None


class Tension(BaseModel):
    level: TensionLevel = "relaxed"
    type: TensionType = "conversation"
    direction: TensionDirection = "stable"


class SceneState(BaseModel):
    topic: str = ""
    tone: str = ""
    tension: Tension = Field(default_factory=Tension)


class Chapter(BaseModel):
    index: int
    title: str = ""
    summary: str = ""
    ended_at: BranchPosition | None = None
    end_reason: ChapterEndReason | None = None


class NarrativeSubject(BaseModel):
    pair: tuple[str, str]
    subject: str
    milestone_description: str | None = None

    @property
    def is_milestone(self) -> bool:
        return bool(self.milestone_description)


class NarrativeEntry(BaseModel):
    """A described story beat with the scene context at the time it happened."""

    source: BranchPosition
    description: str
    witnesses: list[str] = Field(default_factory=list)
    location: str = ""
    tension_level: TensionLevel = "relaxed"
    tension_type: TensionType = "conversation"
    subjects: list[NarrativeSubject] = Field(default_factory=list)
    chapter_index: int = 0
    time: datetime | None = None


class Snapshot(BaseModel):
    """Full narrative state at a branch position, used as a replay checkpoint."""

    type: Literal["initial", "chapter", "checkpoint"] = "initial"
    chapter_index: int | None = None
    source: BranchPosition
    timestamp: int = Field(default_factory=now_ms)

    time: datetime | None = None
    location: LocationState | None = None
    climate: ClimateState | None = None
    scene: SceneState | None = None
    characters: dict[str, CharacterState] = Field(default_factory=dict)
    characters_present: list[str] = Field(default_factory=list)
    relationships: dict[str, RelationshipState] = Field(default_factory=dict)
    current_chapter: int = 0
    chapters: list[Chapter] = Field(default_factory=list)
    narrative_events: list[NarrativeEntry] = Field(default_factory=list)

    @property
    def swipe_id(self) -> int:
        return self.source.swipe_id


class Projection(Snapshot):
    """Derived world state at a branch position, with lookup helpers.

    Projections are always computed from a snapshot plus events and are
    never persisted directly.
    """

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, source: BranchPosition) -> "Projection":
        """Deep-copy a snapshot into a fresh projection positioned at ``source``."""
        data = snapshot.model_dump()
        data["source"] = source
        return cls.model_validate(data)

    def to_snapshot(
        self,
        snapshot_type: Literal["initial", "chapter", "checkpoint"],
        chapter_index: int | None = None,
    ) -> Snapshot:
        data = self.model_dump()
        data["type"] = snapshot_type
        data["chapter_index"] = chapter_index
        data["timestamp"] = now_ms()
        return Snapshot.model_validate(data)

    def find_character(self, name: str) -> CharacterState | None:
        """Look up a character by name, ignoring case, titles, and surnames."""
        if name in self.characters:
            return self.characters[name]
        key = find_matching_name(name, self.characters)
        return self.characters[key] if key is not None else None

    def present_name(self, name: str) -> str | None:
        """Spelling under which a matching character is present, if any."""
        return find_matching_name(name, self.characters_present)

    def is_present(self, name: str) -> bool:
        return self.present_name(name) is not None

    def relationship(self, a: str, b: str) -> RelationshipState | None:
        return self.relationships.get(pair_key(a, b))

    def present_pairs(self) -> list[tuple[str, str]]:
        """Sorted pairs of present characters that have a relationship entry."""
        pairs = []
        for _, rel in sorted(self.relationships.items()):
            if self.is_present(rel.pair[0]) and self.is_present(rel.pair[1]):
                pairs.append(rel.pair)
        return pairs

    def pair_subjects(self, a: str, b: str) -> set[str]:
        """Every interaction subject recorded for the pair so far."""
        rel = self.relationship(a, b)
        return set(rel.subjects) if rel else set()
