# ABOUTME: Pydantic schemas for the JSON each extractor asks the generator to return.
# ABOUTME: Normalizes loose generator output so validation and mapping see clean values.

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from narrative_ledger.state.vocabulary import (
    OUTFIT_SLOTS,
    ChapterEndReason,
    LocationType,
    RelationshipStatus,
    TensionLevel,
    TensionType,
)


def _clean_list(values: list[str] | None) -> list[str]:
    if not values:
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


class ListChange(BaseModel):
    """Additions and removals proposed for one list attribute."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @field_validator("added", "removed", mode="before")
    @classmethod
    def clean(cls, v: list[str] | None) -> list[str]:
        return _clean_list(v)


# Core


class InitialTimeExtraction(BaseModel):
    time: datetime


class TimeChangeExtraction(BaseModel):
    changed: bool = False
    days: int = Field(default=0, ge=0)
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)
    seconds: int = Field(default=0, ge=0)


class LocationExtraction(BaseModel):
    changed: bool = True
    area: str = ""
    place: str = ""
    position: str = ""
    location_type: LocationType | None = None

    @field_validator("location_type", mode="before")
    @classmethod
    def normalize_type(cls, v: str | None) -> str | None:
        return v.strip().lower() if isinstance(v, str) and v.strip() else None


class ClimateExtraction(BaseModel):
    conditions: str
    temperature: float | None = None


class TopicToneExtraction(BaseModel):
    topic: str
    tone: str


class TensionExtraction(BaseModel):
    level: TensionLevel
    type: TensionType = "conversation"

    @field_validator("level", "type", mode="before")
    @classmethod
    def lower(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


# Props


class PropsChangeExtraction(ListChange):
    pass


class PropsConfirmationExtraction(BaseModel):
    """Full list of props that really belong to the scene."""

    props: list[str] = Field(default_factory=list)

    @field_validator("props", mode="before")
    @classmethod
    def clean(cls, v: list[str] | None) -> list[str]:
        return _clean_list(v)


# Characters


class AppearedCharacter(BaseModel):
    name: str
    position: str | None = None
    activity: str | None = None
    mood: list[str] = Field(default_factory=list)
    physical_state: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("character name must not be empty")
        return v.strip()


class PresenceExtraction(BaseModel):
    appeared: list[AppearedCharacter] = Field(default_factory=list)
    departed: list[str] = Field(default_factory=list)

    @field_validator("departed", mode="before")
    @classmethod
    def clean(cls, v: list[str] | None) -> list[str]:
        return _clean_list(v)


class ProfileExtraction(BaseModel):
    sex: str = "O"
    species: str = "human"
    age: int = Field(default=0, ge=0)
    appearance: list[str] = Field(default_factory=list)
    personality: list[str] = Field(default_factory=list)

    @field_validator("sex", mode="before")
    @classmethod
    def normalize_sex(cls, v: str | None) -> str:
        value = (v or "").strip().upper()[:1]
        return value if value in ("M", "F") else "O"


class PositionActivityExtraction(BaseModel):
    position: str | None = None
    activity: str | None = None
    activity_changed: bool = False


class MoodPhysicalExtraction(BaseModel):
    mood: ListChange = Field(default_factory=ListChange)
    physical_state: ListChange = Field(default_factory=ListChange)


class OutfitExtraction(BaseModel):
    added: dict[str, str] = Field(default_factory=dict)
    removed: list[str] = Field(default_factory=list)

    @field_validator("added", mode="before")
    @classmethod
    def known_slots(cls, v: dict[str, str] | None) -> dict[str, str]:
        if not v:
            return {}
        return {
            slot.strip().lower(): value
            for slot, value in v.items()
            if slot.strip().lower() in OUTFIT_SLOTS and isinstance(value, str) and value.strip()
        }

    @field_validator("removed", mode="before")
    @classmethod
    def known_removed_slots(cls, v: list[str] | None) -> list[str]:
        return [s.strip().lower() for s in _clean_list(v) if s.strip().lower() in OUTFIT_SLOTS]


class CharacterConsolidationExtraction(BaseModel):
    mood: list[str] = Field(default_factory=list)
    physical_state: list[str] = Field(default_factory=list)

    @field_validator("mood", "physical_state", mode="before")
    @classmethod
    def clean(cls, v: list[str] | None) -> list[str]:
        return _clean_list(v)


# Relationships


class AttitudeExtraction(BaseModel):
    """Changes to one attitude list in both directions of a pair."""

    a_to_b: ListChange = Field(default_factory=ListChange)
    b_to_a: ListChange = Field(default_factory=ListChange)


class StatusExtraction(BaseModel):
    status: RelationshipStatus

    @field_validator("status", mode="before")
    @classmethod
    def lower(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


class Interaction(BaseModel):
    pair: tuple[str, str]
    subject: str

    @field_validator("subject", mode="before")
    @classmethod
    def normalize(cls, v: str) -> str:
        return v.strip().lower().replace(" ", "_") if isinstance(v, str) else v


class SubjectsExtraction(BaseModel):
    interactions: list[Interaction] = Field(default_factory=list)


class DirectionalConsolidation(BaseModel):
    feelings: list[str] = Field(default_factory=list)
    wants: list[str] = Field(default_factory=list)

    @field_validator("feelings", "wants", mode="before")
    @classmethod
    def clean(cls, v: list[str] | None) -> list[str]:
        return _clean_list(v)


# Narrative and chapters


class NarrativeExtraction(BaseModel):
    description: str | None = None


class MilestoneExtraction(BaseModel):
    description: str


class ChapterEndedExtraction(BaseModel):
    ended: bool = False
    reason: ChapterEndReason = "manual"


class ChapterDescriptionExtraction(BaseModel):
    title: str
    summary: str
