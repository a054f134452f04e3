# ABOUTME: Closed vocabularies shared by events, snapshots, and extractors.
# ABOUTME: Outfit slots, location types, tension scales, relationship statuses, and subjects.

from typing import Literal, get_args

OutfitSlot = Literal[
    "head",
    "neck",
    "jacket",
    "back",
    "torso",
    "legs",
    "footwear",
    "socks",
    "underwear",
]
OUTFIT_SLOTS: tuple[str, ...] = get_args(OutfitSlot)

LocationType = Literal[
    "outdoor",
    "modern",
    "heated",
    "unheated",
    "underground",
    "tent",
    "vehicle",
]
LOCATION_TYPES: tuple[str, ...] = get_args(LocationType)

# Ordered from calmest to most intense
TensionLevel = Literal[
    "relaxed",
    "aware",
    "guarded",
    "tense",
    "charged",
    "volatile",
    "explosive",
]
TENSION_LEVELS: tuple[str, ...] = get_args(TensionLevel)

TensionType = Literal[
    "confrontation",
    "intimate",
    "vulnerable",
    "celebratory",
    "negotiation",
    "suspense",
    "conversation",
]
TENSION_TYPES: tuple[str, ...] = get_args(TensionType)

TensionDirection = Literal["escalating", "stable", "decreasing"]

RelationshipStatus = Literal[
    "hostile",
    "strained",
    "strangers",
    "acquaintances",
    "friendly",
    "close",
    "intimate",
    "complicated",
]
RELATIONSHIP_STATUSES: tuple[str, ...] = get_args(RelationshipStatus)

STATUS_RANK: dict[str, int] = {
    "hostile": -2,
    "strained": -1,
    "strangers": 0,
    "acquaintances": 1,
    "friendly": 2,
    "close": 3,
    "intimate": 4,
    "complicated": 0,
}

ChapterEndReason = Literal["location_change", "time_jump", "both", "manual"]

FRIENDLY_GATE_SUBJECTS = frozenset(
    {
        "laugh",
        "gift",
        "shared_meal",
        "shared_activity",
        "compliment",
        "tease",
        "helped",
        "common_interest",
        "outing",
    }
)

CLOSE_GATE_SUBJECTS = frozenset(
    {
        "emotionally_intimate",
        "secret_shared",
        "confession",
        "sleepover",
        "forgiveness",
        "supportive",
        "comfort",
        "defended",
        "crisis_together",
        "vulnerability",
        "shared_vulnerability",
        "entrusted",
    }
)

INTIMATE_GATE_SUBJECTS = frozenset(
    {
        "intimate_kiss",
        "date",
        "i_love_you",
        "intimate_touch",
        "intimate_embrace",
        "intimate_heated",
        "intimate_foreplay",
        "intimate_oral",
        "intimate_manual",
        "intimate_penetrative",
        "intimate_climax",
        "exclusivity",
        "marriage",
    }
)

# Subjects that never gate a status but are still worth recording
NEUTRAL_SUBJECTS = frozenset(
    {
        "first_meeting",
        "argument",
        "insult",
        "betrayal",
        "rejection",
        "threat",
        "apology",
        "jealousy",
        "disagreement",
    }
)

SUBJECTS = FRIENDLY_GATE_SUBJECTS | CLOSE_GATE_SUBJECTS | INTIMATE_GATE_SUBJECTS | NEUTRAL_SUBJECTS


def tension_direction(previous: str | None, current: str) -> TensionDirection:
    """Derive tension direction by comparing positions on the level scale."""
    if previous is None or previous not in TENSION_LEVELS or current not in TENSION_LEVELS:
        return "stable"
    delta = TENSION_LEVELS.index(current) - TENSION_LEVELS.index(previous)
    if delta > 0:
        return "escalating"
    if delta < 0:
        return "decreasing"
    return "stable"


def status_from_rank(rank: int) -> RelationshipStatus:
    """Map a numeric rank back to the canonical status holding it."""
    for status in RELATIONSHIP_STATUSES:
        if status == "complicated":
            continue
        if STATUS_RANK[status] == rank:
            return status  # type: ignore[return-value]
    return "acquaintances"


def maximum_status(subjects: set[str]) -> RelationshipStatus:
    """Highest positive status the recorded interaction subjects can justify."""
    if subjects & INTIMATE_GATE_SUBJECTS:
        return "intimate"
    if subjects & CLOSE_GATE_SUBJECTS:
        return "close"
    if subjects & FRIENDLY_GATE_SUBJECTS:
        return "friendly"
    return "acquaintances"


def gate_status(proposed: str, current: str, subjects: set[str]) -> str:
    """Clamp a proposed relationship status against the pair's interaction history.

    Deterioration (complicated, strained, hostile) is always allowed. Positive
    statuses are capped by the strongest subject seen for the pair and may only
    climb one rank per change.

    Args:
        proposed: Status suggested by the generator.
        current: Status currently held by the pair.
        subjects: Every subject recorded for the pair so far.

    Returns:
        The status that may actually be recorded.
    """
    if proposed not in STATUS_RANK:
        return current
    if proposed in ("complicated", "strained", "hostile"):
        return proposed

    proposed_rank = STATUS_RANK[proposed]
    current_rank = STATUS_RANK.get(current, 0)

    if proposed_rank > 0:
        max_rank = STATUS_RANK[maximum_status(subjects)]
        if proposed_rank > max_rank:
            return status_from_rank(max_rank)
        if proposed_rank > current_rank:
            return status_from_rank(min(proposed_rank, current_rank + 1))

    return proposed
