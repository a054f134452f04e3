# ABOUTME: Tests for the projection engine and per-event application rules.
# ABOUTME: Validates the fold, narrative entries, turn-local projection, and prior-state lookup.

from datetime import datetime

import pytest

from conftest import at, make_snapshot
from narrative_ledger.state.errors import NoSnapshotError
from narrative_ledger.state.events import (
    ChapterDescribed,
    ChapterEnded,
    CharacterAppeared,
    CharacterDeparted,
    FeelingRemoved,
    LocationMoved,
    MoodAdded,
    NarrativeDescribed,
    OutfitChanged,
    PropAdded,
    PropRemoved,
    StatusChanged,
    SubjectOccurred,
    TensionChanged,
    TimeDelta,
    TimeInitial,
)
from narrative_ledger.state.projection import (
    get_prior_projection,
    project_from_snapshot,
    project_with_turn_events,
)
from narrative_ledger.state.snapshot import Snapshot, pair_key
from narrative_ledger.state.store import EventStore


def fold(events, message_id: int = 1, snapshot: Snapshot | None = None):
    return project_from_snapshot(snapshot or make_snapshot(), events, at(message_id))


class TestFold:
    """Tests for folding events onto a snapshot."""

    def test_snapshot_not_mutated(self) -> None:
        """The fold works on a copy."""
        snapshot = make_snapshot()
        before = snapshot.model_dump()
        fold([MoodAdded(source=at(1), character="Alice", mood="happy")], snapshot=snapshot)
        assert snapshot.model_dump() == before

    def test_deleted_events_skipped(self) -> None:
        """Soft-deleted events do not change state."""
        event = MoodAdded(source=at(1), character="Alice", mood="happy", deleted=True)
        assert fold([event]).find_character("Alice").mood == ["curious"]

    def test_time_delta(self) -> None:
        """Deltas advance the clock."""
        projection = fold([TimeDelta(source=at(1), hours=2, minutes=15)])
        assert projection.time == datetime(2024, 5, 1, 20, 15)

    def test_time_delta_without_base(self) -> None:
        """A delta with no starting time is ignored."""
        projection = fold(
            [TimeDelta(source=at(1), hours=2)],
            snapshot=Snapshot(source=at(0)),
        )
        assert projection.time is None

    def test_time_initial_then_delta(self) -> None:
        """An initial time anchors later deltas."""
        projection = fold(
            [
                TimeInitial(source=at(1), time=datetime(2030, 1, 1, 8, 0)),
                TimeDelta(source=at(1), days=1),
            ],
            snapshot=Snapshot(source=at(0)),
        )
        assert projection.time == datetime(2030, 1, 2, 8, 0)


class TestLocationRules:
    """Tests for location and prop events."""

    def test_move_to_new_place_clears_props(self) -> None:
        """Props belong to the place they were seen in."""
        projection = fold([LocationMoved(source=at(1), new_place="Market")])
        assert projection.location.place == "Market"
        assert projection.location.area == "Old Town"
        assert projection.location.props == []

    def test_move_within_place_keeps_props(self) -> None:
        """Changing position inside the same place keeps props."""
        projection = fold([LocationMoved(source=at(1), new_place="tavern", new_position="corner")])
        assert projection.location.position == "corner"
        assert projection.location.props == ["oak table", "lantern"]

    def test_props_add_and_remove(self) -> None:
        """Prop changes are case-insensitive and never duplicate."""
        projection = fold(
            [
                PropAdded(source=at(1), prop="Dice"),
                PropAdded(source=at(1), prop="dice"),
                PropRemoved(source=at(1), prop="LANTERN"),
            ]
        )
        assert projection.location.props == ["oak table", "Dice"]


class TestCharacterRules:
    """Tests for character events."""

    def test_appearance_creates_relationships(self) -> None:
        """A newcomer gets a relationship with everyone present."""
        projection = fold(
            [CharacterAppeared(source=at(1), character="Carol", initial_mood=["shy", "Shy"])]
        )
        assert projection.characters_present == ["Alice", "Bob", "Carol"]
        assert projection.find_character("carol").mood == ["shy"]
        assert pair_key("Alice", "Carol") in projection.relationships
        assert pair_key("Bob", "Carol") in projection.relationships
        assert projection.relationship("Carol", "Bob").status == "strangers"

    def test_departure_keeps_character(self) -> None:
        """Departed characters leave the scene but keep their state."""
        projection = fold([CharacterDeparted(source=at(1), character="bob")])
        assert projection.characters_present == ["Alice"]
        assert projection.find_character("Bob") is not None
        assert projection.present_pairs() == []

    def test_outfit_slot_set_and_cleared(self) -> None:
        """Outfit events set or empty one slot."""
        projection = fold(
            [
                OutfitChanged(source=at(1), character="Alice", slot="jacket", new_value=None),
                OutfitChanged(source=at(1), character="Alice", slot="head", new_value="beret"),
            ]
        )
        outfit = projection.find_character("Alice").outfit
        assert outfit.jacket is None
        assert outfit.head == "beret"
        assert outfit.torso == "white shirt"

    def test_mood_uniqueness(self) -> None:
        """Re-adding a mood with different case changes nothing."""
        projection = fold([MoodAdded(source=at(1), character="Alice", mood="CURIOUS")])
        assert projection.find_character("Alice").mood == ["curious"]


class TestRelationshipRules:
    """Tests for relationship events."""

    def test_attitude_removal(self) -> None:
        """Removals apply to the right direction."""
        projection = fold(
            [
                FeelingRemoved(
                    source=at(1),
                    from_character="Alice",
                    toward_character="Bob",
                    value="Fond",
                )
            ]
        )
        assert projection.relationship("Alice", "Bob").a_to_b.feelings == []

    def test_status_and_subjects(self) -> None:
        """Status changes and subjects accumulate on the pair."""
        projection = fold(
            [
                StatusChanged(source=at(1), pair=("Alice", "Bob"), new_status="friendly"),
                SubjectOccurred(source=at(1), pair=("Alice", "Bob"), subject="laugh"),
                SubjectOccurred(source=at(1), pair=("Alice", "Bob"), subject="laugh"),
            ]
        )
        rel = projection.relationship("Bob", "Alice")
        assert rel.status == "friendly"
        assert rel.subjects == ["laugh"]
        assert projection.pair_subjects("Alice", "Bob") == {"laugh"}


class TestNarrativeAndChapters:
    """Tests for narrative entries and chapters."""

    def test_narrative_entry_captures_context(self) -> None:
        """Entries carry witnesses, location, tension, and subjects."""
        projection = fold(
            [
                TensionChanged(
                    source=at(1), level="tense", type="suspense", direction="escalating"
                ),
                SubjectOccurred(source=at(1), pair=("Alice", "Bob"), subject="argument"),
                NarrativeDescribed(source=at(1), description="They argue about the map."),
            ]
        )
        [entry] = projection.narrative_events
        assert entry.description == "They argue about the map."
        assert entry.witnesses == ["Alice", "Bob"]
        assert entry.location == "by the bar · Tavern"
        assert entry.tension_level == "tense"
        assert [s.subject for s in entry.subjects] == ["argument"]
        assert entry.time == datetime(2024, 5, 1, 18, 0)

    def test_message_without_description_has_no_entry(self) -> None:
        """Subjects alone do not create a narrative entry."""
        projection = fold([SubjectOccurred(source=at(1), pair=("Alice", "Bob"), subject="laugh")])
        assert projection.narrative_events == []

    def test_chapter_end_and_description(self) -> None:
        """Ending a chapter advances the index; describing fills its title."""
        projection = fold(
            [
                ChapterEnded(source=at(1), chapter_index=0, reason="location_change"),
                ChapterDescribed(source=at(1), chapter_index=0, title="Arrival", summary="..."),
            ]
        )
        assert projection.current_chapter == 1
        [chapter] = projection.chapters
        assert chapter.title == "Arrival"
        assert chapter.end_reason == "location_change"
        assert chapter.ended_at == at(1)


class TestStoreProjections:
    """Tests for turn-local and prior projections."""

    def test_turn_events_included(self, seeded_store: EventStore) -> None:
        """Uncommitted events are folded after committed ones."""
        seeded_store.append(at(1), [MoodAdded(source=at(1), character="Bob", mood="grumpy")])
        turn = [MoodAdded(source=at(2), character="Bob", mood="hungry")]

        projection = project_with_turn_events(seeded_store, turn, at(2))

        assert projection.find_character("Bob").mood == ["tired", "grumpy", "hungry"]
        assert seeded_store.event_count == 1

    def test_turn_projection_requires_snapshot(self) -> None:
        """Cold stores raise the not-initialized signal."""
        with pytest.raises(NoSnapshotError):
            project_with_turn_events(EventStore(), [], at(1))

    def test_prior_projection(self, seeded_store: EventStore) -> None:
        """Prior state stops at the previous message."""
        seeded_store.append(at(1), [MoodAdded(source=at(1), character="Bob", mood="grumpy")])
        seeded_store.append(at(2), [MoodAdded(source=at(2), character="Bob", mood="hungry")])

        prior = get_prior_projection(seeded_store, at(2))

        assert prior is not None
        assert prior.find_character("Bob").mood == ["tired", "grumpy"]

    def test_prior_projection_none_cases(self, seeded_store: EventStore) -> None:
        """No prior state for the first message or an uninitialized store."""
        assert get_prior_projection(seeded_store, at(0)) is None
        assert get_prior_projection(EventStore(), at(3)) is None
