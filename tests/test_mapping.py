# ABOUTME: Tests for turning validated extraction payloads into events.
# ABOUTME: Covers outfit self-heal, status gating, subjects, tension, and consolidation diffs.

from conftest import at, make_snapshot
from narrative_ledger.extraction.mapping import (
    bound_consolidated,
    diff_lists,
    has_removal_marker,
    heal_outfit_changes,
    map_attitude_consolidation,
    map_character_consolidation,
    map_chapter_ended,
    map_location,
    map_outfit,
    map_props,
    map_status,
    map_subjects,
    map_tension,
    map_time_change,
    map_topic_tone,
)
from narrative_ledger.extraction.schemas import (
    ChapterEndedExtraction,
    Interaction,
    LocationExtraction,
    TensionExtraction,
    TimeChangeExtraction,
    TopicToneExtraction,
)
from narrative_ledger.state.events import (
    FeelingAdded,
    FeelingRemoved,
    MoodAdded,
    MoodRemoved,
    OutfitChanged,
    PropAdded,
    PropRemoved,
    StatusChanged,
    SubjectOccurred,
    TensionChanged,
)
from narrative_ledger.state.projection import project_from_snapshot
from narrative_ledger.state.vocabulary import gate_status, maximum_status


class TestOutfitMapping:
    """Tests for outfit changes and the removal self-heal."""

    def test_marker_detection(self) -> None:
        """Removal markers are found case-insensitively."""
        assert has_removal_marker("Denim Jacket (Taken Off)")
        assert not has_removal_marker("denim jacket")

    def test_heal_reclassifies_marked_additions(self) -> None:
        """Additions describing removal become slot removals."""
        added, removed = heal_outfit_changes(
            {"jacket": "denim jacket (taken off)", "torso": "blue shirt"},
            [],
        )
        assert added == {"torso": "blue shirt"}
        assert removed == ["jacket"]

    def test_heal_does_not_duplicate(self) -> None:
        """A slot already being removed is not listed twice."""
        _, removed = heal_outfit_changes({"head": "hat (removed)"}, ["head"])
        assert removed == ["head"]

    def test_removals_first(self) -> None:
        """Removals precede additions; a slot both removed and filled ends filled."""
        events = map_outfit("Alice", {"jacket": "raincoat"}, ["jacket", "head"], at(1))
        assert all(isinstance(e, OutfitChanged) for e in events)
        assert [(e.slot, e.new_value) for e in events] == [("head", None), ("jacket", "raincoat")]


class TestStatusMapping:
    """Tests for status gating."""

    def test_maximum_status(self) -> None:
        """The strongest subject tier decides the ceiling."""
        assert maximum_status(set()) == "acquaintances"
        assert maximum_status({"laugh"}) == "friendly"
        assert maximum_status({"laugh", "confession"}) == "close"
        assert maximum_status({"intimate_kiss"}) == "intimate"

    def test_positive_status_capped_by_subjects(self) -> None:
        """Without qualifying subjects a pair cannot become close."""
        assert gate_status("close", "acquaintances", set()) == "acquaintances"
        assert map_status(("Alice", "Bob"), "close", "acquaintances", set(), at(1)) == []

    def test_climbs_one_rank_at_a_time(self) -> None:
        """Even with strong subjects, status rises by one rank per change."""
        assert gate_status("intimate", "acquaintances", {"intimate_kiss"}) == "friendly"

    def test_deterioration_always_allowed(self) -> None:
        """Negative statuses are never gated."""
        assert gate_status("hostile", "intimate", set()) == "hostile"
        assert gate_status("complicated", "friendly", set()) == "complicated"

    def test_unknown_status_ignored(self) -> None:
        """Statuses outside the vocabulary keep the current one."""
        assert gate_status("besties", "friendly", set()) == "friendly"

    def test_status_event(self) -> None:
        """Allowed changes emit one event with a sorted pair."""
        [event] = map_status(("Bob", "Alice"), "friendly", "acquaintances", {"gift"}, at(1))
        assert isinstance(event, StatusChanged)
        assert event.pair == ("Alice", "Bob")
        assert event.new_status == "friendly"


class TestSubjectMapping:
    """Tests for interaction subjects."""

    def test_filters_invalid_interactions(self) -> None:
        """Unknown subjects, absent characters, self pairs, and repeats are dropped."""
        interactions = [
            Interaction(pair=("bob", "Alice"), subject="laugh"),
            Interaction(pair=("Alice", "Bob"), subject="Laugh"),
            Interaction(pair=("Alice", "Alice"), subject="gift"),
            Interaction(pair=("Alice", "Zed"), subject="gift"),
            Interaction(pair=("Alice", "Bob"), subject="juggling"),
            Interaction(pair=("Alice", "Bob"), subject="shared meal"),
        ]
        events = map_subjects(interactions, ["Alice", "Bob"], at(1))
        assert all(isinstance(e, SubjectOccurred) for e in events)
        assert [(e.pair, e.subject) for e in events] == [
            (("Alice", "Bob"), "laugh"),
            (("Alice", "Bob"), "shared_meal"),
        ]


class TestSceneMapping:
    """Tests for time, location, topic, and tension mapping."""

    def test_unchanged_time(self) -> None:
        """No delta, no event."""
        assert map_time_change(TimeChangeExtraction(changed=False, hours=3), at(1)) == []
        assert map_time_change(TimeChangeExtraction(changed=True), at(1)) == []
        assert len(map_time_change(TimeChangeExtraction(changed=True, minutes=5), at(1))) == 1

    def test_unchanged_location(self) -> None:
        """Unchanged or empty locations emit nothing."""
        assert map_location(LocationExtraction(changed=False, place="Inn"), at(1)) == []
        assert map_location(LocationExtraction(changed=True), at(1)) == []

    def test_topic_tone_repeat(self) -> None:
        """Repeating the current topic and tone is not a change."""
        payload = TopicToneExtraction(topic="Reunion", tone="Warm")
        assert map_topic_tone(payload, at(1), ("reunion", "warm")) == []
        assert len(map_topic_tone(payload, at(1), ("reunion", "tense"))) == 1

    def test_tension_direction(self) -> None:
        """Direction is derived from the level scale."""
        [event] = map_tension(TensionExtraction(level="tense"), at(1), "aware", "conversation")
        assert isinstance(event, TensionChanged)
        assert event.direction == "escalating"
        [event] = map_tension(TensionExtraction(level="relaxed"), at(1), "tense", "conversation")
        assert event.direction == "decreasing"
        assert map_tension(TensionExtraction(level="tense"), at(1), "tense", "conversation") == []

    def test_props_removals_first(self) -> None:
        """A prop removed and re-added ends present."""
        events = map_props(["lantern"], ["lantern"], at(1))
        assert [type(e) for e in events] == [PropRemoved, PropAdded]

    def test_chapter_not_ended(self) -> None:
        """No event when the chapter goes on."""
        assert map_chapter_ended(ChapterEndedExtraction(ended=False), 0, at(1)) == []


class TestConsolidation:
    """Tests for consolidation bounds and diffs."""

    def test_diff_emits_only_real_changes(self) -> None:
        """Collapsing three moods to one removes exactly two."""
        events = map_character_consolidation(
            "Alice",
            ["happy", "excited", "joyful"],
            ["happy"],
            ["tired"],
            ["tired"],
            at(1),
        )
        assert [type(e) for e in events] == [MoodRemoved, MoodRemoved]
        assert {e.mood for e in events} == {"excited", "joyful"}

    def test_diff_lists(self) -> None:
        """Diffs ignore case and whitespace."""
        removed, added = diff_lists(["Happy", "sad"], [" happy", "calm"])
        assert removed == ["sad"]
        assert added == ["calm"]

    def test_bound_tops_up_to_floor(self) -> None:
        """Over-aggressive consolidation is topped up from the old list."""
        assert bound_consolidated(["happy", "excited", "joyful"], ["happy"]) == [
            "happy",
            "excited",
        ]

    def test_bound_caps_at_ceiling(self) -> None:
        """Results are capped at five entries."""
        old = [f"mood{i}" for i in range(8)]
        assert len(bound_consolidated(old, old)) == 5

    def test_short_lists_untouched(self) -> None:
        """Lists already below the floor are kept as they were."""
        assert bound_consolidated(["happy"], []) == ["happy"]

    def test_folded_result_is_unique_and_bounded(self) -> None:
        """After applying consolidation events the list matches the bounded result."""
        snapshot = make_snapshot()
        old = ["curious", "eager", "keen", "interested", "intrigued", "alert"]
        snapshot.characters["Alice"].mood = old
        current = project_from_snapshot(snapshot, [], at(0)).find_character("Alice").mood
        bounded = bound_consolidated(current, ["curious", "eager", "CURIOUS"])

        events = map_character_consolidation("Alice", current, bounded, [], [], at(1))
        folded = project_from_snapshot(snapshot, events, at(1)).find_character("Alice").mood

        assert len({m.lower() for m in folded}) == len(folded)
        assert {m.lower() for m in folded} == {"curious", "eager"}
        assert 2 <= len(folded) <= 5

    def test_attitude_consolidation(self) -> None:
        """Feelings and wants are diffed for one direction."""
        events = map_attitude_consolidation(
            "Alice",
            "Bob",
            ["fond", "trusting", "warm"],
            ["fond", "warm"],
            ["approval"],
            ["approval", "company"],
            at(1),
        )
        assert [type(e).__name__ for e in events] == [
            "FeelingRemoved",
            "WantAdded",
        ]
        assert isinstance(events[0], FeelingRemoved)
        assert events[0].value == "trusting"
        assert not any(isinstance(e, FeelingAdded) for e in events)
        assert not any(isinstance(e, MoodAdded) for e in events)
