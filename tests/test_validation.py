# ABOUTME: Tests for filtering extractor output against the prior committed projection.
# ABOUTME: Covers list filters, idempotence, attitudes, outfits, props, and presence.

from conftest import at, make_snapshot
from narrative_ledger.extraction.validation import (
    dedupe_strings,
    filter_attitude_to_add,
    filter_attitude_to_remove,
    filter_characters_appeared,
    filter_characters_departed,
    filter_moods_to_add,
    filter_moods_to_remove,
    filter_outfit_slots_to_add,
    filter_outfit_slots_to_remove,
    filter_props_to_add,
    filter_props_to_remove,
    filter_to_add,
    filter_to_remove,
)
from narrative_ledger.state.snapshot import Projection


def prior() -> Projection:
    return Projection.from_snapshot(make_snapshot(), at(0))


class TestListFilters:
    """Tests for the generic add/remove filters."""

    def test_dedupe(self) -> None:
        """Duplicates, case variants, and blanks are dropped."""
        assert dedupe_strings(["Happy", " happy ", "", "sad"]) == ["Happy", "sad"]

    def test_add_drops_present_values(self) -> None:
        """Additions already in the list are dropped."""
        assert filter_to_add(["Curious", "happy"], ["curious"]) == ["happy"]

    def test_remove_drops_absent_values(self) -> None:
        """Removals of values not in the list are dropped."""
        assert filter_to_remove(["curious", "sad"], ["Curious"]) == ["curious"]

    def test_no_prior_state(self) -> None:
        """Without prior state additions pass and removals are impossible."""
        assert filter_to_add(["a", "A", "b"], None) == ["a", "b"]
        assert filter_to_remove(["a"], None) == []

    def test_idempotent(self) -> None:
        """Filtering an already filtered list changes nothing."""
        current = ["curious", "tired"]
        proposed = ["happy", "Curious", "happy", "bored"]
        once = filter_to_add(proposed, current)
        assert filter_to_add(once, current) == once
        removals = filter_to_remove(["tired", "angry", "TIRED"], current)
        assert filter_to_remove(removals, current) == removals


class TestCharacterFilters:
    """Tests for per-character filters."""

    def test_moods(self) -> None:
        """Mood filters use the character's current moods."""
        state = prior()
        assert filter_moods_to_add(state, "alice", ["curious", "happy"]) == ["happy"]
        assert filter_moods_to_remove(state, "Alice", ["curious", "sad"]) == ["curious"]

    def test_unknown_character(self) -> None:
        """An unknown character has empty lists."""
        state = prior()
        assert filter_moods_to_add(state, "Zed", ["happy"]) == ["happy"]
        assert filter_moods_to_remove(state, "Zed", ["happy"]) == []

    def test_outfit_slots(self) -> None:
        """Slot removals need an occupied slot; additions must differ."""
        state = prior()
        assert filter_outfit_slots_to_remove(state, "Alice", ["jacket", "head", "jacket"]) == [
            "jacket"
        ]
        assert filter_outfit_slots_to_add(
            state,
            "Alice",
            {"jacket": "Leather Jacket", "head": "beret", "neck": "  "},
        ) == {"head": "beret"}

    def test_outfit_without_prior(self) -> None:
        """Without prior state only non-blank additions survive."""
        assert filter_outfit_slots_to_remove(None, "Alice", ["jacket"]) == []
        assert filter_outfit_slots_to_add(None, "Alice", {"head": " hat "}) == {"head": "hat"}


class TestAttitudeFilters:
    """Tests for directional attitude filters."""

    def test_direction_matters(self) -> None:
        """Each direction is filtered against its own list."""
        state = prior()
        assert filter_attitude_to_add(state, "Alice", "Bob", "feelings", ["fond"]) == []
        assert filter_attitude_to_add(state, "Bob", "Alice", "feelings", ["fond"]) == ["fond"]
        assert filter_attitude_to_remove(state, "Alice", "Bob", "feelings", ["FOND"]) == ["FOND"]

    def test_missing_relationship_is_empty(self) -> None:
        """Pairs without a relationship behave as empty attitudes."""
        state = prior()
        assert filter_attitude_to_add(state, "Alice", "Zed", "wants", ["gold"]) == ["gold"]
        assert filter_attitude_to_remove(state, "Alice", "Zed", "wants", ["gold"]) == []


class TestPropAndPresenceFilters:
    """Tests for props and presence filters."""

    def test_props(self) -> None:
        """Props are filtered against the current location."""
        state = prior()
        assert filter_props_to_add(state, ["Lantern", "dice"]) == ["dice"]
        assert filter_props_to_remove(state, ["lantern", "dice"]) == ["lantern"]

    def test_appeared_drops_present(self) -> None:
        """Characters already present cannot appear again."""
        assert filter_characters_appeared(prior(), ["alice", "Carol", "carol"]) == ["Carol"]

    def test_departed_drops_absent(self) -> None:
        """Only present characters can leave."""
        assert filter_characters_departed(prior(), ["Bob", "Carol"]) == ["Bob"]

    def test_presence_without_prior(self) -> None:
        """On a cold start everyone may appear and nobody may leave."""
        assert filter_characters_appeared(None, ["Alice", "Bob"]) == ["Alice", "Bob"]
        assert filter_characters_departed(None, ["Alice"]) == []

    def test_appeared_matches_titles_and_full_names(self) -> None:
        """A title or surname on a present character is not a new arrival."""
        assert filter_characters_appeared(prior(), ["Dr. Alice", "Alice Smith", "Carol"]) == [
            "Carol"
        ]

    def test_appeared_collapses_spellings_in_batch(self) -> None:
        """Two spellings of one newcomer in the same batch appear once."""
        assert filter_characters_appeared(prior(), ["Carol Jones", "Carol", "Ms. Carol"]) == [
            "Carol Jones"
        ]

    def test_departed_uses_present_spelling(self) -> None:
        """Departures resolve to the name under which the character is present."""
        assert filter_characters_departed(prior(), ["Bob Smith", "Mr. Bob", "Carol"]) == ["Bob"]
