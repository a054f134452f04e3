# ABOUTME: Tests for character name matching across titles, full names, and initials.
# ABOUTME: Covers normalization, fuzzy matching, and resolution against known names.

from conftest import at, make_snapshot
from narrative_ledger.state.apply import apply_event
from narrative_ledger.state.events import CharacterDeparted, MoodAdded
from narrative_ledger.state.names import find_matching_name, names_match, normalize_name
from narrative_ledger.state.snapshot import Projection


class TestNormalizeName:
    """Tests for name normalization."""

    def test_strips_title_and_case(self) -> None:
        """Leading titles and extra whitespace are dropped."""
        assert normalize_name("  Dr.   Alice  Smith ") == "alice smith"
        assert normalize_name("Professor Moriarty") == "moriarty"

    def test_title_alone_is_kept(self) -> None:
        """A bare title is a name, not a prefix."""
        assert normalize_name("Sir") == "sir"


class TestNamesMatch:
    """Tests for fuzzy name matching."""

    def test_first_name_and_full_name(self) -> None:
        """A first name matches the full name that starts with it."""
        assert names_match("Alice", "Alice Smith")
        assert names_match("Alice Smith", "alice")

    def test_titles_ignored(self) -> None:
        """Honorifics do not prevent a match."""
        assert names_match("Alice", "Dr. Alice")
        assert names_match("Mrs. Hudson", "hudson")

    def test_initials(self) -> None:
        """An initial stands for a word starting with that letter."""
        assert names_match("John Smith", "J. Smith")
        assert not names_match("John Smith", "K. Smith")
        assert not names_match("Alice", "A.")

    def test_different_people(self) -> None:
        """Distinct names and shared surnames with different first names do not match."""
        assert not names_match("Alice", "Bob")
        assert not names_match("Alice Smith", "Alice Jones")
        assert not names_match("Al", "Alice")
        assert not names_match("Alice", "")


class TestFindMatchingName:
    """Tests for resolving a name against known spellings."""

    def test_exact_match_preferred(self) -> None:
        """A case-insensitive exact match wins over an earlier fuzzy one."""
        assert find_matching_name("alice", ["Alice Smith", "Alice"]) == "Alice"

    def test_fuzzy_fallback(self) -> None:
        """Without an exact match the first fuzzy candidate is returned."""
        assert find_matching_name("Dr. Alice", ["Bob", "Alice"]) == "Alice"
        assert find_matching_name("Carol", ["Alice", "Bob"]) is None


class TestProjectionLookups:
    """Tests for name matching through the projection."""

    def test_find_character_and_presence(self) -> None:
        """Projection lookups accept titled and full-name spellings."""
        projection = Projection.from_snapshot(make_snapshot(), at(0))
        state = projection.find_character("Alice Smith")
        assert state is not None and state.name == "Alice"
        assert projection.present_name("Mr. Bob") == "Bob"
        assert not projection.is_present("Carol")

    def test_events_resolve_to_known_character(self) -> None:
        """Events naming a variant spelling update the known character."""
        projection = Projection.from_snapshot(make_snapshot(), at(0))
        apply_event(projection, MoodAdded(source=at(1), character="Dr. Alice", mood="anxious"))
        apply_event(projection, CharacterDeparted(source=at(1), character="Bob Smith"))
        assert "Dr. Alice" not in projection.characters
        assert "anxious" in projection.characters["Alice"].mood
        assert projection.characters_present == ["Alice"]
