# ABOUTME: Filters raw extractor output against the prior committed projection.
# ABOUTME: Drops re-asserted additions, removals of absent values, and impossible presence changes.

from narrative_ledger.state.names import names_match
from narrative_ledger.state.snapshot import Attitude, Projection, contains_ci


def dedupe_strings(values: list[str]) -> list[str]:
    """Drop empty and case-insensitive duplicate entries, keeping first occurrences."""
    seen: set[str] = set()
    result = []
    for value in values:
        cleaned = value.strip()
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            result.append(cleaned)
    return result


def filter_to_add(proposed: list[str], current: list[str] | None) -> list[str]:
    """Keep proposed additions that are not already present."""
    deduped = dedupe_strings(proposed)
    if current is None:
        return deduped
    return [v for v in deduped if not contains_ci(current, v)]


def filter_to_remove(proposed: list[str], current: list[str] | None) -> list[str]:
    """Keep proposed removals that are actually present.

    With no prior state nothing can be removed.
    """
    if current is None:
        return []
    return [v for v in dedupe_strings(proposed) if contains_ci(current, v)]


def _character_list(prior: Projection | None, character: str, field: str) -> list[str] | None:
    if prior is None:
        return None
    state = prior.find_character(character)
    if state is None:
        return []
    return getattr(state, field)


def filter_moods_to_add(prior: Projection | None, character: str, moods: list[str]) -> list[str]:
    return filter_to_add(moods, _character_list(prior, character, "mood"))


def filter_moods_to_remove(prior: Projection | None, character: str, moods: list[str]) -> list[str]:
    return filter_to_remove(moods, _character_list(prior, character, "mood"))


def filter_physical_to_add(
    prior: Projection | None, character: str, states: list[str]
) -> list[str]:
    return filter_to_add(states, _character_list(prior, character, "physical_state"))


def filter_physical_to_remove(
    prior: Projection | None, character: str, states: list[str]
) -> list[str]:
    return filter_to_remove(states, _character_list(prior, character, "physical_state"))


def _attitude(prior: Projection | None, from_character: str, toward: str) -> Attitude | None:
    if prior is None:
        return None
    rel = prior.relationship(from_character, toward)
    if rel is None:
        return Attitude()
    return rel.attitude(from_character)


def filter_attitude_to_add(
    prior: Projection | None,
    from_character: str,
    toward: str,
    field: str,
    values: list[str],
) -> list[str]:
    """Filter feelings, secrets, or wants additions for one direction of a pair."""
    attitude = _attitude(prior, from_character, toward)
    return filter_to_add(values, getattr(attitude, field) if attitude else None)


def filter_attitude_to_remove(
    prior: Projection | None,
    from_character: str,
    toward: str,
    field: str,
    values: list[str],
) -> list[str]:
    attitude = _attitude(prior, from_character, toward)
    return filter_to_remove(values, getattr(attitude, field) if attitude else None)


def filter_props_to_add(prior: Projection | None, props: list[str]) -> list[str]:
    current = None
    if prior is not None:
        current = prior.location.props if prior.location else []
    return filter_to_add(props, current)


def filter_props_to_remove(prior: Projection | None, props: list[str]) -> list[str]:
    current = None
    if prior is not None:
        current = prior.location.props if prior.location else []
    return filter_to_remove(props, current)


def filter_outfit_slots_to_remove(
    prior: Projection | None,
    character: str,
    slots: list[str],
) -> list[str]:
    """Keep slot removals only where the slot is currently occupied."""
    if prior is None:
        return []
    state = prior.find_character(character)
    if state is None:
        return []
    kept = []
    for slot in dict.fromkeys(slots):
        if getattr(state.outfit, slot, None) is not None:
            kept.append(slot)
    return kept


def filter_outfit_slots_to_add(
    prior: Projection | None,
    character: str,
    changes: dict[str, str],
) -> dict[str, str]:
    """Keep slot assignments whose value differs from what is already worn."""
    cleaned = {slot: value.strip() for slot, value in changes.items() if value and value.strip()}
    if prior is None:
        return cleaned
    state = prior.find_character(character)
    if state is None:
        return cleaned
    kept = {}
    for slot, value in cleaned.items():
        worn = getattr(state.outfit, slot, None)
        if worn is None or worn.strip().lower() != value.lower():
            kept[slot] = value
    return kept


def filter_characters_appeared(prior: Projection | None, names: list[str]) -> list[str]:
    """Drop appearances of characters who are already present.

    Spellings of one character within the batch ("Dr. Alice", "Alice") collapse
    to the first one given.
    """
    kept: list[str] = []
    for name in dedupe_strings(names):
        if any(names_match(seen, name) for seen in kept):
            continue
        kept.append(name)
    if prior is None:
        return kept
    return [n for n in kept if not prior.is_present(n)]


def filter_characters_departed(prior: Projection | None, names: list[str]) -> list[str]:
    """Drop departures of characters who are not present.

    Kept departures use the spelling under which the character is present.
    """
    if prior is None:
        return []
    departed: list[str] = []
    for name in dedupe_strings(names):
        present = prior.present_name(name)
        if present is not None and present not in departed:
            departed.append(present)
    return departed
