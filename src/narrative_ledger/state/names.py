# ABOUTME: Character name matching used to resolve extracted names to known characters.
# ABOUTME: Strips honorifics and matches first names, full names, and initials.

from collections.abc import Iterable

TITLES = (
    "dr.",
    "dr",
    "mr.",
    "mr",
    "mrs.",
    "mrs",
    "ms.",
    "ms",
    "miss",
    "sir",
    "lady",
    "lord",
    "professor",
    "prof.",
    "prof",
)


def normalize_name(name: str) -> str:
    """Lowercase, drop one leading title, and collapse whitespace."""
    normalized = " ".join(name.lower().split())
    for title in TITLES:
        if normalized.startswith(title + " "):
            normalized = normalized[len(title) + 1 :].strip()
            break
    return normalized


def _word_matches(a: str, b: str) -> bool:
    if a == b:
        return True
    a, b = a.rstrip("."), b.rstrip(".")
    # A single letter stands for any word starting with it ("j." for "john")
    if len(a) == 1 and b.startswith(a):
        return True
    return len(b) == 1 and a.startswith(b)


def names_match(known: str, extracted: str) -> bool:
    """Whether two spellings plausibly refer to the same character.

    Matches after normalization on equality, first name against full name,
    and every word of the shorter name appearing in the longer one (with
    initials allowed once some whole word agrees).
    """
    a, b = normalize_name(known), normalize_name(extracted)
    if not a or not b:
        return False
    if a == b or a.startswith(b + " ") or b.startswith(a + " "):
        return True

    shorter, longer = sorted((a.split(), b.split()), key=len)
    # Initials alone are too weak; at least one whole word must agree
    if not set(shorter) & set(longer):
        return False
    return all(any(_word_matches(s, w) for w in longer) for s in shorter)


def find_matching_name(name: str, candidates: Iterable[str]) -> str | None:
    """Known spelling for ``name``: exact case-insensitive match first, then fuzzy."""
    candidates = list(candidates)
    lowered = name.strip().lower()
    for candidate in candidates:
        if candidate.strip().lower() == lowered:
            return candidate
    for candidate in candidates:
        if names_match(candidate, name):
            return candidate
    return None
