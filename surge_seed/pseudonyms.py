from __future__ import annotations

import re

QUALIFIERS: tuple[str, ...] = (
    "Swift", "Bright", "Silent", "Calm", "Bold",
    "Clever", "Daring", "Eager", "Fierce", "Gentle",
    "Humble", "Keen", "Lively", "Merry", "Noble",
    "Proud", "Quick", "Rustic", "Steady", "Tender",
    "Vivid", "Warm", "Witty", "Young", "Zealous",
    "Amber", "Azure", "Coral", "Crimson", "Golden",
    "Jade", "Misty", "Rosy", "Silver", "Violet",
    "Starry", "Frosty", "Sunny", "Dusky", "Mossy",
)

SUBJECTS: tuple[str, ...] = (
    "Fox", "Owl", "Hare", "Wren", "Lynx",
    "Deer", "Wolf", "Bear", "Crow", "Swan",
    "Otter", "Eagle", "Finch", "Crane", "Raven",
    "Cedar", "Maple", "Birch", "Aspen", "Sage",
    "Brook", "Ridge", "Frost", "Storm", "Ember",
    "Pebble", "Flint", "Dusk", "Dawn", "Moon",
    "Star", "Cliff", "Glen", "Heath", "Bloom",
)

SUBJECT_OFFSET = 7
QUALIFIER_OFFSET = 13

_WHITESPACE_RE = re.compile(r"\s+")


def generate_pseudonyms(count: int) -> list[str]:
    """
    Return `count` distinct "Qualifier Subject" display names.

    The sequence depends only on `count`: position i starts from the i-th entry of each
    word list, then tries a shifted subject, then a shifted qualifier, and finally
    appends i itself, which cannot collide with anything produced before.
    """
    used: set[str] = set()
    result: list[str] = []
    for i in range(max(0, count)):
        qualifier = QUALIFIERS[i % len(QUALIFIERS)]
        subject = SUBJECTS[i % len(SUBJECTS)]
        candidates = (
            f"{qualifier} {subject}",
            f"{qualifier} {SUBJECTS[(i + SUBJECT_OFFSET) % len(SUBJECTS)]}",
            f"{QUALIFIERS[(i + QUALIFIER_OFFSET) % len(QUALIFIERS)]} {subject}",
        )
        name = next((candidate for candidate in candidates if candidate not in used), None)
        if name is None:
            name = f"{qualifier} {subject} {i}"
        used.add(name)
        result.append(name)
    return result


def username_for(pseudonym: str) -> str:
    return _WHITESPACE_RE.sub("", pseudonym.lower())
