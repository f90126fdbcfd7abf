"""Skill and tag matching utilities."""

from __future__ import annotations

import re
from collections.abc import Iterable
from difflib import SequenceMatcher

from staffmatch.matching.models import Skill

_SKILL_ALIASES: dict[str, str] = {
    "forklift operation": "forklift",
    "forklift operator": "forklift",
    "forklift driving": "forklift",
    "fork lift": "forklift",
    "mig welding": "welding",
    "tig welding": "welding",
    "welder": "welding",
    "cdl": "commercial driving",
    "cdl class a": "commercial driving",
    "class a cdl": "commercial driving",
    "cpr": "first aid",
    "first aid/cpr": "first aid",
    "pos": "cash handling",
    "cashier": "cash handling",
    "housekeeping": "cleaning",
    "janitorial": "cleaning",
    "pick and pack": "order picking",
    "picking": "order picking",
    "rn": "registered nurse",
    "cna": "certified nursing assistant",
}


def normalize_skill(skill: str) -> str:
    """Normalize a skill string for comparison.

    Performs lowercasing, whitespace normalization, drops parenthesized
    qualifiers and trims surrounding punctuation.
    """
    value = skill.strip().lower()
    value = re.sub(r"\([^)]*\)", "", value)
    value = re.sub(r"[\s_-]+", " ", value)
    return value.strip(" ,;.")


def canonical_skill(skill: str) -> str:
    normalized = normalize_skill(skill)
    return _SKILL_ALIASES.get(normalized, normalized)


def normalize_tag(tag: str) -> str:
    """Normalize a free-form preference tag."""
    return re.sub(r"\s+", " ", tag.strip().lower())


def skills_match(
    skill1: str, skill2: str, fuzzy: bool = True, threshold: float = 0.85
) -> bool:
    """Return True if two skill names are considered a match."""
    canonical1 = canonical_skill(skill1)
    canonical2 = canonical_skill(skill2)

    if canonical1 == canonical2:
        return True

    if not fuzzy:
        return False

    if threshold <= 0.0:
        return True
    if threshold > 1.0:
        return False

    similarity = SequenceMatcher(None, canonical1, canonical2).ratio()
    return similarity >= threshold


def find_skill(
    required: Skill,
    available: Iterable[Skill],
    fuzzy: bool = True,
    threshold: float = 0.85,
) -> Skill | None:
    """Return the best available skill matching ``required``, or None.

    An exact canonical match wins over a fuzzy one; among equals the
    highest level wins.
    """
    exact: list[Skill] = []
    close: list[Skill] = []
    target = canonical_skill(required.name)
    for skill in available:
        if canonical_skill(skill.name) == target:
            exact.append(skill)
        elif fuzzy and skills_match(required.name, skill.name, fuzzy=True, threshold=threshold):
            close.append(skill)

    pool = exact or close
    if not pool:
        return None
    return max(pool, key=lambda s: (s.level if s.level is not None else -1, s.years or 0.0))


def find_matching_skills(
    required: Iterable[Skill],
    available: Iterable[Skill],
    fuzzy: bool = True,
    threshold: float = 0.85,
) -> tuple[list[tuple[Skill, Skill]], list[Skill]]:
    """Pair each required skill with its best available match.

    Returns:
        (matched pairs of (required, held), missing required skills)
    """
    held = list(available)
    matched: list[tuple[Skill, Skill]] = []
    missing: list[Skill] = []

    for requirement in required:
        found = find_skill(requirement, held, fuzzy=fuzzy, threshold=threshold)
        if found is None:
            missing.append(requirement)
        else:
            matched.append((requirement, found))

    return matched, missing


def unique_skills(skills: Iterable[Skill]) -> list[Skill]:
    """Drop skills whose canonical name repeats, keeping the first."""
    seen: set[str] = set()
    result: list[Skill] = []
    for skill in skills:
        key = canonical_skill(skill.name)
        if key in seen:
            continue
        seen.add(key)
        result.append(skill)
    return result
