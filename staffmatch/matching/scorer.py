"""Per-category feature scoring for a single (subject, candidate) pair."""

from __future__ import annotations

import math
from collections.abc import Iterable

from staffmatch.matching.config import MatchingConfig, get_matching_config
from staffmatch.matching.errors import ComputationSkip
from staffmatch.matching.geo import distance_between, effective_max_distance
from staffmatch.matching.matchers import find_matching_skills, normalize_tag, unique_skills
from staffmatch.matching.models import (
    AVAILABILITY,
    EXPERIENCE,
    LOCATION,
    PREFERENCES,
    SKILLS,
    Criteria,
    JobEntity,
    TimeWindow,
    WorkerEntity,
)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def orient(
    subject: JobEntity | WorkerEntity, candidate: JobEntity | WorkerEntity
) -> tuple[JobEntity, WorkerEntity]:
    """Return the pair as (job, worker) regardless of which side is the subject.

    Raises:
        ComputationSkip: If both entities are on the same side.
    """
    if isinstance(subject, JobEntity) and isinstance(candidate, WorkerEntity):
        return subject, candidate
    if isinstance(subject, WorkerEntity) and isinstance(candidate, JobEntity):
        return candidate, subject
    raise ComputationSkip(
        candidate.id,
        f"cannot match a {candidate.context.value} against a {subject.context.value}",
    )


def _merge_windows(windows: Iterable[TimeWindow]) -> list[tuple[float, float]]:
    spans = sorted((w.start.timestamp(), w.end.timestamp()) for w in windows)
    merged: list[tuple[float, float]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _covered_seconds(window: TimeWindow, merged: list[tuple[float, float]]) -> float:
    start, end = window.start.timestamp(), window.end.timestamp()
    covered = 0.0
    for span_start, span_end in merged:
        if span_end <= start:
            continue
        if span_start >= end:
            break
        covered += min(end, span_end) - max(start, span_start)
    return covered


class FeatureScorer:
    """Compute one score in [0, 1] per category.

    Every category is always computed, whatever its weight. Scoring is a pure
    function of its inputs and safe to run concurrently.
    """

    def __init__(self, config: MatchingConfig | None = None) -> None:
        self.config = config or get_matching_config()

    def score(
        self,
        subject: JobEntity | WorkerEntity,
        candidate: JobEntity | WorkerEntity,
        criteria: Criteria,
    ) -> dict[str, float]:
        """Score all categories for one pair.

        Raises:
            ComputationSkip: If the pair cannot be scored.
        """
        job, worker = orient(subject, candidate)

        scores = {
            SKILLS: self.score_skills(job, worker, criteria),
            EXPERIENCE: self.score_experience(job, worker, criteria),
            AVAILABILITY: self.score_availability(job, worker, criteria),
            LOCATION: self.score_location(subject, candidate, criteria),
            PREFERENCES: self.score_preferences(subject, candidate),
        }

        for category, value in scores.items():
            if not math.isfinite(value):
                raise ComputationSkip(candidate.id, f"non-finite {category} score")
        return scores

    def score_skills(self, job: JobEntity, worker: WorkerEntity, criteria: Criteria) -> float:
        """Overlap of required skills held, plus a capped bonus for meeting levels."""
        required = unique_skills(job.skills)
        if not required:
            return 1.0

        matched, _missing = find_matching_skills(
            required,
            worker.skills,
            fuzzy=self.config.skill_fuzzy_match,
            threshold=self.config.skill_fuzzy_threshold,
        )
        overlap = len(matched) / len(required)

        levels_met = sum(
            1
            for needed, held in matched
            if needed.level is not None
            and held.level is not None
            and held.level >= needed.level
        )
        bonus = self.config.skill_level_bonus_cap * levels_met / len(required)
        return _clamp(overlap + bonus)

    def score_experience(
        self, job: JobEntity, worker: WorkerEntity, criteria: Criteria
    ) -> float:
        """Worker years over required years; overqualification is not penalized."""
        minimum = criteria.experience.minimum_years
        if minimum is None:
            minimum = job.min_experience_years
        if minimum is None or minimum <= 0:
            return 1.0
        return _clamp(worker.experience_years / minimum)

    def score_availability(
        self, job: JobEntity, worker: WorkerEntity, criteria: Criteria
    ) -> float:
        """Fraction of the job's windows the worker's availability covers."""
        if not job.availability or not worker.availability:
            return 1.0

        merged = _merge_windows(worker.availability)
        needed = criteria.availability.required_overlap
        covered = 0
        for window in job.availability:
            fraction = _covered_seconds(window, merged) / window.duration_seconds
            if fraction + 1e-9 >= needed:
                covered += 1
        return covered / len(job.availability)

    def score_location(
        self,
        subject: JobEntity | WorkerEntity,
        candidate: JobEntity | WorkerEntity,
        criteria: Criteria,
    ) -> float:
        """Linear decay from 1.0 at distance 0 to 0.0 at the max distance."""
        job, _worker = orient(subject, candidate)
        if job.remote:
            return 1.0

        distance = distance_between(subject.location, candidate.location)
        if distance is None:
            return 1.0

        max_distance = effective_max_distance(
            subject.location,
            criteria.location.max_distance_km,
            self.config.default_max_distance_km,
        )
        return _clamp(1.0 - distance / max_distance)

    def score_preferences(
        self, subject: JobEntity | WorkerEntity, candidate: JobEntity | WorkerEntity
    ) -> float:
        """Jaccard overlap of preference tags."""
        ours = {normalize_tag(t) for t in subject.preferences if t.strip()}
        theirs = {normalize_tag(t) for t in candidate.preferences if t.strip()}
        if not ours or not theirs:
            return 1.0
        return len(ours & theirs) / len(ours | theirs)
