"""Hard-constraint filtering of the raw candidate pool."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from staffmatch.matching.config import MatchingConfig, get_matching_config
from staffmatch.matching.errors import ComputationSkip
from staffmatch.matching.geo import distance_between, effective_max_distance
from staffmatch.matching.matchers import find_matching_skills, unique_skills
from staffmatch.matching.models import (
    ContextType,
    Criteria,
    JobEntity,
    PoolQuery,
    WorkerEntity,
    parse_entity,
)

logger = logging.getLogger(__name__)


@dataclass
class PoolFilterResult:
    """Filtered candidates and what was dropped along the way."""

    candidates: list[JobEntity | WorkerEntity]
    total: int
    skipped: list[ComputationSkip] = field(default_factory=list)
    rejected: dict[str, int] = field(default_factory=dict)

    @property
    def filtered(self) -> int:
        return len(self.candidates)


def _record_id(record: Any, index: int) -> str:
    if isinstance(record, dict):
        value = record.get("id")
    else:
        value = getattr(record, "id", None)
    return str(value) if value else f"#{index}"


class CandidatePoolFilter:
    """Narrow a raw pool to a bounded candidate set before any scoring.

    Hard filters, in order: candidate kind and status, job start time (a
    job that has already started is never offered to a worker), distance
    limit (when location carries weight and a limit is configured), required
    skills (at least one held, and at least ``skills.required_match`` of
    them), and compensation overlap when ``preferences.compensation_strict``
    is set.
    Survivors are capped at ``pool_cap``, keeping the nearest candidates and
    then those with the most skills.
    """

    def __init__(
        self,
        config: MatchingConfig | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.config = config or get_matching_config()
        self._clock = clock

    def build_query(
        self, subject: JobEntity | WorkerEntity, criteria: Criteria
    ) -> PoolQuery:
        """Describe the pool the persistence collaborator should fetch."""
        kind = subject.context.opposite
        limit_km = None
        if criteria.location.weight > 0:
            limit_km = effective_max_distance(
                subject.location, criteria.location.max_distance_km
            )
        return PoolQuery(
            kind=kind,
            status=kind.available_status,
            near=subject.location if limit_km is not None else None,
            max_distance_km=limit_km,
            skill_names=tuple(s.name for s in unique_skills(subject.skills)),
            starts_after=self._clock() if kind is ContextType.JOB else None,
        )

    def apply(
        self,
        subject: JobEntity | WorkerEntity,
        pool: Iterable[Any],
        criteria: Criteria,
    ) -> PoolFilterResult:
        """Filter ``pool`` against ``subject``; an empty result is valid."""
        records = list(pool)
        result = PoolFilterResult(candidates=[], total=len(records))
        wanted_kind = subject.context.opposite
        now = self._clock()

        ranked: list[tuple[float, int, str, JobEntity | WorkerEntity]] = []
        for index, record in enumerate(records):
            try:
                candidate = parse_entity(record)
            except ValidationError as e:
                skip = ComputationSkip(
                    _record_id(record, index),
                    f"malformed record: {e.error_count()} error(s)",
                )
                logger.warning("%s", skip)
                result.skipped.append(skip)
                continue

            reason = self._rejection(subject, candidate, criteria, wanted_kind.value, now)
            if reason is not None:
                result.rejected[reason] = result.rejected.get(reason, 0) + 1
                continue

            distance = distance_between(subject.location, candidate.location)
            ranked.append(
                (
                    distance if distance is not None else math.inf,
                    -len(unique_skills(candidate.skills)),
                    candidate.id,
                    candidate,
                )
            )

        ranked.sort(key=lambda item: item[:3])
        if len(ranked) > self.config.pool_cap:
            logger.debug(
                "Capping candidate pool for %s from %d to %d",
                subject.id,
                len(ranked),
                self.config.pool_cap,
            )
        result.candidates = [item[3] for item in ranked[: self.config.pool_cap]]
        return result

    def _rejection(
        self,
        subject: JobEntity | WorkerEntity,
        candidate: JobEntity | WorkerEntity,
        criteria: Criteria,
        wanted_kind: str,
        now: datetime,
    ) -> str | None:
        if candidate.kind != wanted_kind:
            return "kind"
        if candidate.id == subject.id:
            return "self"
        if not candidate.is_available:
            return "status"
        if isinstance(candidate, JobEntity) and candidate.has_started(now):
            return "started"

        job = subject if isinstance(subject, JobEntity) else candidate
        worker = candidate if isinstance(candidate, WorkerEntity) else subject

        if criteria.location.weight > 0 and not job.remote:  # type: ignore[union-attr]
            limit_km = effective_max_distance(
                subject.location, criteria.location.max_distance_km
            )
            distance = distance_between(subject.location, candidate.location)
            if limit_km is not None and distance is not None and distance > limit_km:
                return "distance"

        required = unique_skills(job.skills)
        if required:
            matched, _missing = find_matching_skills(
                required,
                worker.skills,
                fuzzy=self.config.skill_fuzzy_match,
                threshold=self.config.skill_fuzzy_threshold,
            )
            if not matched:
                return "skills"
            if len(matched) / len(required) < criteria.skills.required_match:
                return "skills"

        if criteria.preferences.compensation_strict:
            if (
                subject.compensation is not None
                and candidate.compensation is not None
                and not subject.compensation.overlaps(candidate.compensation)
            ):
                return "compensation"

        return None
