"""Threshold, order and truncate scored candidates."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from staffmatch.matching.models import ContextType, Match


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate's category scores and weighted total, before ranking."""

    candidate_id: str
    total_score: float
    category_scores: dict[str, float] = field(default_factory=dict)


def rank_candidates(
    scored: Iterable[ScoredCandidate], *, min_score: float, top_k: int
) -> list[ScoredCandidate]:
    """Drop entries below ``min_score``, sort, tie-break by id and truncate.

    Order is total score descending, then candidate id ascending.
    """
    if top_k <= 0:
        return []
    kept = [item for item in scored if item.total_score >= min_score]
    kept.sort(key=lambda item: (-item.total_score, item.candidate_id))
    return kept[:top_k]


class Ranker:
    """Turn scored candidates into the canonical ``Match`` list."""

    def __init__(
        self,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    def rank(
        self,
        scored: Iterable[ScoredCandidate],
        *,
        subject_id: str,
        context: ContextType,
        fingerprint: str,
        min_score: float,
        top_k: int,
    ) -> list[Match]:
        computed_at = self.now()
        return [
            Match(
                match_id=self._id_factory(),
                subject_id=subject_id,
                candidate_id=item.candidate_id,
                context=context,
                category_scores=dict(item.category_scores),
                total_score=item.total_score,
                rank=position,
                computed_at=computed_at,
                criteria_fingerprint=fingerprint,
            )
            for position, item in enumerate(
                rank_candidates(scored, min_score=min_score, top_k=top_k), start=1
            )
        ]
