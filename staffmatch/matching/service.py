"""Matching service: criteria → pool filter → scoring → ranking → cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from staffmatch.cache.base import MatchCache
from staffmatch.cache.guard import CacheGuard
from staffmatch.matching.aggregator import aggregate
from staffmatch.matching.config import MatchingConfig, get_matching_config
from staffmatch.matching.criteria import CriteriaResolver
from staffmatch.matching.errors import (
    CacheUnavailable,
    ComputationSkip,
    ConfigurationError,
    NotFoundError,
    PersistenceTimeout,
)
from staffmatch.matching.fingerprint import (
    cache_key,
    compute_fingerprint,
    subject_key_prefix,
)
from staffmatch.matching.models import (
    ContextType,
    Criteria,
    JobEntity,
    Match,
    MatchNotification,
    MatchRequest,
    MatchResult,
    WorkerEntity,
    parse_entity,
)
from staffmatch.matching.pool import CandidatePoolFilter
from staffmatch.matching.ports import CriteriaSource, EntityStore, MatchHistory, Notifier
from staffmatch.matching.ranker import Ranker, ScoredCandidate
from staffmatch.matching.scorer import FeatureScorer
from staffmatch.utils.tasks import TaskRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MatchingService:
    """Find ranked matches for a job or a worker.

    The service holds no per-request state. Per-candidate scoring runs on a
    bounded thread pool; the cache is the only shared mutable resource and
    every cache failure degrades to direct computation.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        cache: MatchCache | None = None,
        config: MatchingConfig | None = None,
        criteria_source: CriteriaSource | None = None,
        notifier: Notifier | None = None,
        history: MatchHistory | None = None,
        tasks: TaskRunner | None = None,
        ranker: Ranker | None = None,
    ) -> None:
        self.config = config or get_matching_config()
        self.store = store
        self.criteria_source = criteria_source
        self.notifier = notifier
        self.history = history
        self.tasks = tasks or TaskRunner()

        self.resolver = CriteriaResolver(
            default_max_distance_km=self.config.default_max_distance_km
        )
        self.pool_filter = CandidatePoolFilter(self.config)
        self.scorer = FeatureScorer(self.config)
        self.ranker = ranker or Ranker()

        self._cache = (
            CacheGuard(cache, timeout=self.config.cache_timeout_seconds)
            if cache is not None
            else None
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.scoring_workers,
            thread_name_prefix="staffmatch-score",
        )

    async def close(self) -> None:
        """Wait for background work and release the scoring pool."""
        await self.tasks.drain(timeout=self.config.persistence_timeout_seconds)
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def find_matches(self, request: MatchRequest) -> MatchResult:
        """Return ranked matches for ``request``.

        Raises:
            NotFoundError: If the subject does not exist.
            ConfigurationError: If the criteria are invalid.
            PersistenceTimeout: If an entity or pool fetch times out.
        """
        started = time.monotonic()

        criteria = await self.resolve_criteria(request)
        subject = await self._fetch_subject(request.subject_id, request.context)
        min_score, top_k = self._ranking_params(request)
        fingerprint = self._fingerprint(request, criteria, min_score, top_k)
        key = cache_key(request.subject_id, request.context, fingerprint)

        if not request.force_refresh:
            cached = await self._cache_get(key)
            if cached is not None:
                logger.debug("Cache hit for %s %s", request.context.value, request.subject_id)
                return cached.as_cached()

        query = self.pool_filter.build_query(subject, criteria)
        raw_pool = await self._persistence_call("fetch_pool", self.store.fetch_pool(query))
        filtered = self.pool_filter.apply(subject, raw_pool, criteria)

        scored, skipped = await self._score_candidates(subject, filtered.candidates, criteria)
        skipped_total = len(filtered.skipped) + skipped

        matches = self.ranker.rank(
            scored,
            subject_id=subject.id,
            context=request.context,
            fingerprint=fingerprint,
            min_score=min_score,
            top_k=top_k,
        )

        result = MatchResult(
            subject_id=subject.id,
            context=request.context,
            fingerprint=fingerprint,
            matches=tuple(matches),
            threshold=min_score,
            top_k=top_k,
            total_candidates=filtered.total,
            filtered_candidates=filtered.filtered,
            scored_candidates=len(scored),
            skipped_candidates=skipped_total,
            computed_at=matches[0].computed_at if matches else self.ranker.now(),
        )

        logger.info(
            "Matched %s %s: %d of %d candidates at >= %.2f (%d skipped) in %.0fms",
            request.context.value,
            subject.id,
            len(matches),
            filtered.total,
            min_score,
            skipped_total,
            (time.monotonic() - started) * 1000,
        )

        # Served match ids must exist in history before they can be cached.
        if await self._record_history(matches):
            await self._cache_set(key, result, self._ttl(request))
        if request.notify_matches:
            self._notify(result)

        return result

    async def find_matches_for_job(self, job_id: str, **options: Any) -> MatchResult:
        return await self.find_matches(
            MatchRequest(subject_id=job_id, context=ContextType.JOB, **options)
        )

    async def find_matches_for_worker(self, worker_id: str, **options: Any) -> MatchResult:
        return await self.find_matches(
            MatchRequest(subject_id=worker_id, context=ContextType.WORKER, **options)
        )

    async def invalidate(self, request: MatchRequest) -> str:
        """Drop the cached result for exactly ``request``; see ``invalidate_subject``.

        Returns:
            The cache key that was invalidated.
        """
        criteria = await self.resolve_criteria(request)
        min_score, top_k = self._ranking_params(request)
        fingerprint = self._fingerprint(request, criteria, min_score, top_k)
        key = cache_key(request.subject_id, request.context, fingerprint)

        if self._cache is not None:
            try:
                await self._cache.invalidate(key)
            except CacheUnavailable as e:
                logger.warning("Could not invalidate %s: %s", key, e)
        return key

    async def invalidate_subject(self, subject_id: str, context: ContextType) -> int:
        """Drop every cached result for a subject, whatever its criteria or limits.

        Use this when the subject entity or the stored criteria change.

        Returns:
            The number of cache entries removed (0 if the cache is unavailable).
        """
        if self._cache is None:
            return 0
        prefix = subject_key_prefix(subject_id, context)
        try:
            removed = await self._cache.invalidate_prefix(prefix)
        except CacheUnavailable as e:
            logger.warning("Could not invalidate %s %s: %s", context.value, subject_id, e)
            return 0
        logger.debug("Invalidated %d cached result(s) for %s", removed, prefix)
        return removed

    async def resolve_criteria(self, request: MatchRequest) -> Criteria:
        """Resolve defaults, stored overrides and the request's override."""
        stored = await self._load_stored_criteria(request.context)
        return self.resolver.resolve(request.context, request.criteria, stored)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _ranking_params(self, request: MatchRequest) -> tuple[float, int]:
        if request.context is ContextType.JOB:
            default_score = self.config.job_min_match_score
            default_top_k = self.config.job_top_k
        else:
            default_score = self.config.worker_min_match_score
            default_top_k = self.config.worker_top_k

        min_score = (
            request.min_match_score
            if request.min_match_score is not None
            else default_score
        )
        top_k = request.top_k if request.top_k is not None else default_top_k
        return min_score, top_k

    def _fingerprint(
        self, request: MatchRequest, criteria: Criteria, min_score: float, top_k: int
    ) -> str:
        return compute_fingerprint(
            request.subject_id,
            request.context,
            criteria,
            {
                "min_match_score": min_score,
                "top_k": top_k,
                "pool_cap": self.config.pool_cap,
                "skill_fuzzy_match": self.config.skill_fuzzy_match,
                "skill_fuzzy_threshold": self.config.skill_fuzzy_threshold,
                "skill_level_bonus_cap": self.config.skill_level_bonus_cap,
                "default_max_distance_km": self.config.default_max_distance_km,
            },
        )

    def _ttl(self, request: MatchRequest) -> int:
        if request.assisted:
            return self.config.assisted_cache_ttl_seconds
        return self.config.cache_ttl_seconds

    async def _load_stored_criteria(self, context: ContextType) -> Mapping[str, Any] | None:
        if self.criteria_source is None:
            return None
        try:
            return await asyncio.wait_for(
                self.criteria_source.load_criteria(context),
                timeout=self.config.criteria_timeout_seconds,
            )
        except ConfigurationError:
            raise
        except TimeoutError:
            logger.warning(
                "Loading %s criteria timed out; using built-in defaults", context.value
            )
        except Exception as e:
            logger.warning(
                "Loading %s criteria failed (%s); using built-in defaults", context.value, e
            )
        return None

    async def _fetch_subject(
        self, subject_id: str, context: ContextType
    ) -> JobEntity | WorkerEntity:
        record = await self._persistence_call(
            "fetch_entity", self.store.fetch_entity(subject_id, context)
        )
        if record is None:
            raise NotFoundError(context.value, subject_id)

        subject = parse_entity(record)
        if subject.context is not context:
            raise NotFoundError(context.value, subject_id)
        return subject

    async def _persistence_call(self, operation: str, awaitable: Awaitable[T]) -> T:
        timeout = self.config.persistence_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError as e:
            raise PersistenceTimeout(operation, timeout) from e

    async def _score_candidates(
        self,
        subject: JobEntity | WorkerEntity,
        candidates: Sequence[JobEntity | WorkerEntity],
        criteria: Criteria,
    ) -> tuple[list[ScoredCandidate], int]:
        if not candidates:
            return [], 0

        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(self._executor, self._score_one, subject, candidate, criteria)
            for candidate in candidates
        ]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        scored: list[ScoredCandidate] = []
        skipped = 0
        for candidate, outcome in zip(candidates, outcomes, strict=True):
            if isinstance(outcome, ScoredCandidate):
                scored.append(outcome)
                continue
            skipped += 1
            if isinstance(outcome, ComputationSkip):
                logger.warning("%s", outcome)
            else:
                logger.warning(
                    "Scoring candidate %s failed: %s", candidate.id, outcome, exc_info=outcome
                )
        return scored, skipped

    def _score_one(
        self,
        subject: JobEntity | WorkerEntity,
        candidate: JobEntity | WorkerEntity,
        criteria: Criteria,
    ) -> ScoredCandidate:
        scores = self.scorer.score(subject, candidate, criteria)
        return ScoredCandidate(
            candidate_id=candidate.id,
            total_score=aggregate(scores, criteria),
            category_scores=scores,
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _cache_get(self, key: str) -> MatchResult | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get_result(key)
        except CacheUnavailable as e:
            logger.warning("Cache unavailable, computing directly: %s", e)
            return None

    async def _cache_set(self, key: str, result: MatchResult, ttl_seconds: int) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set_result(key, result, ttl_seconds)
        except CacheUnavailable as e:
            logger.warning("Cache unavailable, result not cached: %s", e)

    async def _record_history(self, matches: Sequence[Match]) -> bool:
        """Persist ``matches``; return False if the write failed."""
        if self.history is None or not matches:
            return True
        try:
            await asyncio.wait_for(
                self.history.record_matches(matches),
                timeout=self.config.persistence_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Could not record match history, result not cached: %s", e)
            return False
        return True

    def _notify(self, result: MatchResult) -> None:
        if self.notifier is None:
            return
        for match in result.matches:
            if match.total_score < self.config.notify_min_score:
                continue
            event = MatchNotification(
                subject_id=match.subject_id,
                candidate_id=match.candidate_id,
                context=match.context,
                match_id=match.match_id,
                total_score=match.total_score,
            )
            self.tasks.submit(
                self.notifier.notify(event), name=f"notify:{match.match_id}"
            )
