"""Tests for the matching service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from staffmatch.cache.memory import InMemoryMatchCache
from staffmatch.matching.config import MatchingConfig
from staffmatch.matching.errors import (
    ComputationSkip,
    ConfigurationError,
    NotFoundError,
    PersistenceTimeout,
)
from staffmatch.matching.models import ContextType, MatchNotification, MatchRequest
from staffmatch.matching.service import MatchingService


class SlowCache(InMemoryMatchCache):
    """Cache whose reads never finish in time."""

    async def get(self, key):
        await asyncio.sleep(1)
        return await super().get(key)


class BrokenCache:
    """Cache backend that is down."""

    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache down")

    async def invalidate(self, key):
        raise ConnectionError("cache down")

    async def invalidate_prefix(self, prefix):
        raise ConnectionError("cache down")


class RecordingCache(InMemoryMatchCache):
    """Cache that remembers the TTL of every write."""

    def __init__(self):
        super().__init__()
        self.ttls = []

    async def set(self, key, value, ttl_seconds):
        self.ttls.append(ttl_seconds)
        await super().set(key, value, ttl_seconds)


@pytest.fixture
def build_service():
    """Build services and shut their scoring pools down afterwards."""
    created = []

    def _build(store, *, settings=None, **kwargs):
        config = MatchingConfig(_env_file=None, **(settings or {}))
        service = MatchingService(store, config=config, **kwargs)
        created.append(service)
        return service

    yield _build

    for service in created:
        service._executor.shutdown(wait=False)


@pytest.fixture
def marketplace(make_job, make_worker, make_store, coords):
    """A welding job and a mix of workers around it."""
    return make_store(
        [
            make_job("job-1", skills=["welding", "forklift"], at=coords.origin),
            make_worker("perfect", skills=["welding", "forklift"], at=coords.origin),
            make_worker("partial", skills=["welding"], at=coords.ten_km),
            make_worker("too-far", skills=["welding", "forklift"], at=coords.eighty_km),
            make_worker("unskilled", skills=["bartending"], at=coords.origin),
            make_worker("busy", skills=["welding", "forklift"], status="placed"),
        ]
    )


class TestFindMatches:
    """Test the main matching pipeline."""

    @pytest.mark.asyncio
    async def test_ranks_workers_for_job(self, build_service, marketplace):
        service = build_service(marketplace)

        result = await service.find_matches_for_job("job-1")

        assert [m.candidate_id for m in result.matches] == ["perfect", "partial"]
        assert [m.rank for m in result.matches] == [1, 2]
        assert result.matches[0].total_score == pytest.approx(1.0)
        assert result.matches[1].total_score == pytest.approx(0.82, abs=1e-3)
        assert result.threshold == 0.7
        assert result.top_k == 50
        assert result.total_candidates == 5
        assert result.filtered_candidates == 2
        assert result.from_cache is False

    @pytest.mark.asyncio
    async def test_pool_query_describes_candidates(self, build_service, marketplace):
        service = build_service(marketplace)

        await service.find_matches_for_job("job-1")

        query = marketplace.pool_queries[0]
        assert query.kind is ContextType.WORKER
        assert query.status == "available"
        assert query.max_distance_km == 50.0

    @pytest.mark.asyncio
    async def test_matches_for_worker_use_worker_defaults(
        self, build_service, make_job, make_worker, make_store, coords
    ):
        store = make_store(
            [
                make_worker("w-1", skills=["welding"], at=coords.origin),
                make_job("close", skills=["welding"], at=coords.origin),
                make_job("remote", skills=["welding"], at=coords.eighty_km, remote=True),
                make_job("filled", skills=["welding"], status="filled"),
            ]
        )
        service = build_service(store)

        result = await service.find_matches_for_worker("w-1")

        assert result.threshold == 0.75
        assert result.top_k == 10
        assert {m.candidate_id for m in result.matches} == {"close", "remote"}
        assert all(m.context is ContextType.WORKER for m in result.matches)

    @pytest.mark.asyncio
    async def test_request_overrides_threshold_and_top_k(self, build_service, marketplace):
        service = build_service(marketplace)

        result = await service.find_matches(
            MatchRequest(subject_id="job-1", context=ContextType.JOB, min_match_score=0.9)
        )
        assert [m.candidate_id for m in result.matches] == ["perfect"]

        result = await service.find_matches(
            MatchRequest(subject_id="job-1", context=ContextType.JOB, top_k=1)
        )
        assert len(result.matches) == 1

    @pytest.mark.asyncio
    async def test_results_respect_threshold_and_bound(self, build_service, marketplace):
        service = build_service(marketplace)

        result = await service.find_matches_for_job("job-1", top_k=5, min_match_score=0.5)

        assert len(result.matches) <= 5
        assert all(m.total_score >= 0.5 for m in result.matches)
        scores = [m.total_score for m in result.matches]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_empty_pool(self, build_service, make_job, make_store):
        service = build_service(make_store([make_job("lonely")]))

        result = await service.find_matches_for_job("lonely")

        assert result.matches == ()
        assert result.total_candidates == 0
        assert result.average_score == 0.0

    @pytest.mark.asyncio
    async def test_deterministic_across_services(self, build_service, marketplace):
        first = await build_service(marketplace).find_matches_for_job("job-1")
        second = await build_service(marketplace).find_matches_for_job("job-1")

        assert first.fingerprint == second.fingerprint
        assert [(m.candidate_id, m.total_score, m.category_scores) for m in first.matches] == [
            (m.candidate_id, m.total_score, m.category_scores) for m in second.matches
        ]


class TestSubjectErrors:
    """Test subject lookup failures."""

    @pytest.mark.asyncio
    async def test_unknown_subject(self, build_service, marketplace):
        with pytest.raises(NotFoundError, match="job not found: nope"):
            await build_service(marketplace).find_matches_for_job("nope")

    @pytest.mark.asyncio
    async def test_subject_of_wrong_kind(self, build_service, marketplace):
        with pytest.raises(NotFoundError):
            await build_service(marketplace).find_matches_for_job("perfect")

    @pytest.mark.asyncio
    async def test_persistence_timeout(self, build_service, make_job, make_store):
        store = make_store([make_job("job-1")], delay=0.5)
        service = build_service(store, settings={"persistence_timeout_seconds": 0.05})

        with pytest.raises(PersistenceTimeout) as exc_info:
            await service.find_matches_for_job("job-1")

        assert exc_info.value.operation == "fetch_entity"

    @pytest.mark.asyncio
    async def test_invalid_criteria_override(self, build_service, marketplace):
        with pytest.raises(ConfigurationError):
            await build_service(marketplace).find_matches_for_job(
                "job-1", criteria={"skills": {"weight": -1}}
            )


class TestCandidateSkips:
    """Test per-candidate failure isolation."""

    @pytest.mark.asyncio
    async def test_malformed_candidate_is_skipped(
        self, build_service, make_job, make_worker, make_store
    ):
        store = make_store(
            [
                make_job("job-1", skills=["welding"]),
                {"kind": "worker", "id": "broken", "experience_years": -1},
                make_worker("ok", skills=["welding"]),
            ]
        )

        result = await build_service(store).find_matches_for_job("job-1", min_match_score=0)

        assert [m.candidate_id for m in result.matches] == ["ok"]
        assert result.skipped_candidates == 1

    @pytest.mark.asyncio
    async def test_scoring_failure_is_skipped(self, build_service, marketplace, monkeypatch):
        service = build_service(marketplace)
        original = service.scorer.score

        def flaky(subject, candidate, criteria):
            if candidate.id == "perfect":
                raise ComputationSkip(candidate.id, "bad data")
            return original(subject, candidate, criteria)

        monkeypatch.setattr(service.scorer, "score", flaky)

        result = await service.find_matches_for_job("job-1")

        assert [m.candidate_id for m in result.matches] == ["partial"]
        assert result.skipped_candidates == 1
        assert result.scored_candidates == 1

    @pytest.mark.asyncio
    async def test_unexpected_scoring_error_is_skipped(
        self, build_service, marketplace, monkeypatch
    ):
        service = build_service(marketplace)

        def broken(subject, candidate, criteria):
            raise ValueError("boom")

        monkeypatch.setattr(service.scorer, "score", broken)

        result = await service.find_matches_for_job("job-1")

        assert result.matches == ()
        assert result.skipped_candidates == 2


class TestCaching:
    """Test cache hits, refreshes and degradation."""

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, build_service, marketplace):
        service = build_service(marketplace, cache=InMemoryMatchCache())

        first = await service.find_matches_for_job("job-1")
        second = await service.find_matches_for_job("job-1")

        assert second.from_cache is True
        assert second.matches == first.matches
        assert second.fingerprint == first.fingerprint
        assert marketplace.fetch_pool_calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh_recomputes(self, build_service, marketplace):
        service = build_service(marketplace, cache=InMemoryMatchCache())

        await service.find_matches_for_job("job-1")
        refreshed = await service.find_matches_for_job("job-1", force_refresh=True)

        assert refreshed.from_cache is False
        assert marketplace.fetch_pool_calls == 2

    @pytest.mark.asyncio
    async def test_weight_change_misses_cache(self, build_service, marketplace):
        service = build_service(marketplace, cache=InMemoryMatchCache())

        first = await service.find_matches_for_job("job-1")
        second = await service.find_matches_for_job(
            "job-1", criteria={"skills": {"weight": 0.35}}
        )

        assert second.from_cache is False
        assert second.fingerprint != first.fingerprint
        assert marketplace.fetch_pool_calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_drops_cached_result(self, build_service, marketplace):
        service = build_service(marketplace, cache=InMemoryMatchCache())
        request = MatchRequest(subject_id="job-1", context=ContextType.JOB)

        result = await service.find_matches(request)
        key = await service.invalidate(request)
        again = await service.find_matches(request)

        assert key.endswith(result.fingerprint)
        assert again.from_cache is False
        assert marketplace.fetch_pool_calls == 2

    @pytest.mark.asyncio
    async def test_invalidate_subject_drops_every_variant(
        self, build_service, marketplace, make_job
    ):
        marketplace.entities["job-2"] = make_job("job-2")
        service = build_service(marketplace, cache=InMemoryMatchCache())
        await service.find_matches_for_job("job-1")
        await service.find_matches_for_job("job-1", top_k=1)
        await service.find_matches_for_job("job-1", criteria={"skills": {"weight": 0.5}})
        await service.find_matches_for_job("job-2")

        removed = await service.invalidate_subject("job-1", ContextType.JOB)

        assert removed == 3
        assert (await service.find_matches_for_job("job-1", top_k=1)).from_cache is False
        assert (await service.find_matches_for_job("job-2")).from_cache is True

    @pytest.mark.asyncio
    async def test_invalidate_subject_without_cache(self, build_service, marketplace):
        service = build_service(marketplace)

        assert await service.invalidate_subject("job-1", ContextType.JOB) == 0

    @pytest.mark.asyncio
    async def test_invalidate_subject_with_cache_down(self, build_service, marketplace):
        service = build_service(marketplace, cache=BrokenCache())

        assert await service.invalidate_subject("job-1", ContextType.JOB) == 0

    @pytest.mark.asyncio
    async def test_ttl_depends_on_request_kind(self, build_service, marketplace):
        cache = RecordingCache()
        service = build_service(marketplace, cache=cache)

        await service.find_matches_for_job("job-1")
        await service.find_matches_for_job("job-1", assisted=True, force_refresh=True)

        assert cache.ttls == [3600, 1800]

    @pytest.mark.asyncio
    async def test_cache_timeout_degrades_to_compute(self, build_service, marketplace):
        service = build_service(
            marketplace, cache=SlowCache(), settings={"cache_timeout_seconds": 0.05}
        )

        result = await service.find_matches_for_job("job-1")

        assert result.from_cache is False
        assert [m.candidate_id for m in result.matches] == ["perfect", "partial"]

    @pytest.mark.asyncio
    async def test_cache_failure_degrades_to_compute(self, build_service, marketplace):
        service = build_service(marketplace, cache=BrokenCache())

        result = await service.find_matches_for_job("job-1")
        key = await service.invalidate(
            MatchRequest(subject_id="job-1", context=ContextType.JOB)
        )

        assert len(result.matches) == 2
        assert key.startswith("matching:job:job-1:")


class TestCriteriaSource:
    """Test stored criteria overrides."""

    @pytest.mark.asyncio
    async def test_stored_criteria_are_applied(self, build_service, marketplace):
        source = AsyncMock()
        source.load_criteria.return_value = {"location": {"max_distance_km": 100}}
        service = build_service(marketplace, criteria_source=source)

        result = await service.find_matches_for_job("job-1", min_match_score=0)

        source.load_criteria.assert_awaited_with(ContextType.JOB)
        assert "too-far" in {m.candidate_id for m in result.matches}

    @pytest.mark.asyncio
    async def test_failing_source_falls_back_to_defaults(self, build_service, marketplace):
        source = AsyncMock()
        source.load_criteria.side_effect = OSError("disk gone")
        service = build_service(marketplace, criteria_source=source)

        criteria = await service.resolve_criteria(
            MatchRequest(subject_id="job-1", context=ContextType.JOB)
        )

        assert criteria.skills.weight == 0.30

    @pytest.mark.asyncio
    async def test_invalid_stored_criteria_propagate(self, build_service, marketplace):
        source = AsyncMock()
        source.load_criteria.side_effect = ConfigurationError("bad file")
        service = build_service(marketplace, criteria_source=source)

        with pytest.raises(ConfigurationError):
            await service.find_matches_for_job("job-1")


class TestSideEffects:
    """Test match history and notifications."""

    @pytest.mark.asyncio
    async def test_history_records_matches(self, build_service, marketplace):
        history = AsyncMock()
        service = build_service(marketplace, history=history)

        result = await service.find_matches_for_job("job-1")

        history.record_matches.assert_awaited_once()
        assert list(history.record_matches.await_args.args[0]) == list(result.matches)

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_request(self, build_service, marketplace):
        history = AsyncMock()
        history.record_matches.side_effect = RuntimeError("db locked")
        service = build_service(marketplace, history=history)

        result = await service.find_matches_for_job("job-1")

        assert len(result.matches) == 2

    @pytest.mark.asyncio
    async def test_unrecorded_matches_are_not_cached(self, build_service, marketplace):
        """Ids that never reached history must not be served again from cache."""
        history = AsyncMock()
        history.record_matches.side_effect = [RuntimeError("db locked"), None, None]
        cache = InMemoryMatchCache()
        service = build_service(marketplace, cache=cache, history=history)

        first = await service.find_matches_for_job("job-1")
        second = await service.find_matches_for_job("job-1")
        third = await service.find_matches_for_job("job-1")

        assert second.from_cache is False
        assert {m.match_id for m in second.matches}.isdisjoint(
            m.match_id for m in first.matches
        )
        assert third.from_cache is True
        assert third.matches == second.matches
        assert marketplace.fetch_pool_calls == 2
        assert history.record_matches.await_count == 2

    @pytest.mark.asyncio
    async def test_notifies_high_scoring_matches(
        self, build_service, marketplace, make_notifier
    ):
        notifier = make_notifier()
        service = build_service(
            marketplace, notifier=notifier, settings={"notify_min_score": 0.9}
        )

        await service.find_matches_for_job("job-1", notify_matches=True)
        await service.tasks.drain()

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert isinstance(event, MatchNotification)
        assert event.candidate_id == "perfect"
        assert event.event_type == "match.found"

    @pytest.mark.asyncio
    async def test_no_notifications_unless_requested(
        self, build_service, marketplace, make_notifier
    ):
        notifier = make_notifier()
        service = build_service(marketplace, notifier=notifier)

        await service.find_matches_for_job("job-1")
        await service.tasks.drain()

        assert notifier.events == []

    @pytest.mark.asyncio
    async def test_notification_failure_is_isolated(
        self, build_service, marketplace, make_notifier
    ):
        service = build_service(marketplace, notifier=make_notifier(fail=True))

        result = await service.find_matches_for_job("job-1", notify_matches=True)
        await service.tasks.drain()

        assert len(result.matches) == 2
        assert len(service.tasks.failures) == 2
        assert all(f.name.startswith("notify:") for f in service.tasks.failures)


class TestClose:
    @pytest.mark.asyncio
    async def test_close_drains_background_work(
        self, build_service, marketplace, make_notifier
    ):
        notifier = make_notifier()
        service = build_service(marketplace, notifier=notifier)

        await service.find_matches_for_job("job-1", notify_matches=True)
        await service.close()

        assert len(notifier.events) == 2
        assert service.tasks.pending == 0
