"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime
from types import SimpleNamespace
from typing import Any

import pytest

from staffmatch.config.settings import reset_settings
from staffmatch.matching.config import MatchingConfig, reset_matching_config
from staffmatch.matching.models import (
    ContextType,
    GeoPoint,
    JobEntity,
    PoolQuery,
    Skill,
    TimeWindow,
    WorkerEntity,
)
from staffmatch.utils.logging import reset_logging

# Downtown Chicago and points roughly 10 km / 80 km away along the meridian.
ORIGIN = (41.8781, -87.6298)
TEN_KM_NORTH = (41.8781 + 10 / 111.195, -87.6298)
EIGHTY_KM_NORTH = (41.8781 + 80 / 111.195, -87.6298)


def _make_job(
    job_id: str = "job-1",
    *,
    skills: Sequence[str | tuple[str, int | None]] = ("welding", "forklift"),
    at: tuple[float, float] | None = ORIGIN,
    radius_km: float | None = None,
    min_years: float | None = None,
    windows: Sequence[tuple[datetime, datetime]] = (),
    preferences: Sequence[str] = (),
    status: str = "open",
    remote: bool = False,
    **extra: Any,
) -> JobEntity:
    return JobEntity(
        id=job_id,
        status=status,
        title=extra.pop("title", "Fabricator"),
        location=GeoPoint(latitude=at[0], longitude=at[1], radius_km=radius_km) if at else None,
        skills=tuple(_skill(s) for s in skills),
        min_experience_years=min_years,
        availability=tuple(TimeWindow(start=s, end=e) for s, e in windows),
        preferences=frozenset(preferences),
        remote=remote,
        **extra,
    )


def _make_worker(
    worker_id: str = "worker-1",
    *,
    skills: Sequence[str | tuple[str, int | None]] = ("welding",),
    at: tuple[float, float] | None = TEN_KM_NORTH,
    years: float = 5.0,
    windows: Sequence[tuple[datetime, datetime]] = (),
    preferences: Sequence[str] = (),
    status: str = "available",
    **extra: Any,
) -> WorkerEntity:
    return WorkerEntity(
        id=worker_id,
        status=status,
        name=extra.pop("name", worker_id.title()),
        location=GeoPoint(latitude=at[0], longitude=at[1]) if at else None,
        skills=tuple(_skill(s) for s in skills),
        experience_years=years,
        availability=tuple(TimeWindow(start=s, end=e) for s, e in windows),
        preferences=frozenset(preferences),
        **extra,
    )


def _skill(value: str | tuple[str, int | None]) -> Skill:
    if isinstance(value, tuple):
        name, level = value
        return Skill(name=name, level=level)
    return Skill(name=value)


class FakeEntityStore:
    """In-memory EntityStore that records calls."""

    def __init__(
        self,
        entities: Sequence[JobEntity | WorkerEntity | Mapping[str, Any]] = (),
        *,
        delay: float = 0.0,
    ) -> None:
        self.entities: dict[str, Any] = {}
        for entity in entities:
            entity_id = entity["id"] if isinstance(entity, Mapping) else entity.id
            self.entities[entity_id] = entity
        self.delay = delay
        self.pool_queries: list[PoolQuery] = []
        self.fetch_pool_calls = 0

    async def fetch_entity(self, entity_id: str, context: ContextType) -> Any:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.entities.get(entity_id)

    async def fetch_pool(self, query: PoolQuery) -> list[Any]:
        self.fetch_pool_calls += 1
        self.pool_queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = []
        for entity in self.entities.values():
            kind = entity["kind"] if isinstance(entity, Mapping) else entity.kind
            if kind == query.kind.value:
                result.append(entity)
        return result


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[Any] = []
        self.fail = fail

    async def notify(self, event: Any) -> None:
        if self.fail:
            raise RuntimeError("notification transport down")
        self.events.append(event)


@pytest.fixture(autouse=True)
def _reset_singletons():
    reset_matching_config()
    reset_settings()
    yield
    reset_matching_config()
    reset_settings()
    reset_logging()


@pytest.fixture
def config() -> MatchingConfig:
    """Matching config isolated from the environment."""
    return MatchingConfig(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def coords() -> SimpleNamespace:
    """Reference coordinates: an origin and points 10 km and 80 km north of it."""
    return SimpleNamespace(origin=ORIGIN, ten_km=TEN_KM_NORTH, eighty_km=EIGHTY_KM_NORTH)


@pytest.fixture
def make_job():
    return _make_job


@pytest.fixture
def make_worker():
    return _make_worker


@pytest.fixture
def make_store():
    return FakeEntityStore


@pytest.fixture
def make_notifier():
    return RecordingNotifier
