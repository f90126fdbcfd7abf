"""Collaborator contracts consumed by the matching engine.

Persistence, criteria storage and notification delivery live outside the
engine; anything with these async methods can be injected.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from staffmatch.matching.models import ContextType, JobEntity, Match, PoolQuery, WorkerEntity

EntityRecord = JobEntity | WorkerEntity | Mapping[str, Any]


class EntityStore(Protocol):
    async def fetch_entity(self, entity_id: str, context: ContextType) -> EntityRecord | None:
        """Return the entity, or None (or raise NotFoundError) if it does not exist."""
        ...

    async def fetch_pool(self, query: PoolQuery) -> Sequence[EntityRecord]:
        """Return a bounded pool of opposite-side records for ``query``."""
        ...


class CriteriaSource(Protocol):
    async def load_criteria(self, context: ContextType) -> Mapping[str, Any] | None:
        ...


class Notifier(Protocol):
    async def notify(self, event: Any) -> None:
        """Deliver ``event`` best-effort. Return values are ignored."""
        ...


class MatchHistory(Protocol):
    async def record_matches(self, matches: Iterable[Match]) -> int:
        """Persist produced matches so later feedback can reference them."""
        ...
