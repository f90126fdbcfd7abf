"""Wire the matching and feedback services from settings."""

from __future__ import annotations

from dataclasses import dataclass

from staffmatch.cache.base import MatchCache
from staffmatch.cache.memory import InMemoryMatchCache
from staffmatch.cache.sqlite import SQLiteMatchCache
from staffmatch.config.settings import Settings, get_settings
from staffmatch.feedback.repository import FeedbackRepository
from staffmatch.feedback.service import FeedbackService
from staffmatch.matching.config import MatchingConfig, get_matching_config
from staffmatch.matching.criteria import FileCriteriaSource
from staffmatch.matching.ports import EntityStore, Notifier
from staffmatch.matching.service import MatchingService
from staffmatch.utils.logging import configure_logging
from staffmatch.utils.tasks import TaskRunner


@dataclass
class Services:
    """The wired services and the resources they own."""

    matching: MatchingService
    feedback: FeedbackService
    repository: FeedbackRepository
    cache: MatchCache
    tasks: TaskRunner

    async def close(self) -> None:
        await self.matching.close()
        await self.tasks.drain()
        await self.repository.close()
        if isinstance(self.cache, SQLiteMatchCache):
            await self.cache.close()


async def build_services(
    store: EntityStore,
    *,
    settings: Settings | None = None,
    config: MatchingConfig | None = None,
    notifier: Notifier | None = None,
) -> Services:
    """Build services backed by the configured cache and feedback database.

    Args:
        store: Persistence collaborator for entities and pools.
        settings: Library settings (defaults to the singleton).
        config: Matching tunables (defaults to the singleton).
        notifier: Optional notification collaborator.
    """
    settings = settings or get_settings()
    config = config or get_matching_config()
    configure_logging(settings.log_level)

    cache: MatchCache
    if settings.cache_backend == "sqlite":
        sqlite_cache = SQLiteMatchCache(settings.cache_db_path)
        await sqlite_cache.initialize()
        cache = sqlite_cache
    else:
        cache = InMemoryMatchCache()

    repository = FeedbackRepository(settings.feedback_db_path)
    await repository.initialize()

    tasks = TaskRunner()
    feedback = FeedbackService(repository, notifier=notifier, tasks=tasks)
    criteria_source = (
        FileCriteriaSource(settings.criteria_dir) if settings.criteria_dir else None
    )
    matching = MatchingService(
        store,
        cache=cache,
        config=config,
        criteria_source=criteria_source,
        notifier=notifier,
        history=feedback,
        tasks=tasks,
    )
    return Services(
        matching=matching,
        feedback=feedback,
        repository=repository,
        cache=cache,
        tasks=tasks,
    )
