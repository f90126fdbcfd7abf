"""Feedback incorporation service.

Records accept/reject decisions against previously produced matches and
publishes acceptance signals per criteria fingerprint. Existing matches are
never recomputed here.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from staffmatch.feedback.models import (
    AcceptanceSignal,
    Feedback,
    FeedbackInput,
    FeedbackOutcome,
    FeedbackReceipt,
    MatchingInsights,
)
from staffmatch.feedback.repository import FeedbackRepository
from staffmatch.matching.errors import FeedbackConflict, NotFoundError
from staffmatch.matching.models import CATEGORIES, Match
from staffmatch.matching.ports import Notifier
from staffmatch.utils.tasks import TaskRunner

logger = logging.getLogger(__name__)


class FeedbackService:
    """Business logic for match feedback and match history."""

    def __init__(
        self,
        repository: FeedbackRepository,
        *,
        notifier: Notifier | None = None,
        tasks: TaskRunner | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            repository: Storage for match history and feedback.
            notifier: Receives acceptance signals, fire-and-forget.
            tasks: Runner used for fire-and-forget work.
            clock: Source of submission timestamps.
        """
        self.repository = repository
        self.notifier = notifier
        self.tasks = tasks or TaskRunner()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def record_matches(self, matches: Iterable[Match]) -> int:
        """Record produced matches so feedback can reference them."""
        return await self.repository.record_matches(matches)

    async def record_feedback(
        self,
        match_id: str,
        outcome: FeedbackOutcome | str,
        *,
        actor_id: str,
        rating: int | None = None,
        comment: str | None = None,
    ) -> FeedbackReceipt:
        """Append feedback for a match.

        A repeat of the same outcome by the same actor is a no-op success.

        Raises:
            pydantic.ValidationError: If the payload is invalid (e.g. rating outside 1-5).
            NotFoundError: If the match was never recorded.
        """
        payload = FeedbackInput(
            match_id=match_id,
            actor_id=actor_id,
            outcome=outcome,
            rating=rating,
            comment=comment,
        )

        match = await self.repository.get_match(payload.match_id)
        if match is None:
            raise NotFoundError("match", payload.match_id)

        feedback = Feedback(
            feedback_id=uuid.uuid4().hex,
            match_id=payload.match_id,
            actor_id=payload.actor_id,
            outcome=payload.outcome,
            submitted_at=self._clock(),
            rating=payload.rating,
            comment=payload.comment,
        )

        try:
            await self.repository.insert_feedback(feedback)
        except FeedbackConflict as e:
            logger.info("%s; ignoring", e)
            return FeedbackReceipt(
                match_id=payload.match_id,
                actor_id=payload.actor_id,
                outcome=payload.outcome,
                duplicate=True,
            )

        logger.debug(
            "Recorded %s feedback on match %s by %s",
            feedback.outcome.value,
            feedback.match_id,
            feedback.actor_id,
        )
        await self._emit_signal(match.criteria_fingerprint)

        return FeedbackReceipt(
            match_id=payload.match_id,
            actor_id=payload.actor_id,
            outcome=payload.outcome,
            feedback=feedback,
        )

    def submit_feedback(
        self,
        match_id: str,
        outcome: FeedbackOutcome | str,
        *,
        actor_id: str,
        rating: int | None = None,
        comment: str | None = None,
    ) -> asyncio.Task[Any]:
        """Record feedback in the background and return immediately.

        Failures are logged and kept on ``tasks.failures``.
        """
        return self.tasks.submit(
            self.record_feedback(
                match_id, outcome, actor_id=actor_id, rating=rating, comment=comment
            ),
            name=f"feedback:{match_id}",
        )

    async def acceptance_signal(self, criteria_fingerprint: str) -> AcceptanceSignal:
        return await self.repository.acceptance_signal(criteria_fingerprint)

    async def acceptance_signals(self) -> list[AcceptanceSignal]:
        return await self.repository.acceptance_signals()

    async def get_insights(self, subject_id: str) -> MatchingInsights:
        """Summarize recorded matches and feedback for a subject."""
        matches = await self.repository.list_matches_for_subject(subject_id)
        counts = await self.repository.outcome_counts_for_subject(subject_id)

        accepted = counts.get(FeedbackOutcome.ACCEPT, 0)
        rejected = counts.get(FeedbackOutcome.REJECT, 0)

        if matches:
            average_score = math.fsum(m.total_score for m in matches) / len(matches)
            average_categories = {
                category: math.fsum(m.category_scores.get(category, 0.0) for m in matches)
                / len(matches)
                for category in CATEGORIES
            }
        else:
            average_score = 0.0
            average_categories = {}

        return MatchingInsights(
            subject_id=subject_id,
            total_matches=len(matches),
            feedback_count=accepted + rejected,
            accepted=accepted,
            rejected=rejected,
            average_score=average_score,
            average_category_scores=average_categories,
        )

    async def _emit_signal(self, criteria_fingerprint: str) -> None:
        if self.notifier is None:
            return
        signal = await self.repository.acceptance_signal(criteria_fingerprint)
        self.tasks.submit(
            self.notifier.notify(signal),
            name=f"signal:{criteria_fingerprint[:12]}",
        )
