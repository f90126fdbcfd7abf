"""Data models for match feedback."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FeedbackOutcome(str, Enum):
    """A human decision on a proposed match."""

    ACCEPT = "accept"
    REJECT = "reject"


class FeedbackInput(BaseModel):
    """Validated feedback payload as submitted by a caller."""

    model_config = ConfigDict(frozen=True)

    match_id: str = Field(..., min_length=1)
    actor_id: str = Field(..., min_length=1, description="Who made the decision")
    outcome: FeedbackOutcome
    rating: int | None = Field(default=None, ge=1, le=5, description="Optional 1-5 rating")
    comment: str | None = Field(default=None, max_length=1000)


@dataclass(frozen=True)
class Feedback:
    """An append-only feedback record. Referenced by, never embedded in, a match."""

    feedback_id: str
    match_id: str
    actor_id: str
    outcome: FeedbackOutcome
    submitted_at: datetime
    rating: int | None = None
    comment: str | None = None

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "feedback_id": self.feedback_id,
            "match_id": self.match_id,
            "actor_id": self.actor_id,
            "outcome": self.outcome.value,
            "submitted_at": self.submitted_at.isoformat(),
            "rating": self.rating,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class FeedbackReceipt:
    """Outcome of a feedback submission.

    A repeated (actor, match, outcome) is acknowledged as a no-op with
    ``duplicate=True`` and no new record.
    """

    match_id: str
    actor_id: str
    outcome: FeedbackOutcome
    feedback: Feedback | None = None
    duplicate: bool = False

    @property
    def recorded(self) -> bool:
        return self.feedback is not None


@dataclass(frozen=True)
class AcceptanceSignal:
    """Acceptance statistics for one criteria fingerprint.

    Consumed by offline weight tuning; the engine itself never retrains.
    """

    criteria_fingerprint: str
    accepted: int
    rejected: int
    event_type: str = "match.feedback.signal"

    @property
    def total(self) -> int:
        return self.accepted + self.rejected

    @property
    def acceptance_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.accepted / self.total


@dataclass(frozen=True)
class MatchingInsights:
    """Summary of match history and feedback for one subject."""

    subject_id: str
    total_matches: int
    feedback_count: int
    accepted: int
    rejected: int
    average_score: float
    average_category_scores: dict[str, float] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def acceptance_rate(self) -> float:
        decided = self.accepted + self.rejected
        if decided == 0:
            return 0.0
        return self.accepted / decided
