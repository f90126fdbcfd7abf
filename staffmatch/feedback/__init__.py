"""Feedback incorporation: match history, accept/reject records, signals.

Public API:
    - FeedbackService: Record feedback and read acceptance signals/insights
    - FeedbackRepository: SQLite storage for match history and feedback
"""

from staffmatch.feedback.models import (
    AcceptanceSignal,
    Feedback,
    FeedbackInput,
    FeedbackOutcome,
    FeedbackReceipt,
    MatchingInsights,
)
from staffmatch.feedback.repository import FeedbackRepository
from staffmatch.feedback.service import FeedbackService

__all__ = [
    "FeedbackService",
    "FeedbackRepository",
    "Feedback",
    "FeedbackInput",
    "FeedbackOutcome",
    "FeedbackReceipt",
    "AcceptanceSignal",
    "MatchingInsights",
]
