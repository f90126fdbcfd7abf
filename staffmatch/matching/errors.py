"""Error taxonomy for the matching engine."""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching engine errors."""


class NotFoundError(MatchingError):
    """Raised when a subject entity (or a referenced match) does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ConfigurationError(MatchingError):
    """Raised when criteria or criteria files are invalid."""


class PersistenceTimeout(MatchingError):
    """Raised when an entity or pool fetch exceeds its timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:.2f}s")
        self.operation = operation
        self.timeout = timeout


class ComputationSkip(MatchingError):
    """Raised when a single candidate cannot be scored.

    The candidate is excluded from the results; the batch continues.
    """

    def __init__(self, candidate_id: str, reason: str):
        super().__init__(f"Skipping candidate {candidate_id}: {reason}")
        self.candidate_id = candidate_id
        self.reason = reason


class CacheUnavailable(MatchingError):
    """Raised by the cache guard when a cache operation fails or times out."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class FeedbackConflict(MatchingError):
    """Raised when an actor repeats the same outcome for the same match."""

    def __init__(self, match_id: str, actor_id: str, outcome: str):
        super().__init__(
            f"Feedback '{outcome}' already recorded by {actor_id} for match {match_id}"
        )
        self.match_id = match_id
        self.actor_id = actor_id
        self.outcome = outcome
