"""Multi-criteria matching and ranking engine.

This module scores a pool of candidates against a job or a worker and
returns a bounded, ranked result.

Public API:
    - CriteriaResolver: Resolve per-request criteria snapshots
    - CandidatePoolFilter: Hard-constraint filtering and pool capping
    - FeatureScorer: Per-category scores for one pair
    - aggregate: Weighted total with renormalized weights
    - Ranker: Threshold, order, truncate and number matches
    - MatchingConfig: Configuration settings

The orchestrating ``MatchingService`` lives in ``staffmatch.matching.service``.
"""

from staffmatch.matching.aggregator import aggregate
from staffmatch.matching.config import (
    MatchingConfig,
    get_matching_config,
    reset_matching_config,
)
from staffmatch.matching.criteria import CriteriaResolver, FileCriteriaSource
from staffmatch.matching.errors import (
    CacheUnavailable,
    ComputationSkip,
    ConfigurationError,
    FeedbackConflict,
    MatchingError,
    NotFoundError,
    PersistenceTimeout,
)
from staffmatch.matching.models import (
    CATEGORIES,
    CompensationRange,
    ContextType,
    Criteria,
    GeoPoint,
    JobEntity,
    Match,
    MatchRequest,
    MatchResult,
    PoolQuery,
    Skill,
    TimeWindow,
    WorkerEntity,
    parse_entity,
)
from staffmatch.matching.pool import CandidatePoolFilter
from staffmatch.matching.ranker import Ranker, ScoredCandidate
from staffmatch.matching.scorer import FeatureScorer

__all__ = [
    "CATEGORIES",
    "CandidatePoolFilter",
    "CacheUnavailable",
    "CompensationRange",
    "ComputationSkip",
    "ConfigurationError",
    "ContextType",
    "Criteria",
    "CriteriaResolver",
    "FeatureScorer",
    "FeedbackConflict",
    "FileCriteriaSource",
    "GeoPoint",
    "JobEntity",
    "Match",
    "MatchRequest",
    "MatchResult",
    "MatchingConfig",
    "MatchingError",
    "NotFoundError",
    "PersistenceTimeout",
    "PoolQuery",
    "Ranker",
    "ScoredCandidate",
    "Skill",
    "TimeWindow",
    "WorkerEntity",
    "aggregate",
    "get_matching_config",
    "parse_entity",
    "reset_matching_config",
]
