"""Data models for the matching engine.

Inputs (entities, criteria, requests) are frozen pydantic models so they can
be validated at the edge and shared across scoring threads. Outputs (matches,
results) are frozen dataclasses that serialize to plain dicts for caching.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

SKILLS = "skills"
EXPERIENCE = "experience"
AVAILABILITY = "availability"
LOCATION = "location"
PREFERENCES = "preferences"

# Scoring categories, in canonical order.
CATEGORIES: tuple[str, ...] = (SKILLS, EXPERIENCE, AVAILABILITY, LOCATION, PREFERENCES)


class ContextType(str, Enum):
    """Which side of the marketplace the subject is on."""

    JOB = "job"
    WORKER = "worker"

    @property
    def opposite(self) -> ContextType:
        return ContextType.WORKER if self is ContextType.JOB else ContextType.JOB

    @property
    def available_status(self) -> str:
        """Status an entity of this kind must have to be matchable."""
        return "open" if self is ContextType.JOB else "available"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class GeoPoint(BaseModel):
    """Coordinates with an optional search radius in kilometers."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)
    radius_km: float | None = Field(default=None, gt=0.0, allow_inf_nan=False)


class Skill(BaseModel):
    """A skill held by a worker or required by a job."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Skill name")
    level: int | None = Field(default=None, ge=0, le=10, description="Proficiency level")
    years: float | None = Field(default=None, ge=0.0, description="Years of use")


class TimeWindow(BaseModel):
    """A half-open availability interval [start, end)."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> TimeWindow:
        if self.end <= self.start:
            raise ValueError(f"TimeWindow end ({self.end}) must be after start ({self.start})")
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class CompensationRange(BaseModel):
    """Pay range offered by a job or expected by a worker."""

    model_config = ConfigDict(frozen=True)

    minimum: float = Field(..., ge=0.0, allow_inf_nan=False)
    maximum: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_bounds(self) -> CompensationRange:
        if self.maximum is not None and self.maximum < self.minimum:
            raise ValueError(
                f"CompensationRange maximum ({self.maximum}) is below minimum ({self.minimum})"
            )
        return self

    def overlaps(self, other: CompensationRange) -> bool:
        """Return True if both ranges share at least one value.

        Ranges in different currencies are not comparable and count as
        overlapping.
        """
        if self.currency.upper() != other.currency.upper():
            return True
        self_max = self.maximum if self.maximum is not None else math.inf
        other_max = other.maximum if other.maximum is not None else math.inf
        return self.minimum <= other_max and other.minimum <= self_max


class _EntityBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    status: str
    location: GeoPoint | None = None
    skills: tuple[Skill, ...] = ()
    availability: tuple[TimeWindow, ...] = ()
    compensation: CompensationRange | None = None
    preferences: frozenset[str] = frozenset()

    @property
    def context(self) -> ContextType:
        return ContextType(self.kind)  # type: ignore[attr-defined]

    @property
    def is_available(self) -> bool:
        return self.status.strip().lower() == self.context.available_status


class JobEntity(_EntityBase):
    """A job posting. Its skills are the skills it requires."""

    kind: Literal["job"] = "job"
    status: str = "open"
    title: str = ""
    min_experience_years: float | None = Field(default=None, ge=0.0, allow_inf_nan=False)
    remote: bool = False
    starts_at: datetime | None = Field(
        default=None, description="When the job starts; naive values are read as UTC"
    )

    @field_validator("starts_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def has_started(self, now: datetime) -> bool:
        return self.starts_at is not None and self.starts_at < now


class WorkerEntity(_EntityBase):
    """A worker profile. Its skills are the skills it possesses."""

    kind: Literal["worker"] = "worker"
    status: str = "available"
    name: str = ""
    experience_years: float = Field(default=0.0, ge=0.0, allow_inf_nan=False)


Entity = Annotated[JobEntity | WorkerEntity, Field(discriminator="kind")]

_ENTITY_ADAPTER: TypeAdapter[JobEntity | WorkerEntity] = TypeAdapter(Entity)


def parse_entity(data: Any) -> JobEntity | WorkerEntity:
    """Validate a raw record into a tagged entity.

    Raises:
        pydantic.ValidationError: If the record is malformed.
    """
    if isinstance(data, (JobEntity, WorkerEntity)):
        return data
    return _ENTITY_ADAPTER.validate_python(data)


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


class _CategoryCriteria(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    weight: float = Field(..., ge=0.0, allow_inf_nan=False)


class SkillsCriteria(_CategoryCriteria):
    required_match: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        allow_inf_nan=False,
        description="Minimum fraction of required skills a candidate must hold",
    )


class ExperienceCriteria(_CategoryCriteria):
    minimum_years: float | None = Field(
        default=None,
        ge=0.0,
        allow_inf_nan=False,
        description="Overrides the job's own minimum years when set",
    )


class AvailabilityCriteria(_CategoryCriteria):
    required_overlap: float = Field(
        default=1.0,
        gt=0.0,
        le=1.0,
        allow_inf_nan=False,
        description="Fraction of a required window that must be covered to count",
    )


class LocationCriteria(_CategoryCriteria):
    max_distance_km: float | None = Field(
        default=None,
        gt=0.0,
        allow_inf_nan=False,
        description="Distance at which the location score reaches zero",
    )


class PreferencesCriteria(_CategoryCriteria):
    compensation_strict: bool = Field(
        default=False,
        description="Drop candidates whose compensation range does not overlap",
    )


class Criteria(BaseModel):
    """Fully resolved scoring criteria; a read-only snapshot per request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    skills: SkillsCriteria
    experience: ExperienceCriteria
    availability: AvailabilityCriteria
    location: LocationCriteria
    preferences: PreferencesCriteria

    def weights(self) -> dict[str, float]:
        """Configured weights, as given."""
        return {name: getattr(self, name).weight for name in CATEGORIES}

    def normalized_weights(self) -> dict[str, float]:
        """Weights rescaled to sum to 1.

        All-zero weights fall back to an equal split so the total score
        stays defined.
        """
        raw = self.weights()
        total = math.fsum(raw.values())
        if total <= 0.0:
            share = 1.0 / len(raw)
            return {name: share for name in raw}
        return {name: value / total for name, value in raw.items()}


CriteriaOverride = dict[str, dict[str, Any]]


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------


class MatchRequest(BaseModel):
    """A request for ranked matches for one subject."""

    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(..., min_length=1)
    context: ContextType
    criteria: CriteriaOverride | None = Field(
        default=None, description="Partial per-category overrides"
    )
    min_match_score: float | None = Field(default=None, ge=0.0, le=1.0)
    top_k: int | None = Field(default=None, gt=0)
    force_refresh: bool = False
    notify_matches: bool = False
    assisted: bool = Field(
        default=False, description="Recommendation-style request (shorter cache TTL)"
    )


@dataclass(frozen=True)
class PoolQuery:
    """Pool filters handed to the persistence collaborator."""

    kind: ContextType
    status: str
    near: GeoPoint | None = None
    max_distance_km: float | None = None
    skill_names: tuple[str, ...] = ()
    starts_after: datetime | None = None
    limit: int | None = None


@dataclass(frozen=True)
class Match:
    """A ranked (subject, candidate) pairing. Never mutated after creation."""

    match_id: str
    subject_id: str
    candidate_id: str
    context: ContextType
    category_scores: dict[str, float]
    total_score: float
    rank: int
    computed_at: datetime
    criteria_fingerprint: str

    def __post_init__(self) -> None:
        if not (0.0 <= self.total_score <= 1.0):
            raise ValueError(f"total_score must be between 0.0 and 1.0 (got {self.total_score})")
        if self.rank < 1:
            raise ValueError(f"rank must be >= 1 (got {self.rank})")

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "match_id": self.match_id,
            "subject_id": self.subject_id,
            "candidate_id": self.candidate_id,
            "context": self.context.value,
            "category_scores": dict(self.category_scores),
            "total_score": self.total_score,
            "rank": self.rank,
            "computed_at": self.computed_at.isoformat(),
            "criteria_fingerprint": self.criteria_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Match:
        """Deserialize from a dictionary."""
        return cls(
            match_id=data["match_id"],
            subject_id=data["subject_id"],
            candidate_id=data["candidate_id"],
            context=ContextType(data["context"]),
            category_scores={k: float(v) for k, v in data["category_scores"].items()},
            total_score=float(data["total_score"]),
            rank=int(data["rank"]),
            computed_at=datetime.fromisoformat(data["computed_at"]),
            criteria_fingerprint=data["criteria_fingerprint"],
        )


@dataclass(frozen=True)
class MatchResult:
    """Ranked matches for one request, plus how they were produced."""

    subject_id: str
    context: ContextType
    fingerprint: str
    matches: tuple[Match, ...]
    threshold: float
    top_k: int
    total_candidates: int = 0
    filtered_candidates: int = 0
    scored_candidates: int = 0
    skipped_candidates: int = 0
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    from_cache: bool = False

    @property
    def average_score(self) -> float:
        if not self.matches:
            return 0.0
        return math.fsum(m.total_score for m in self.matches) / len(self.matches)

    def as_cached(self) -> MatchResult:
        return replace(self, from_cache=True)

    def to_dict(self) -> dict:
        """Serialize to a dictionary (``from_cache`` is not persisted)."""
        return {
            "subject_id": self.subject_id,
            "context": self.context.value,
            "fingerprint": self.fingerprint,
            "matches": [m.to_dict() for m in self.matches],
            "threshold": self.threshold,
            "top_k": self.top_k,
            "total_candidates": self.total_candidates,
            "filtered_candidates": self.filtered_candidates,
            "scored_candidates": self.scored_candidates,
            "skipped_candidates": self.skipped_candidates,
            "computed_at": self.computed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> MatchResult:
        """Deserialize from a dictionary."""
        return cls(
            subject_id=data["subject_id"],
            context=ContextType(data["context"]),
            fingerprint=data["fingerprint"],
            matches=tuple(Match.from_dict(m) for m in data["matches"]),
            threshold=float(data["threshold"]),
            top_k=int(data["top_k"]),
            total_candidates=int(data.get("total_candidates", 0)),
            filtered_candidates=int(data.get("filtered_candidates", 0)),
            scored_candidates=int(data.get("scored_candidates", 0)),
            skipped_candidates=int(data.get("skipped_candidates", 0)),
            computed_at=datetime.fromisoformat(data["computed_at"]),
        )


@dataclass(frozen=True)
class MatchNotification:
    """Event emitted for a high-scoring match when notification is requested."""

    subject_id: str
    candidate_id: str
    context: ContextType
    match_id: str
    total_score: float
    event_type: str = "match.found"
