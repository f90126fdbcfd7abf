"""Criteria resolution: defaults, stored overrides and caller overrides."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import ValidationError

from staffmatch.matching.errors import ConfigurationError
from staffmatch.matching.models import (
    AVAILABILITY,
    CATEGORIES,
    EXPERIENCE,
    LOCATION,
    PREFERENCES,
    SKILLS,
    ContextType,
    Criteria,
)

# Built-in category weights. Worker-side matching inverts the job-side
# priority order: what the worker wants outranks what the job needs.
DEFAULT_WEIGHTS: Mapping[ContextType, Mapping[str, float]] = MappingProxyType(
    {
        ContextType.JOB: MappingProxyType(
            {
                SKILLS: 0.30,
                EXPERIENCE: 0.20,
                AVAILABILITY: 0.20,
                LOCATION: 0.15,
                PREFERENCES: 0.15,
            }
        ),
        ContextType.WORKER: MappingProxyType(
            {
                SKILLS: 0.15,
                EXPERIENCE: 0.15,
                AVAILABILITY: 0.20,
                LOCATION: 0.20,
                PREFERENCES: 0.30,
            }
        ),
    }
)


def _merge(base: dict[str, dict[str, Any]], override: Mapping[str, Any] | None) -> None:
    if not override:
        return
    if not isinstance(override, Mapping):
        raise ConfigurationError(
            f"Criteria override must be a mapping (got {type(override).__name__})"
        )
    for category, values in override.items():
        if category not in base:
            raise ConfigurationError(
                f"Unknown criteria category: {category!r}. Must be one of {list(CATEGORIES)}"
            )
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ConfigurationError(f"Criteria for {category!r} must be a mapping")
        base[category].update(values)


def _check_weights(raw: Mapping[str, Mapping[str, Any]]) -> None:
    for category, values in raw.items():
        weight = values.get("weight")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise ConfigurationError(f"{category}.weight must be a number (got {weight!r})")
        if math.isnan(weight) or math.isinf(weight):
            raise ConfigurationError(f"{category}.weight must be finite (got {weight})")
        if weight < 0:
            raise ConfigurationError(f"{category}.weight must be >= 0 (got {weight})")


class CriteriaResolver:
    """Build a fully populated ``Criteria`` snapshot for a request.

    Precedence, lowest first: built-in defaults, stored overrides for the
    context (``LoadCriteria``), then the caller's per-request override.
    Resolution never mutates its inputs or the resolver.
    """

    def __init__(self, default_max_distance_km: float | None = None) -> None:
        self.default_max_distance_km = default_max_distance_km

    def defaults(self, context: ContextType) -> dict[str, dict[str, Any]]:
        base = {name: {"weight": weight} for name, weight in DEFAULT_WEIGHTS[context].items()}
        if self.default_max_distance_km is not None:
            base[LOCATION]["max_distance_km"] = self.default_max_distance_km
        return base

    def resolve(
        self,
        context: ContextType,
        override: Mapping[str, Any] | None = None,
        stored: Mapping[str, Any] | None = None,
    ) -> Criteria:
        """Resolve criteria for ``context``.

        Raises:
            ConfigurationError: If a weight is negative or not a finite number,
                a category is unknown, or a tunable is structurally invalid.
        """
        raw = self.defaults(context)
        _merge(raw, stored)
        _merge(raw, override)
        _check_weights(raw)

        try:
            return Criteria.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid criteria for {context.value}: {e}") from e


class FileCriteriaSource:
    """``LoadCriteria`` backed by ``<directory>/<context>.(yaml|yml|json)``.

    A missing file means no stored override for that context.
    """

    SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, context: ContextType) -> Path | None:
        for suffix in self.SUFFIXES:
            candidate = self.directory / f"{context.value}{suffix}"
            if candidate.exists():
                return candidate
        return None

    async def load_criteria(self, context: ContextType) -> dict[str, Any] | None:
        path = self.path_for(context)
        if path is None:
            return None
        return load_criteria_file(path)


def load_criteria_file(path: Path | str) -> dict[str, Any]:
    """Load a criteria override mapping from YAML or JSON.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file cannot be parsed or is not a mapping.
    """
    criteria_path = Path(path)
    if not criteria_path.exists():
        raise FileNotFoundError(f"Criteria file not found: {criteria_path}")

    raw = criteria_path.read_text(encoding="utf-8")
    if criteria_path.suffix.lower() == ".json":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON criteria: {criteria_path}") from e
    else:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML criteria: {criteria_path}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Criteria must be a mapping/dict: {criteria_path}")
    return data
