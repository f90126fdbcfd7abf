"""Weighted aggregation of category scores."""

from __future__ import annotations

import math
from collections.abc import Mapping

from staffmatch.matching.models import Criteria


def aggregate(scores: Mapping[str, float], criteria: Criteria) -> float:
    """Combine category scores into a total in [0, 1].

    Weights are renormalized to sum to 1 first. A weighted category with no
    score contributes 0.
    """
    weights = criteria.normalized_weights()
    total = math.fsum(scores.get(category, 0.0) * weight for category, weight in weights.items())
    return min(1.0, max(0.0, total))
