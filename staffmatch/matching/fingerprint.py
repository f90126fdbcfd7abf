"""Fingerprints and cache keys for match requests.

A fingerprint hashes every input that can change a ranked result: the
subject, the side it is matched from, the full resolved criteria, and the
ranking and scoring parameters. Any change to those inputs yields a
different key.
"""

import hashlib
import json
from urllib.parse import quote
from collections.abc import Mapping
from typing import Any

from staffmatch.matching.models import ContextType, Criteria

KEY_PREFIX = "matching"


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_fingerprint(
    subject_id: str,
    context: ContextType,
    criteria: Criteria,
    filter_params: Mapping[str, Any],
) -> str:
    """Compute the SHA-256 fingerprint of a match request.

    Args:
        subject_id: The entity matches are sought for.
        context: Which side the subject is on.
        criteria: The resolved criteria snapshot.
        filter_params: Threshold, top-K, pool cap and scoring tunables.

    Returns:
        A hex digest.
    """
    payload = {
        "subject_id": subject_id,
        "context": context.value,
        "criteria": criteria.model_dump(mode="json"),
        "filters": dict(filter_params),
    }
    return hashlib.sha256(canonical_json(payload).encode()).hexdigest()


def subject_key_prefix(subject_id: str, context: ContextType) -> str:
    """Return the prefix shared by every cache key of one subject.

    The subject id is percent-encoded, so the prefix of ``a`` never matches
    the keys of ``a:b``.
    """
    encoded = quote(subject_id, safe="")
    return f"{KEY_PREFIX}:{context.value}:{encoded}:"


def cache_key(subject_id: str, context: ContextType, fingerprint: str) -> str:
    """Build the cache key for a fingerprint.

    The subject is kept readable in the key so backends can be inspected.
    """
    return f"{subject_key_prefix(subject_id, context)}{fingerprint}"
