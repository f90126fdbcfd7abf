"""Serialization of ranked results for cache storage."""

from __future__ import annotations

import json

from staffmatch.matching.models import MatchResult

CODEC_VERSION = 1


def encode_result(result: MatchResult) -> str:
    """Serialize a result to a JSON string."""
    return json.dumps({"v": CODEC_VERSION, "result": result.to_dict()}, sort_keys=True)


def decode_result(payload: str) -> MatchResult:
    """Deserialize a cached JSON string.

    Raises:
        ValueError: If the payload is not a result written by this codec.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError("Cached payload is not valid JSON") from e

    if not isinstance(data, dict) or data.get("v") != CODEC_VERSION:
        raise ValueError("Cached payload has an unknown format version")

    try:
        return MatchResult.from_dict(data["result"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Cached payload is malformed: {e}") from e
