from __future__ import annotations

from typing import Optional

from rapidfuzz.distance import JaroWinkler

PERFECT_LENGTH_MS = 3000.0
GOOD_LENGTH_MS = 10000.0
PERFECT_LENGTH_SCORE = 1.0
GOOD_LENGTH_SCORE = 0.7
POOR_LENGTH_SCORE = 0.3
UNKNOWN_LENGTH_SCORE = 0.5


def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Jaro-Winkler similarity in [0, 1]. Comparison is case-sensitive."""
    return float(JaroWinkler.normalized_similarity(a or "", b or ""))


def length_similarity(local_seconds: float, external_ms: Optional[int]) -> float:
    if external_ms is None:
        return UNKNOWN_LENGTH_SCORE
    diff = abs(local_seconds * 1000.0 - float(external_ms))
    if diff < PERFECT_LENGTH_MS:
        return PERFECT_LENGTH_SCORE
    if diff < GOOD_LENGTH_MS:
        return GOOD_LENGTH_SCORE
    return POOR_LENGTH_SCORE
