# hlrcheck/app/services/health_score.py
"""
Number health score (0-100) derived from an HLR result.

Weights:
- valid number        40
- reachable           25 (unknown: 10)
- not ported          15 (ported: 10)
- not roaming         10 (roaming: 5)
- mobile network      10
"""

from typing import Any, Dict, List, Mapping, Union

REACHABLE_POINTS = {"reachable": 25, "unknown": 10}
PORTED_POINTS = {"not_ported": 15, "ported": 10}
ROAMING_POINTS = {"not_roaming": 10, "roaming": 5}

LABELS = (
    (80, "Excellent"),
    (60, "Good"),
    (40, "Fair"),
    (20, "Poor"),
)


def _get(result: Union[Mapping[str, Any], Any], key: str):
    if isinstance(result, Mapping):
        return result.get(key)
    return getattr(result, key, None)


def calculate_health_score(result) -> int:
    """Accepts a result row or a flattened result dict."""
    score = 0
    if _get(result, "valid_number") == "valid":
        score += 40
    score += REACHABLE_POINTS.get(_get(result, "reachable"), 0)
    score += PORTED_POINTS.get(_get(result, "ported"), 0)
    score += ROAMING_POINTS.get(_get(result, "roaming"), 0)
    if _get(result, "current_network_type") == "mobile":
        score += 10
    return min(score, 100)


def health_label(score: int) -> str:
    for threshold, label in LABELS:
        if score >= threshold:
            return label
    return "Bad"


def calculate_batch_health_scores(results: List[Any]) -> List[Dict[str, Any]]:
    return [{"result": r, "health_score": calculate_health_score(r)} for r in results]
