"""
agent/normalizer.py

Score normalization for parsed model output.

Models report confidence-like scores either as a fraction (0.65) or as a
percentage (65). Everything that displays a score goes through
normalize_score() so the dashboard never shows "0.65%".
"""

from typing import Any, Iterable, Optional
import math
import re


SCORE_FIELDS = frozenset({
    "confidence",
    "confidence_score",
    "score",
    "energy_score",
    "sentiment_score",
    "probability",
    "win_rate",
})

_LEADING_FLOAT_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _to_float(value: Any) -> Optional[float]:
    """Read a number the way a browser's parseFloat would; None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        match = _LEADING_FLOAT_RE.match(value)
        if not match:
            return None
        num = float(match.group(0))
    else:
        return None
    if not math.isfinite(num):
        return None
    return num


def normalize_score(value: Any) -> int:
    """
    0.65 -> 65, 65 -> 65, "72.4%" -> 72, None/garbage -> 0.

    Values strictly between 0 and 1 are treated as fractions. Rounding is
    half-up, so 64.5 -> 65.
    """
    num = _to_float(value)
    if num is None:
        return 0
    if 0 < num < 1:
        num *= 100
    return int(math.floor(num + 0.5))


def normalize_scores(data: Any, fields: Iterable[str] = SCORE_FIELDS) -> Any:
    """
    Return a copy of a parsed JSON tree where every dict entry whose key is in
    `fields` holds its normalized score. Other values are left as they are.
    """
    names = frozenset(fields)

    def walk(node: Any) -> Any:
        if isinstance(node, dict):
            return {
                key: normalize_score(item)
                if key in names and not isinstance(item, (dict, list))
                else walk(item)
                for key, item in node.items()
            }
        if isinstance(node, list):
            return [walk(item) for item in node]
        return node

    return walk(data)
