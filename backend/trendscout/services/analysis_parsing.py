"""
Turning model output into a stored analysis object.

Models wrap JSON in ```json fences, in bare fences, or in a sentence of prose.
Anything that still does not parse is kept verbatim under raw_analysis.
"""
from __future__ import annotations

import json
import re
from typing import Any

PARSE_ERROR_MARKER = "Failed to parse structured JSON"

SCORE_KEYS = ("adaptation_score", "music_adaptation_score")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n(.*?)\n?```", re.DOTALL)


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def parse_analysis_text(text: str) -> dict[str, Any]:
    text = (text or "").strip()

    match = _FENCE_RE.search(text)
    if match:
        parsed = _loads_object(match.group(1).strip())
        if parsed is not None:
            return parsed

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        parsed = _loads_object(text[start:end + 1])
        if parsed is not None:
            return parsed

    return {"raw_analysis": text, "error": PARSE_ERROR_MARKER}


def extract_score(analysis: dict[str, Any]) -> float | None:
    """Numeric adaptation score, or None when absent or non-numeric."""
    for key in SCORE_KEYS:
        value = analysis.get(key)
        if value is None:
            continue
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                continue
    return None


def is_adaptable(score: float | None, threshold: float) -> bool | None:
    if score is None:
        return None
    return score >= threshold
