from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.core.constants import ANALYSIS_CATEGORIES
from app.schemas.coach import AnalysisResult

logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"[-+]?\d+(?:\.\d+)?")


class AnalysisValidationError(ValueError):
    pass


def normalize_score(raw: Any) -> float:
    """Numeric score from a model value such as 7, 7.5 or "7.5/10"; NaN otherwise."""
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else math.nan
    if isinstance(raw, str):
        match = _NUMBER_PATTERN.search(raw)
        if match:
            value = float(match.group(0))
            if math.isfinite(value):
                return value
    return math.nan


def validate(analysis: Any) -> bool:
    """
    Check the four required categories and coerce their scores in place.

    Returns False when the payload is not a mapping, or a category is
    missing, not a mapping, non-numeric or outside [0, 10].
    """
    if not isinstance(analysis, dict):
        return False

    valid = True
    for category in ANALYSIS_CATEGORIES:
        entry = analysis.get(category)
        if not isinstance(entry, dict):
            valid = False
            continue
        score = normalize_score(entry.get("score"))
        if math.isnan(score):
            valid = False
            continue
        entry["score"] = score
        if score < 0 or score > 10:
            valid = False
    return valid


def _clean_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text_value = re.sub(r"\s+", " ", str(value)).strip()
    return text_value or None


def _coerce_focus_conditions(raw: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(raw, dict):
        return {}
    conditions: Dict[str, Dict[str, Any]] = {}
    for name, value in raw.items():
        if not isinstance(value, dict):
            continue
        score = normalize_score(value.get("score"))
        conditions[str(name)] = {
            "score": None if math.isnan(score) else score,
            "issue": _clean_optional_text(value.get("issue")),
            "suggestion": _clean_optional_text(value.get("suggestion")),
        }
    return conditions


def _coerce_priority_actions(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, str)]


def parse_analysis(raw: Any, timestamp: Optional[int] = None) -> AnalysisResult:
    """Validate a raw model response and build the typed record."""
    if not validate(raw):
        raise AnalysisValidationError("Invalid analysis response structure")

    payload: Dict[str, Any] = {
        category: {
            "score": raw[category]["score"],
            "issue": _clean_optional_text(raw[category].get("issue")),
            "suggestion": _clean_optional_text(raw[category].get("suggestion")),
        }
        for category in ANALYSIS_CATEGORIES
    }
    payload["focus_conditions"] = _coerce_focus_conditions(raw.get("focus_conditions"))
    payload["priority_actions"] = _coerce_priority_actions(raw.get("priority_actions"))
    payload["timestamp"] = timestamp
    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as exc:
        logger.debug("analysis_model_validation_failed error=%s", exc)
        raise AnalysisValidationError(f"Invalid analysis response structure: {exc}") from exc
