from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional, Set

from app.core.constants import ANALYSIS_CATEGORIES, DEFAULT_FALLBACK_SUGGESTIONS, SEVERITY_GOOD
from app.schemas.coach import AnalysisResult
from app.services.issue_classifier import Issue

ENCOURAGEMENT_MIN_SCORE = 7.0
ENCOURAGEMENT_MIN_AVERAGE = 7.5


def _cleanup_text(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"\s+", " ", value.strip())


class _SuggestionList:
    def __init__(self, max_count: int) -> None:
        self.max_count = max_count
        self.items: List[str] = []
        self._seen: Set[str] = set()

    @property
    def full(self) -> bool:
        return len(self.items) >= self.max_count

    def push(self, value: object) -> None:
        if self.full:
            return
        cleaned = _cleanup_text(value)
        if not cleaned:
            return
        key = cleaned.lower()
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(cleaned)


def extract_top(
    analysis: Optional[AnalysisResult],
    issues: Optional[Iterable[Issue]] = None,
    max_count: int = 2,
) -> List[str]:
    """
    Ranked, de-duplicated coaching lines for one analysis.

    Sources, in priority order: the model's priority actions, suggestions of
    focus conditions scoring below 8, then each issue's own suggestion (or the
    category default when it has none).
    """
    try:
        limit = max(1, int(max_count))
    except (TypeError, ValueError):
        limit = 2
    suggestions = _SuggestionList(limit)

    if analysis is not None:
        for action in analysis.priority_actions:
            suggestions.push(action)

        for condition in analysis.focus_conditions.values():
            score = condition.score
            if score is None or math.isnan(score) or score >= SEVERITY_GOOD:
                continue
            suggestions.push(condition.suggestion)

    for issue in issues or []:
        direct = _cleanup_text(issue.suggestion)
        if direct:
            suggestions.push(direct)
            continue
        suggestions.push(DEFAULT_FALLBACK_SUGGESTIONS.get(issue.category, ""))

    return suggestions.items


def build_encouragement_message(analysis: Optional[AnalysisResult]) -> Optional[str]:
    """Catalog key of a positive nudge for a strong frame, or None."""
    if analysis is None:
        return None
    scores = [analysis.category(category).score for category in ANALYSIS_CATEGORIES]
    if min(scores) < ENCOURAGEMENT_MIN_SCORE:
        return None
    if sum(scores) / len(scores) < ENCOURAGEMENT_MIN_AVERAGE:
        return None
    if all(score >= SEVERITY_GOOD for score in scores):
        return "encouragement.strong"
    return "encouragement.minor"
