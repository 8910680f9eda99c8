from __future__ import annotations

import math
from typing import Dict, List, Optional

from app.core.constants import ANALYSIS_CATEGORIES, SEVERITY_GOOD
from app.schemas.coach import CategorySummary, CoachSession, SessionSummary

DEFAULT_RECOMMENDATION = "Keep this category steady."
MAX_ACTION_ITEMS = 3


def _average(values: List[float]) -> float:
    usable = [value for value in values if not math.isnan(value)]
    if not usable:
        return 0.0
    return round(sum(usable) / len(usable), 1)


def duration_minutes(start_time: int, end_time: Optional[int], now: Optional[int] = None) -> int:
    end = end_time if end_time is not None else (now if now is not None else start_time)
    return max(1, round((end - start_time) / 60_000))


def build_session_summary(session: CoachSession, now: Optional[int] = None) -> SessionSummary:
    categories: Dict[str, CategorySummary] = {}
    for category in ANALYSIS_CATEGORIES:
        entries = [analysis.category(category) for analysis in session.analyses]
        issues = [entry.issue for entry in entries if entry.issue]
        suggestions = [entry.suggestion for entry in entries if entry.suggestion]
        categories[category] = CategorySummary(
            average=_average([entry.score for entry in entries]),
            issue_count=len(issues),
            recommendation=suggestions[0] if suggestions else DEFAULT_RECOMMENDATION,
        )

    overall = round(sum(item.average for item in categories.values()) / len(categories), 1)

    # sorted() is stable, so equal averages keep category order
    ranked = sorted(categories.items(), key=lambda pair: pair[1].average)[:MAX_ACTION_ITEMS]
    action_items = [
        {
            "category": category,
            "average": summary.average,
            "recommendation": summary.recommendation,
        }
        for category, summary in ranked
    ]

    return SessionSummary(
        session_id=session.id,
        start_time=session.start_time,
        end_time=session.end_time,
        duration_minutes=duration_minutes(session.start_time, session.end_time, now),
        analysis_count=len(session.analyses),
        overall=overall,
        strong=overall >= SEVERITY_GOOD,
        categories=categories,
        action_items=action_items,
    )


def summary_as_text(summary: SessionSummary) -> str:
    """Plain-text report for copying into notes."""
    lines = [
        "Meeting Body Language Summary",
        f"Duration: {summary.duration_minutes} min",
        f"Analyses: {summary.analysis_count}",
        f"Overall: {summary.overall}/10",
        "",
        "Top Action Items:",
    ]
    for index, item in enumerate(summary.action_items, start=1):
        lines.append(f"{index}. {item['category'].capitalize()} ({item['average']}/10): {item['recommendation']}")
    return "\n".join(lines)
