from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.core.constants import (
    ANALYSIS_CATEGORIES,
    SEVERITY_CRITICAL,
    SEVERITY_WARNING,
)
from app.schemas.coach import AnalysisResult


@dataclass(frozen=True)
class Thresholds:
    critical: float
    warning: float

    @property
    def has_warning_band(self) -> bool:
        return self.warning > self.critical


@dataclass(frozen=True)
class Issue:
    category: str
    score: float
    issue: Optional[str] = None
    suggestion: Optional[str] = None


@dataclass
class IssueReport:
    critical_issues: List[Issue] = field(default_factory=list)
    warning_issues: List[Issue] = field(default_factory=list)

    @property
    def escalation(self) -> Optional[str]:
        """Tier that gets notified for this pass; critical wins."""
        if self.critical_issues:
            return "critical"
        if self.warning_issues:
            return "warning"
        return None

    @property
    def escalated_issues(self) -> List[Issue]:
        if self.critical_issues:
            return self.critical_issues
        return self.warning_issues


class WarningTracker:
    """Consecutive warning-band passes per category, for one session."""

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {category: 0 for category in ANALYSIS_CATEGORIES}

    def get(self, category: str) -> int:
        return self._counts.get(category, 0)

    def increment(self, category: str) -> int:
        self._counts[category] = self._counts.get(category, 0) + 1
        return self._counts[category]

    def reset(self, category: str) -> None:
        self._counts[category] = 0


def get_sensitivity_thresholds(sensitivity: Optional[str]) -> Thresholds:
    if sensitivity == "low":
        return Thresholds(critical=SEVERITY_CRITICAL, warning=SEVERITY_CRITICAL)
    # medium, high and anything unrecognised
    return Thresholds(critical=SEVERITY_CRITICAL, warning=SEVERITY_WARNING)


def classify_issues(
    analysis: AnalysisResult,
    sensitivity: Optional[str],
    tracker: WarningTracker,
    consecutive_warnings: int = 2,
) -> IssueReport:
    thresholds = get_sensitivity_thresholds(sensitivity)
    streak = max(1, int(consecutive_warnings))
    report = IssueReport()

    for category in ANALYSIS_CATEGORIES:
        result = analysis.category(category)
        issue = Issue(
            category=category,
            score=result.score,
            issue=result.issue,
            suggestion=result.suggestion,
        )

        if result.score < thresholds.critical:
            report.critical_issues.append(issue)
            tracker.reset(category)
            continue

        if thresholds.has_warning_band and result.score < thresholds.warning:
            if tracker.increment(category) >= streak:
                report.warning_issues.append(issue)
                tracker.reset(category)
            continue

        tracker.reset(category)

    return report
