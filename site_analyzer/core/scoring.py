"""
Scoring formulas shared by the issue synthesizers.
"""

from __future__ import annotations

from site_analyzer.engines.base import Issue, Severity

SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 100.0,
    Severity.HIGH: 75.0,
    Severity.MEDIUM: 50.0,
    Severity.LOW: 25.0,
    Severity.INFO: 0.0,
}

SEVERITY_MULTIPLIERS = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.75,
    Severity.MEDIUM: 0.50,
    Severity.LOW: 0.25,
    Severity.INFO: 0.0,
}


def calculate_impact_score(
    severity: Severity,
    affected_count: int,
    total_pages: int,
    rule_impact_score: float,
) -> float:
    """
    Calculate an issue's impact score (0-100).

    Impact = Rule Base Score × Severity Multiplier × Coverage Ratio

    This tells us: "How much is this issue hurting us?"
    """
    multiplier = SEVERITY_MULTIPLIERS.get(Severity(severity), 0.5)
    coverage = min(1.0, affected_count / max(1, total_pages))
    impact = rule_impact_score * multiplier * (0.3 + 0.7 * coverage)
    return round(min(100.0, impact), 2)


def calculate_priority_score(issue: Issue) -> float:
    """
    Multi-factor priority score for issue ordering.

    P = (Impact × 0.55) + (Effort_Ease × 0.20) + (Severity × 0.25)
    """
    effort_ease = (10.0 - issue.effort_score) * 10.0  # lower effort = higher priority
    severity_score = SEVERITY_WEIGHTS.get(Severity(issue.severity), 0.0)
    return round(issue.impact_score * 0.55 + effort_ease * 0.20 + severity_score * 0.25, 2)


def prioritize(issues: list[Issue]) -> list[Issue]:
    """Attach priority scores and return issues highest-priority first."""
    scored = [issue.model_copy(update={"priority_score": calculate_priority_score(issue)}) for issue in issues]
    return sorted(scored, key=lambda i: i.priority_score, reverse=True)
