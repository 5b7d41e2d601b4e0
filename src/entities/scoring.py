"""Deterministic health-score and status derivation."""

from collections.abc import Iterable

from src.entities.schemas import (
    HealthScoreBreakdown,
    OpportunityFlag,
    OpportunityImportance,
    ProjectStatus,
    RiskFlag,
    RiskSeverity,
    Sentiment,
)

HEALTH_WEIGHTS = {
    "base_metrics": 0.3,
    "sentiment_score": 0.3,
    "fund_safety": 0.2,
    "development_trend": 0.2,
}

_SENTIMENT_SCORES = {
    Sentiment.POSITIVE: 80,
    Sentiment.NEUTRAL: 50,
    Sentiment.NEGATIVE: 20,
}


def clamp_score(value: float) -> int:
    """Round and clamp to the [0, 100] health-score range."""
    return max(0, min(100, round(value)))


def calculate_health_score(breakdown: HealthScoreBreakdown) -> int:
    """Weighted sum of the breakdown components, rounded and clamped."""
    total = sum(
        getattr(breakdown, component) * weight
        for component, weight in HEALTH_WEIGHTS.items()
    )
    return clamp_score(total)


def sentiment_to_score(sentiment: Sentiment | str) -> int:
    return _SENTIMENT_SCORES[Sentiment(sentiment)]


def derive_status(
    health_score: int,
    risk_flags: Iterable[RiskFlag],
    opportunity_flags: Iterable[OpportunityFlag],
) -> ProjectStatus:
    """
    Derive a project's status from its score and flags.

    Precedence, first match wins:
        critical risk                      -> danger
        high risk or score < 30            -> danger
        medium risk or score < 50          -> warning
        high opportunity or score >= 80    -> watch
        otherwise                          -> normal
    """
    severities = {RiskSeverity(flag.severity) for flag in risk_flags}
    importances = {OpportunityImportance(flag.importance) for flag in opportunity_flags}

    if RiskSeverity.CRITICAL in severities:
        return ProjectStatus.DANGER
    if RiskSeverity.HIGH in severities or health_score < 30:
        return ProjectStatus.DANGER
    if RiskSeverity.MEDIUM in severities or health_score < 50:
        return ProjectStatus.WARNING
    if OpportunityImportance.HIGH in importances or health_score >= 80:
        return ProjectStatus.WATCH
    return ProjectStatus.NORMAL
