"""
Entity ("project") records and their vocabulary.

A project is a long-lived subject that raw feed records get resolved
against: an exchange, a chain, a protocol, a wallet. The enums here are
shared with the resolution stage, which exposes them verbatim as tool
schema enums.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_RECENT_EVENTS = 20
DEFAULT_HEALTH_SCORE = 70


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ProjectCategory(str, Enum):
    CEX = "cex"
    DEX = "dex"
    MARKET_MAKER = "market_maker"
    PAYMENT = "payment"
    LAYER1 = "layer1"
    LAYER2 = "layer2"
    DEFI = "defi"
    WALLET = "wallet"
    INFRASTRUCTURE = "infrastructure"
    STABLECOIN = "stablecoin"


class ProjectStatus(str, Enum):
    NORMAL = "normal"
    WATCH = "watch"
    WARNING = "warning"
    DANGER = "danger"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MarketEventType(str, Enum):
    FUNDING = "funding"
    PRODUCT = "product"
    SECURITY = "security"
    REGULATORY = "regulatory"
    PARTNERSHIP = "partnership"
    LISTING = "listing"
    AIRDROP = "airdrop"
    GOVERNANCE = "governance"
    TECHNICAL = "technical"
    LEGAL = "legal"
    PERSONNEL = "personnel"
    GENERAL = "general"


class RiskFlagType(str, Enum):
    REGULATORY_RISK = "regulatory_risk"
    SECURITY_BREACH = "security_breach"
    LIQUIDITY_CRISIS = "liquidity_crisis"
    TEAM_DEPARTURE = "team_departure"
    LEGAL_ISSUES = "legal_issues"
    FUND_ISSUES = "fund_issues"
    LAYOFFS = "layoffs"
    AUDIT_FAILED = "audit_failed"


class RiskSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OpportunityFlagType(str, Enum):
    NEW_FUNDING = "new_funding"
    PRODUCT_LAUNCH = "product_launch"
    PARTNERSHIP = "partnership"
    ECOSYSTEM_GROWTH = "ecosystem_growth"
    REGULATORY_APPROVAL = "regulatory_approval"
    MAJOR_UPGRADE = "major_upgrade"


class OpportunityImportance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProjectEvent(BaseModel):
    """A dated occurrence attached to a project (newest first on the project)."""

    id: str
    title: str
    description: str
    date: str = Field(..., description="Event date as reported, ISO-8601 preferred")
    source: str
    source_url: str | None = None
    sentiment: Sentiment
    event_type: MarketEventType
    created_at: datetime = Field(default_factory=_utc_now)


class RiskFlag(BaseModel):
    type: RiskFlagType
    severity: RiskSeverity
    description: str
    source: str | None = None
    detected_at: datetime = Field(default_factory=_utc_now)


class OpportunityFlag(BaseModel):
    type: OpportunityFlagType
    importance: OpportunityImportance
    description: str
    source: str | None = None
    detected_at: datetime = Field(default_factory=_utc_now)


class HealthScoreBreakdown(BaseModel):
    """Inputs of the weighted health score, each on a 0-100 scale."""

    base_metrics: float = Field(..., ge=0, le=100)
    sentiment_score: float = Field(..., ge=0, le=100)
    fund_safety: float = Field(..., ge=0, le=100)
    development_trend: float = Field(..., ge=0, le=100)


class Project(BaseModel):
    """
    Entity record.

    `status` must always agree with derive_status(health_score, risk_flags,
    opportunity_flags); the mutation engine re-derives it on every write
    that touches one of those inputs.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1, description="Human-meaningful slug, e.g. 'binance'")
    name: str
    category: ProjectCategory
    description: str | None = None
    logo: str | None = None
    website: str | None = None
    twitter: str | None = None

    health_score: int = Field(default=DEFAULT_HEALTH_SCORE, ge=0, le=100)
    status: ProjectStatus = ProjectStatus.NORMAL
    news_sentiment: Sentiment = Sentiment.NEUTRAL

    recent_events: list[ProjectEvent] = Field(default_factory=list)
    risk_flags: list[RiskFlag] = Field(default_factory=list)
    opportunity_flags: list[OpportunityFlag] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utc_now)
    last_updated: datetime = Field(default_factory=_utc_now)

    def to_storage_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ProjectSummary(BaseModel):
    """Minimal view used to describe the known projects to the LLM."""

    id: str
    name: str
    category: ProjectCategory
