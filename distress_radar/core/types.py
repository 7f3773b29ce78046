from datetime import date, datetime
from dataclasses import dataclass, field, fields
from typing import Optional, List, Dict, Any, Iterator, Tuple

import pandas as pd

# Centralized outcome labels shared by the outcome model and reporting
OUTCOME_DILUTION = "DILUTION"
OUTCOME_RESTRUCTURING = "RESTRUCTURING"
OUTCOME_BANKRUPTCY = "BANKRUPTCY"
OUTCOME_STABLE = "STABLE"

CONFIDENCE_LOW = "LOW"
CONFIDENCE_MEDIUM = "MEDIUM"
CONFIDENCE_HIGH = "HIGH"

TIER_INSUFFICIENT_DATA = "INSUFFICIENT_DATA"

# Universe provenance
SOURCE_LOSER = "loser"
SOURCE_ACTIVE = "active"
SOURCE_GAINER = "gainer"
SOURCE_SCREENER = "screener"
SOURCE_KNOWN = "known"
SOURCE_SEC_FILING = "sec_filing"
SOURCE_INSIDER_FEED = "insider_feed"


# --- Universe & upstream inputs
@dataclass(frozen=True)
class Candidate:
    """A ticker surfaced by one universe source."""
    symbol: str
    source: str
    company_name: Optional[str] = None
    event_date: Optional[date] = None
    form_type: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "symbol", self.symbol.strip().upper())


@dataclass
class Quote:
    symbol: str
    price: Optional[float] = None
    market_cap: Optional[float] = None
    volume: Optional[float] = None
    avg_volume: Optional[float] = None
    exchange: Optional[str] = None
    company_name: Optional[str] = None

    @property
    def volume_ratio(self) -> float:
        """Today's volume relative to average (1.0 when average is unknown)."""
        if self.volume is None or not self.avg_volume:
            return 1.0
        return self.volume / self.avg_volume


@dataclass
class InsiderTrade:
    transaction_type: str
    shares: Optional[float] = None
    price: Optional[float] = None
    date: Optional[str] = None
    symbol: Optional[str] = None
    insider: Optional[str] = None
    role: Optional[str] = None
    acquisition_or_disposition: Optional[str] = None

    @property
    def value(self) -> float:
        return abs((self.shares or 0.0) * (self.price or 0.0))


@dataclass
class ShareFloat:
    float_shares: Optional[float] = None
    outstanding_shares: Optional[float] = None

    @property
    def float_ratio(self) -> Optional[float]:
        if self.float_shares is None or not self.outstanding_shares:
            return None
        return self.float_shares / self.outstanding_shares


@dataclass
class RawFundamentals:
    """Statements use rows=line items, cols=periods (most recent first)."""
    symbol: str
    quote: Optional[Quote] = None
    balance_sheet: pd.DataFrame = field(default_factory=pd.DataFrame)
    cashflow: pd.DataFrame = field(default_factory=pd.DataFrame)
    income_stmt: pd.DataFrame = field(default_factory=pd.DataFrame)
    altman_z_score: Optional[float] = None
    insider_trades: Optional[List[InsiderTrade]] = None
    shares_float: Optional[ShareFloat] = None

    def __post_init__(self):
        for name in ("balance_sheet", "cashflow", "income_stmt"):
            if getattr(self, name) is None:
                setattr(self, name, pd.DataFrame())

    def has_statements(self) -> bool:
        return not (self.balance_sheet.empty or self.cashflow.empty or self.income_stmt.empty)


@dataclass
class AttentionInputs:
    avg_volume: Optional[float] = None
    market_cap: Optional[float] = None
    news_count: Optional[int] = None
    has_options: Optional[bool] = None


@dataclass
class OfferingActivity:
    has_active_mechanism: bool = False
    recent_filing_count: int = 0
    offering_amount: Optional[float] = None
    source: Optional[str] = None


# --- Metrics
@dataclass
class MetricBundle:
    """
    Flat record of every derived metric for one symbol.

    None means unknown. Scoring treats an unknown metric as "no contribution",
    never as a zero reading. runway_months is capped at the comfortable
    sentinel rather than left unbounded.
    """
    symbol: str
    has_financial_statements: bool = False

    # --- Quote ---
    price: Optional[float] = None
    market_cap: Optional[float] = None
    volume: Optional[float] = None
    avg_volume: Optional[float] = None
    volume_ratio: Optional[float] = None

    # --- Liquidity ---
    cash: Optional[float] = None
    total_debt: Optional[float] = None
    operating_cash_flow: Optional[float] = None
    monthly_burn: Optional[float] = None
    average_quarterly_burn: Optional[float] = None
    runway_months: Optional[float] = None
    runway_category: Optional[str] = None
    debt_to_cash: Optional[float] = None
    cash_to_debt: Optional[float] = None

    # --- Profitability ---
    interest_coverage: Optional[float] = None
    revenue_change_pct: Optional[float] = None
    revenue_trend: Optional[str] = None
    negative_income_quarters: Optional[int] = None
    ocf_negative_quarters: Optional[int] = None
    ocf_worsening: Optional[bool] = None
    ocf_trend: Optional[str] = None
    share_growth_pct: Optional[float] = None
    altman_z: Optional[float] = None
    altman_zone: Optional[str] = None

    # --- Ownership ---
    insider_buy_value: Optional[float] = None
    insider_sell_value: Optional[float] = None
    insider_net_value: Optional[float] = None
    insider_bias: Optional[str] = None
    float_ratio: Optional[float] = None
    insider_value_sold: Optional[float] = None
    insider_pct_market_cap_sold: Optional[float] = None
    insider_seller_count: Optional[int] = None
    insider_sale_count: Optional[int] = None
    ceo_selling: Optional[bool] = None
    cfo_selling: Optional[bool] = None
    director_selling: Optional[bool] = None
    days_since_insider_sale: Optional[int] = None
    insider_cluster_sale: Optional[bool] = None

    # --- Price action ---
    gain_7d_pct: Optional[float] = None
    price_change_30d_pct: Optional[float] = None
    last_candle_red: Optional[bool] = None
    green_streak: Optional[int] = None
    volume_fade_ratio: Optional[float] = None
    peak_gain_pct: Optional[float] = None
    current_gain_pct: Optional[float] = None
    pullback_pct: Optional[float] = None
    days_since_event: Optional[int] = None
    event_form: Optional[str] = None

    # --- Attention & offerings ---
    news_count: Optional[int] = None
    has_options: Optional[bool] = None
    mechanism_active: Optional[bool] = None
    recent_filing_count: Optional[int] = None
    offering_amount: Optional[float] = None
    offering_impact_ratio: Optional[float] = None

    def to_dict(self, include_unknown: bool = False) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None and not include_unknown:
                continue
            out[f.name] = value
        return out


# --- Scoring
@dataclass
class FactorScore:
    """One ScoreBreakdown entry: contribution = raw_score * weight."""
    factor_name: str
    value: Any
    raw_score: float
    weight: float
    contribution: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor_name,
            "value": self.value,
            "raw_score": self.raw_score,
            "weight": self.weight,
            "contribution": self.contribution,
        }


@dataclass(frozen=True)
class Tier:
    label: str
    rank: int
    alert_eligible: bool = False


@dataclass
class ScoreResult:
    engine: str
    total_score: float
    scale: float
    breakdown: List[FactorScore] = field(default_factory=list)
    tier: Optional[Tier] = None
    triggered: Optional[bool] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def label(self) -> Optional[str]:
        return self.tier.label if self.tier else None

    def contribution_of(self, factor_name: str) -> Optional[float]:
        for entry in self.breakdown:
            if entry.factor_name == factor_name:
                return entry.contribution
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "score": self.total_score,
            "scale": self.scale,
            "tier": self.label,
            "triggered": self.triggered,
            "reasons": list(self.reasons),
            "breakdown": [b.to_dict() for b in self.breakdown],
        }


@dataclass
class OutcomeDistribution:
    percentages: Dict[str, int]
    raw_points: Dict[str, float]
    total_raw_points: float
    primary_outcome: str
    confidence: str

    def percentage(self, label: str) -> int:
        return self.percentages.get(label, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentages": dict(self.percentages),
            "raw_points": dict(self.raw_points),
            "total_raw_points": self.total_raw_points,
            "primary_outcome": self.primary_outcome,
            "confidence": self.confidence,
        }


@dataclass
class CompositeIndexResult:
    value: int
    tier: Tier
    risk_score: float
    attention_score: float

    @property
    def alert_eligible(self) -> bool:
        return self.tier.alert_eligible

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "tier": self.tier.label,
            "alert_eligible": self.tier.alert_eligible,
            "components": {"risk": self.risk_score, "attention": self.attention_score},
        }


# --- Convergence
@dataclass
class Criterion:
    name: str
    passed: bool
    score: Optional[float] = None
    detail: str = ""


@dataclass
class CriteriaSet:
    """Named convergence signals. Add a field here to add a signal."""
    mechanism_active: Criterion
    risk_above_threshold: Criterion
    attention_above_threshold: Criterion

    def items(self) -> Iterator[Tuple[str, Criterion]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def __len__(self) -> int:
        return len(fields(self))


@dataclass
class ConvergenceResult:
    symbol: str
    criteria_met: Dict[str, bool]
    pass_count: int
    is_converged: bool
    intensity: Optional[int] = None
    failing: List[str] = field(default_factory=list)
    failing_details: List[str] = field(default_factory=list)

    @property
    def is_near_miss(self) -> bool:
        return not self.is_converged and self.pass_count >= len(self.criteria_met) - 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "criteria_met": dict(self.criteria_met),
            "pass_count": self.pass_count,
            "is_converged": self.is_converged,
            "intensity": self.intensity,
            "near_miss": self.is_near_miss,
            "failing": list(self.failing),
            "failing_details": list(self.failing_details),
        }


# --- Cooldown
@dataclass
class CooldownRecord:
    key: str
    last_alerted_at: date


@dataclass
class SkippedCandidate:
    key: str
    last_alerted_at: date
    days_since: int
    days_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "last_alerted_at": self.last_alerted_at.isoformat(),
            "days_since": self.days_since,
            "days_remaining": self.days_remaining,
        }


@dataclass
class AlertSelection:
    selected: Optional[Any] = None
    skipped: List[SkippedCandidate] = field(default_factory=list)
    forced: bool = False


# --- Assessment & pipeline results
@dataclass
class DistressAssessment:
    symbol: str
    metrics: MetricBundle
    insolvency: ScoreResult
    attention: ScoreResult
    dilution_severity: ScoreResult
    dilution_signal: ScoreResult
    outcome: OutcomeDistribution
    index: CompositeIndexResult
    insufficient_data: bool = False
    outcome_summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "insufficient_data": self.insufficient_data,
            "insolvency": self.insolvency.to_dict(),
            "attention": self.attention.to_dict(),
            "dilution_severity": self.dilution_severity.to_dict(),
            "dilution_signal": self.dilution_signal.to_dict(),
            "outcome": self.outcome.to_dict(),
            "outcome_summary": self.outcome_summary,
            "index": self.index.to_dict(),
            "metrics": self.metrics.to_dict(),
        }


@dataclass(frozen=True)
class EnrichedCandidate:
    """A candidate plus whatever the funnel stages fetched for it so far."""
    candidate: Candidate
    quote: Optional[Quote] = None
    fundamentals: Optional[RawFundamentals] = None
    price_history: Optional[pd.DataFrame] = None
    attention: Optional[AttentionInputs] = None
    offerings: Optional[OfferingActivity] = None
    metrics: Optional[MetricBundle] = None
    assessment: Optional[DistressAssessment] = None

    @property
    def symbol(self) -> str:
        return self.candidate.symbol

    @property
    def volume_ratio(self) -> float:
        return self.quote.volume_ratio if self.quote is not None else 1.0


@dataclass
class LeaderboardEntry:
    rank: int
    candidate: Candidate
    score: float
    reason_summary: str
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def symbol(self) -> str:
        return self.candidate.symbol

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "ticker": self.candidate.symbol,
            "companyName": self.candidate.company_name,
            "score": self.score,
            "reason": self.reason_summary,
            "metrics": dict(self.metrics),
        }


@dataclass
class StageReport:
    name: str
    input_count: int
    output_count: int
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "input": self.input_count,
            "output": self.output_count,
            "failures": [{"symbol": s, "error": e} for s, e in self.failures],
        }


@dataclass
class FunnelReport:
    universe_count: int
    stages: List[StageReport] = field(default_factory=list)
    survivors: List[EnrichedCandidate] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        out = {"baseUniverse": self.universe_count}
        for stage in self.stages:
            out[stage.name] = stage.output_count
        return out


@dataclass
class ScanReport:
    generated_at: str = field(default_factory=lambda: datetime.now().isoformat())
    date_range: str = ""
    pipeline: Dict[str, int] = field(default_factory=dict)
    leaderboard: List[LeaderboardEntry] = field(default_factory=list)
    near_misses: List[ConvergenceResult] = field(default_factory=list)
    convergence_events: List[ConvergenceResult] = field(default_factory=list)
    skipped_cooldown: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    published: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "dateRange": self.date_range,
            "pipeline": dict(self.pipeline),
            "leaderboard": [e.to_dict() for e in self.leaderboard],
        }
