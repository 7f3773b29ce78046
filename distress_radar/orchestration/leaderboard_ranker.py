"""
Leaderboard ranking and one-line reason summaries.

Reasons follow "<metric> · <metric> → <meaning>": the two highest-priority
metrics that cross their display thresholds, then a meaning clause picked by
the strongest of those signals so identical inputs always read the same.
"""
import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from distress_radar.core.types import Candidate, LeaderboardEntry, MetricBundle, SkippedCandidate
from distress_radar.services.cooldown_ledger import CooldownLedger

logger = logging.getLogger(__name__)

METRIC_SEPARATOR = " · "
MEANING_SEPARATOR = " → "
MAX_REASON_METRICS = 2


def format_date_range(end: date, days: int = 7) -> str:
    """'M/D–M/D' covering the days before end."""
    start = end - timedelta(days=days)
    return f"{start.month}/{start.day}–{end.month}/{end.day}"


def _compose(signals: List[Tuple[int, str, str]], fallback_meaning: str, empty_prefix: str = "") -> str:
    """signals are (priority, text, meaning); stable sort keeps insertion order on ties."""
    ranked = sorted(signals, key=lambda s: -s[0])[:MAX_REASON_METRICS]
    if not ranked:
        return f"{empty_prefix}{MEANING_SEPARATOR}{fallback_meaning}" if empty_prefix else fallback_meaning
    meaning = ranked[0][2]
    return METRIC_SEPARATOR.join(text for _, text, _ in ranked) + MEANING_SEPARATOR + meaning


def insolvency_reason(metrics: MetricBundle) -> str:
    signals: List[Tuple[int, str, str]] = []
    runway = metrics.runway_months
    if runway is not None and runway <= 18:
        critical = runway <= 3
        signals.append((10 if critical else 8, f"{runway:.1f}mo runway",
                        'liquidity tightening' if critical else 'cash position deteriorating'))
    debt = metrics.debt_to_cash
    if debt is not None and debt > 1.5:
        heavy = debt > 5
        signals.append((9 if heavy else 7, f"debt {debt:.1f}x cash",
                        'insolvency pressure rising' if heavy else 'solvency risk rising'))
    burn = metrics.monthly_burn
    if burn is not None and burn > 1_000_000:
        burn_m = burn / 1_000_000
        signals.append((8 if burn_m >= 10 else 6, f"${burn_m:.1f}M/mo burn", 'financial distress deepening'))
    return _compose(signals, 'financial distress deepening')


def dilution_reason(metrics: MetricBundle) -> str:
    signals: List[Tuple[int, str, str]] = []
    runway = metrics.runway_months
    if runway is not None and runway <= 12:
        signals.append((10 if runway <= 3 else 8, f"{runway:.1f}mo runway", 'heavy dilution pressure'))
    pullback = metrics.pullback_pct
    if pullback is not None and pullback >= 10:
        steep = pullback >= 30
        signals.append((9 if steep else 7, f"-{pullback:.0f}% off peak",
                        'rally unwinding' if steep else 'fading after spike'))
    days = metrics.days_since_event
    if days is not None and days <= 7:
        signals.append((9 if days <= 3 else 5, f"ATM filed {days}d ago", 'dilution overhang building'))
    debt = metrics.debt_to_cash
    if debt is not None and debt > 2:
        signals.append((9 if debt > 5 else 6, f"debt {debt:.1f}x cash", 'momentum reversed'))
    return _compose(signals, 'dilution overhang building', empty_prefix='ATM filed')


def shelf_reason(metrics: MetricBundle) -> str:
    """Runway and debt first; cap and filing age fill the remaining slots."""
    runway = metrics.runway_months
    debt = metrics.debt_to_cash
    cap = metrics.market_cap
    parts: List[str] = []
    if runway is not None and runway < 24:
        parts.append(f"{runway:.1f}mo runway")
    if debt is not None and debt > 1:
        parts.append(f"debt {debt:.1f}x cash")
    if len(parts) < 2 and cap is not None and cap < 500_000_000:
        parts.append(f"${cap / 1_000_000:.0f}M cap")
    if len(parts) < 2 and metrics.days_since_event is not None:
        parts.append(f"filed {metrics.days_since_event}d ago")

    if runway is not None and runway < 1:
        meaning = 'dilution imminent'
    elif runway is not None and runway < 3 and (debt or 0) > 10:
        meaning = 'emergency capital needed'
    elif cap is not None and cap < 1_000_000:
        meaning = 'ultra-microcap funding likely'
    elif runway is not None and runway > 6:
        meaning = 'early shelf positioning'
    elif (debt or 0) > 20:
        meaning = 'high re-pricing risk'
    else:
        meaning = 'dilution setup forming'
    if not parts:
        return meaning
    return METRIC_SEPARATOR.join(parts[:MAX_REASON_METRICS]) + MEANING_SEPARATOR + meaning


def _dollars_sold(value: float) -> str:
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M sold"
    return f"${value / 1_000:.0f}K sold"


def insider_reason(metrics: MetricBundle) -> str:
    """'$X sold · <who> · +N% rally → meaning'."""
    ceo = bool(metrics.ceo_selling)
    cfo = bool(metrics.cfo_selling)
    cluster = bool(metrics.insider_cluster_sale)
    change = metrics.price_change_30d_pct or 0.0

    if ceo and cfo:
        who = 'CEO + CFO'
    elif ceo:
        who = 'CEO'
    elif cfo:
        who = 'CFO'
    elif cluster and (metrics.insider_seller_count or 0) >= 3:
        who = 'cluster'
    else:
        who = None

    parts = [_dollars_sold(metrics.insider_value_sold or 0.0)]
    if who:
        parts.append(who)
    parts.append(f"+{change:.0f}% rally")

    if change > 30:
        meaning = 'dumping into strength'
    elif ceo or cfo:
        meaning = 'confidence fading'
    elif cluster:
        meaning = 'coordinated exit'
    else:
        meaning = 'quiet profit-taking'
    return METRIC_SEPARATOR.join(parts) + MEANING_SEPARATOR + meaning


class LeaderboardRanker:
    """Min-score filter, cooldown skip, (-score, symbol) ordering, top-K, ranks 1..K."""

    def __init__(self, size: int = 10, min_score: float = 0.0,
                 ledger: Optional[CooldownLedger] = None):
        if size < 1:
            raise ValueError('leaderboard size must be >= 1')
        self.size = size
        self.min_score = min_score
        self.ledger = ledger

    def rank(self, items: Iterable[Any],
             candidate_fn: Callable[[Any], Candidate],
             score_fn: Callable[[Any], float],
             reason_fn: Callable[[Any], str],
             metrics_fn: Callable[[Any], Dict[str, Any]] = lambda item: {},
             ) -> Tuple[List[LeaderboardEntry], List[SkippedCandidate]]:
        eligible = []
        skipped: List[SkippedCandidate] = []
        for item in items:
            candidate = candidate_fn(item)
            score = score_fn(item)
            if score < self.min_score:
                continue
            skip = self.ledger.skipped(candidate.symbol) if self.ledger else None
            if skip is not None:
                skipped.append(skip)
                continue
            eligible.append((candidate, score, item))

        eligible.sort(key=lambda row: (-row[1], row[0].symbol))
        entries = [
            LeaderboardEntry(rank=i, candidate=candidate, score=score,
                             reason_summary=reason_fn(item), metrics=metrics_fn(item))
            for i, (candidate, score, item) in enumerate(eligible[:self.size], start=1)
        ]
        if skipped:
            logger.info("Skipped %d on cooldown: %s", len(skipped), ", ".join(s.key for s in skipped[:5]))
        logger.debug("Ranked leaderboard", extra={'eligible': len(eligible), 'entries': len(entries)})
        return entries, skipped
