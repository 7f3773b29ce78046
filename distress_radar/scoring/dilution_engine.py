"""
Dilution engines.

DilutionSeverityEngine (0-100) ranks names with a recent ATM/offering filing:
    distress block   (40)  runway, burn coverage, debt load
    impact block     (40)  pullback from peak, peak gain, filing recency
    attention block  (20)  volume surge, market-cap sweet spot

DilutionSignalEngine (0-1) is the parabolic-run short setup. It fires only
when score >= 0.65, the offering is at least 10% of market cap and the
7-day gain is at least 150%.
"""
import logging
from typing import Any, Dict, List, Optional

from distress_radar.core.types import MetricBundle, ScoreResult
from distress_radar.scoring.classification import ThresholdBands, DILUTION_SEVERITY_BANDS
from distress_radar.scoring.weighted_scorer import (
    Factor, WeightedFactorScorer, at_most, at_least, above, below, bands, metric,
)

logger = logging.getLogger(__name__)


def _burn_coverage(bundle: MetricBundle) -> Optional[float]:
    """Months of cash at current burn (uncapped); None for non-burners."""
    if bundle.cash is None or not bundle.monthly_burn:
        return None
    return bundle.cash / bundle.monthly_burn


class DilutionSeverityEngine:
    ENGINE_NAME = 'dilution_severity'
    SCALE = 100.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        # distress
        'runway': 15,
        'burn_coverage': 15,
        'debt_load': 10,
        # impact
        'pullback': 15,
        'peak_gain': 15,
        'filing_recency': 10,
        # attention
        'volume_surge': 10,
        'market_cap_band': 10,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None,
                 bands: ThresholdBands = DILUTION_SEVERITY_BANDS):
        self.bands = bands
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('runway', metric('runway_months'),
                   at_most([(3, 15), (6, 12), (12, 8), (18, 4)], out_of=15), w['runway']),
            Factor('burn_coverage', _burn_coverage,
                   below([(3, 15), (6, 10), (12, 5)], out_of=15), w['burn_coverage']),
            Factor('debt_load', metric('debt_to_cash'),
                   above([(5, 10), (2, 7), (1, 4)], out_of=10), w['debt_load']),
            Factor('pullback', metric('pullback_pct'),
                   at_least([(30, 15), (20, 12), (10, 8), (5, 4)], out_of=15), w['pullback']),
            Factor('peak_gain', metric('peak_gain_pct'),
                   at_least([(100, 15), (50, 12), (30, 8), (15, 4)], out_of=15), w['peak_gain']),
            Factor('filing_recency', metric('days_since_event'),
                   at_most([(3, 10), (7, 7), (14, 4)], out_of=10), w['filing_recency']),
            Factor('volume_surge', metric('volume_ratio'),
                   at_least([(3, 10), (2, 7), (1.5, 5), (1, 3)], out_of=10), w['volume_surge']),
            Factor('market_cap_band', metric('market_cap'),
                   bands([(50_000_000, 500_000_000, 10),
                          (500_000_000, 2_000_000_000, 7),
                          (10_000_000, 50_000_000, 5)], out_of=10), w['market_cap_band']),
        ]

    def score(self, bundle: MetricBundle) -> ScoreResult:
        result = self.scorer.score(bundle)
        result.tier = self.bands.classify(result.total_score)
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# PARABOLIC DILUTION SIGNAL
# ═══════════════════════════════════════════════════════════════════════════════

MIN_WEEKLY_GAIN_PCT = 150.0
EXTREME_GAIN_PCT = 300.0
GAIN_CEILING_PCT = 500.0
MEANINGFUL_OFFERING_RATIO = 0.10
MIN_SCORE_TO_TRIGGER = 0.65


def _parabolic_gain(gain_pct: float) -> float:
    if gain_pct < MIN_WEEKLY_GAIN_PCT:
        return 0.0
    normalized = (gain_pct - MIN_WEEKLY_GAIN_PCT) / (GAIN_CEILING_PCT - MIN_WEEKLY_GAIN_PCT)
    return min(normalized + 0.5, 1.0)


def _red_candle_inputs(bundle: MetricBundle) -> Optional[Dict[str, Any]]:
    if bundle.last_candle_red is None:
        return None
    return {'red': bundle.last_candle_red, 'green_streak': bundle.green_streak or 0}


def _red_candle(value: Dict[str, Any]) -> float:
    if not value['red']:
        return 0.0
    streak = value['green_streak']
    if streak >= 4:
        return 1.0
    if streak >= 3:
        return 0.8
    if streak >= 2:
        return 0.6
    return 0.4


_OFFERING_STEPS = at_least([(0.5, 1.0), (0.25, 0.8), (0.10, 0.5)])


def _offering_impact(ratio: float) -> float:
    """Any positive offering scores at least 0.2."""
    if ratio <= 0:
        return 0.0
    return _OFFERING_STEPS(ratio) or 0.2


def _burning_runway(bundle: MetricBundle) -> Optional[float]:
    if not bundle.monthly_burn:
        return None
    return bundle.runway_months


class DilutionSignalEngine:
    ENGINE_NAME = 'dilution_signal'
    SCALE = 1.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        'parabolic_gain': 0.30,
        'red_candle': 0.15,
        'volume_fade': 0.10,
        'runway': 0.15,
        'offering_impact': 0.20,
        'float_fragility': 0.10,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None,
                 min_score: float = MIN_SCORE_TO_TRIGGER):
        self.min_score = min_score
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('parabolic_gain', metric('gain_7d_pct'), _parabolic_gain, w['parabolic_gain']),
            Factor('red_candle', _red_candle_inputs, _red_candle, w['red_candle']),
            Factor('volume_fade', metric('volume_fade_ratio'),
                   at_most([(0.5, 1.0), (0.7, 0.7), (0.85, 0.4)]), w['volume_fade']),
            Factor('runway', _burning_runway,
                   at_most([(2, 1.0), (3, 0.85), (6, 0.5), (12, 0.25)]), w['runway']),
            Factor('offering_impact', metric('offering_impact_ratio'),
                   _offering_impact, w['offering_impact']),
            Factor('float_fragility', metric('float_ratio'),
                   at_most([(0.20, 1.0), (0.40, 0.6), (0.60, 0.3)]), w['float_fragility']),
        ]

    def trigger_conditions(self, bundle: MetricBundle, score: float) -> Dict[str, bool]:
        return {
            'score_threshold': score >= self.min_score,
            'significant_offering': (bundle.offering_impact_ratio or 0.0) >= MEANINGFUL_OFFERING_RATIO,
            'parabolic_run': bundle.gain_7d_pct is not None and bundle.gain_7d_pct >= MIN_WEEKLY_GAIN_PCT,
        }

    @staticmethod
    def _reasons(bundle: MetricBundle, result: ScoreResult) -> List[str]:
        raw = {b.factor_name: b.raw_score for b in result.breakdown}
        reasons = []
        gain = bundle.gain_7d_pct
        if gain is not None and gain >= EXTREME_GAIN_PCT:
            reasons.append(f"Extreme parabolic run (+{gain:.0f}% in 7 days)")
        elif gain is not None and gain >= MIN_WEEKLY_GAIN_PCT:
            reasons.append(f"Parabolic move (+{gain:.0f}% in 7 days)")

        if raw.get('red_candle', 0) >= 0.8:
            reasons.append("First red candle after strong green streak")
        elif raw.get('red_candle', 0) > 0:
            reasons.append("Red candle reversal")

        if raw.get('volume_fade', 0) >= 0.7:
            reasons.append("Volume capitulation (buyers exhausted)")
        elif raw.get('volume_fade', 0) > 0:
            reasons.append("Volume fading")

        if raw.get('runway', 0) >= 0.85:
            reasons.append("Critical: cash runway under 3 months")
        elif raw.get('runway', 0) >= 0.5:
            reasons.append("Low cash runway (under 6 months)")

        if raw.get('offering_impact', 0) >= 0.8:
            reasons.append("High dilution impact: offering over 25% of market cap")
        elif raw.get('offering_impact', 0) >= 0.5:
            reasons.append("Meaningful offering: over 10% of market cap")
        elif raw.get('offering_impact', 0) > 0:
            reasons.append("Active equity offering detected")

        if raw.get('float_fragility', 0) >= 0.6:
            reasons.append("Small float (under 40%), highly sensitive to dilution")
        return reasons

    def score(self, bundle: MetricBundle) -> ScoreResult:
        result = self.scorer.score(bundle)
        conditions = self.trigger_conditions(bundle, result.total_score)
        result.triggered = all(conditions.values())
        result.reasons = self._reasons(bundle, result)
        if result.triggered:
            logger.info("Dilution signal triggered", extra={'symbol': bundle.symbol, 'score': result.total_score})
        else:
            logger.debug("Dilution signal not triggered",
                         extra={'symbol': bundle.symbol, 'conditions': conditions})
        return result
