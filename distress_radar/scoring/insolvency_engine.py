"""
Insolvency Risk Engine

Composite 0-100 score for insolvency/distress risk built from the
liquidity, leverage, profitability and ownership metrics of a MetricBundle.

Factor table (max points):
    runway              25   months of cash at current burn
    debt                15   debt/cash multiple or cash/debt coverage
    interest_coverage   15   EBITDA (or operating income) / interest
    cash_flow_trend     15   negative OCF quarters and direction
    revenue_profit      10   revenue change combined with loss quarters
    altman_z            10   vendor Altman Z
    insider_selling      5   insider sell skew
    share_dilution       5   share count growth over the lookback

Bands: >=70 INSOLVENCY_ALERT, >=50 DISTRESS_WATCHLIST, else HEALTHY_IGNORE.
Without all three statements the result is INSUFFICIENT_DATA with score 0.
"""
import logging
from typing import Any, Dict, List, Optional

from distress_radar.core.types import MetricBundle, ScoreResult
from distress_radar.scoring.classification import ThresholdBands, INSOLVENCY_BANDS, INSUFFICIENT_DATA_TIER
from distress_radar.scoring.weighted_scorer import (
    Factor, WeightedFactorScorer, at_most, below, at_least, metric,
)

logger = logging.getLogger(__name__)

HEAVY_INSIDER_NET_OUTFLOW = -1_000_000


def _debt_inputs(bundle: MetricBundle) -> Optional[Dict[str, float]]:
    if bundle.debt_to_cash is None and bundle.cash_to_debt is None:
        return None
    return {'debt_to_cash': bundle.debt_to_cash, 'cash_to_debt': bundle.cash_to_debt}


def _score_debt(value: Dict[str, Optional[float]]) -> float:
    d_c = value.get('debt_to_cash')
    c_d = value.get('cash_to_debt')
    for points, min_multiple, max_coverage in ((15, 5, 0.2), (10, 3, 0.33), (5, 2, 0.5)):
        if (d_c is not None and d_c >= min_multiple) or (c_d is not None and c_d <= max_coverage):
            return points / 15
    return 0.0


def _cash_flow_inputs(bundle: MetricBundle) -> Optional[Dict[str, Any]]:
    if bundle.ocf_negative_quarters is None:
        return None
    return {'negative_quarters': bundle.ocf_negative_quarters, 'worsening': bool(bundle.ocf_worsening)}


def _score_cash_flow(value: Dict[str, Any]) -> float:
    count = value['negative_quarters']
    if count == 4 and value['worsening']:
        return 1.0
    if count >= 3:
        return 10 / 15
    if count == 2:
        return 5 / 15
    return 0.0


def _revenue_inputs(bundle: MetricBundle) -> Optional[Dict[str, Any]]:
    if bundle.revenue_change_pct is None:
        return None
    return {'revenue_change_pct': bundle.revenue_change_pct,
            'loss_quarters': bundle.negative_income_quarters or 0}


def _score_revenue(value: Dict[str, Any]) -> float:
    change = value['revenue_change_pct']
    losses = value['loss_quarters']
    if change < -20 and losses >= 3:
        return 1.0
    if change <= 0 and losses >= 2:
        return 0.7
    if losses >= 2:
        return 0.5
    return 0.0


def _insider_inputs(bundle: MetricBundle) -> Optional[Dict[str, float]]:
    if bundle.insider_sell_value is None:
        return None
    return {
        'sell': bundle.insider_sell_value,
        'buy': bundle.insider_buy_value or 0.0,
        'net': bundle.insider_net_value if bundle.insider_net_value is not None else 0.0,
    }


def _score_insiders(value: Dict[str, float]) -> float:
    if value['sell'] > value['buy'] * 3 and value['net'] < HEAVY_INSIDER_NET_OUTFLOW:
        return 1.0
    if value['sell'] > value['buy'] * 2:
        return 0.6
    return 0.0


class InsolvencyEngine:
    ENGINE_NAME = 'insolvency'
    SCALE = 100.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        'runway': 25,
        'debt': 15,
        'interest_coverage': 15,
        'cash_flow_trend': 15,
        'revenue_profit': 10,
        'altman_z': 10,
        'insider_selling': 5,
        'share_dilution': 5,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None,
                 bands: ThresholdBands = INSOLVENCY_BANDS):
        self.bands = bands
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('runway', metric('runway_months'),
                   at_most([(2, 25), (4, 20), (6, 15), (12, 5)], out_of=25), w['runway']),
            Factor('debt', _debt_inputs, _score_debt, w['debt']),
            Factor('interest_coverage', metric('interest_coverage'),
                   below([(0, 15), (1, 12), (2, 8), (3, 4)], out_of=15), w['interest_coverage']),
            Factor('cash_flow_trend', _cash_flow_inputs, _score_cash_flow, w['cash_flow_trend']),
            Factor('revenue_profit', _revenue_inputs, _score_revenue, w['revenue_profit']),
            Factor('altman_z', metric('altman_z'),
                   below([(1.2, 10), (1.8, 7), (3.0, 3)], out_of=10), w['altman_z']),
            Factor('insider_selling', _insider_inputs, _score_insiders, w['insider_selling']),
            Factor('share_dilution', metric('share_growth_pct'),
                   at_least([(50, 5), (20, 3), (10, 1)], out_of=5), w['share_dilution']),
        ]

    def score(self, bundle: MetricBundle) -> ScoreResult:
        if not bundle.has_financial_statements:
            logger.debug("Insufficient statements for insolvency score", extra={'symbol': bundle.symbol})
            return ScoreResult(engine=self.ENGINE_NAME, total_score=0.0, scale=self.SCALE,
                               breakdown=[], tier=INSUFFICIENT_DATA_TIER)
        result = self.scorer.score(bundle)
        result.tier = self.bands.classify(result.total_score)
        return result
