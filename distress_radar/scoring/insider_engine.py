"""
Insider disconnect score (IDS), 0-100.

Insiders selling into a rising stock:
    value impact     (25)  % of market cap sold
    price disconnect (25)  30-day gain while they sell
    seniority        (20)  CEO 10, CFO 7, director 3
    cluster          (15)  several insiders or repeated sales
    recency          (10)  days since the last sale
    dollar size       (5)  total value sold

A name qualifies only when the score reaches min_score and the stock is
up at least MIN_RALLY_PCT over the month.
"""
import logging
from typing import Dict, List, Optional, Tuple

from distress_radar.core.types import MetricBundle, ScoreResult
from distress_radar.scoring.weighted_scorer import (
    Factor, WeightedFactorScorer, at_most, above, metric, with_floor,
)

logger = logging.getLogger(__name__)

MIN_SCORE_TO_QUALIFY = 40.0
MIN_RALLY_PCT = 5.0

SENIORITY_POINTS = {'ceo_selling': 10, 'cfo_selling': 7, 'director_selling': 3}
SENIORITY_CAP = 20


def _roles(bundle: MetricBundle) -> Optional[Dict[str, bool]]:
    if bundle.ceo_selling is None:
        return None
    return {name: bool(getattr(bundle, name)) for name in SENIORITY_POINTS}


def _seniority(roles: Dict[str, bool]) -> float:
    points = sum(SENIORITY_POINTS[name] for name, selling in roles.items() if selling)
    return min(SENIORITY_CAP, points) / SENIORITY_CAP


def _sellers(bundle: MetricBundle) -> Optional[Tuple[int, int]]:
    if bundle.insider_seller_count is None:
        return None
    return bundle.insider_seller_count, bundle.insider_sale_count or 0


def _cluster(value: Tuple[int, int]) -> float:
    sellers, sales = value
    if sellers >= 3:
        return 15 / 15
    if sellers >= 2:
        return 12 / 15
    if sales >= 3:
        return 10 / 15
    if sales >= 2:
        return 5 / 15
    return 0.0


class InsiderDisconnectEngine:
    ENGINE_NAME = 'insider_disconnect'
    SCALE = 100.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        'value_impact': 25,
        'price_disconnect': 25,
        'seniority': 20,
        'cluster': 15,
        'recency': 10,
        'dollar_size': 5,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None,
                 min_score: float = MIN_SCORE_TO_QUALIFY,
                 min_rally_pct: float = MIN_RALLY_PCT):
        self.min_score = min_score
        self.min_rally_pct = min_rally_pct
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('value_impact', metric('insider_pct_market_cap_sold'),
                   with_floor(above([(5, 25), (2, 20), (1, 15), (0.5, 10)], out_of=25), 5 / 25),
                   w['value_impact']),
            Factor('price_disconnect', metric('price_change_30d_pct'),
                   above([(50, 25), (30, 20), (15, 15), (5, 10)], out_of=25), w['price_disconnect']),
            Factor('seniority', _roles, _seniority, w['seniority']),
            Factor('cluster', _sellers, _cluster, w['cluster']),
            Factor('recency', metric('days_since_insider_sale'),
                   with_floor(at_most([(3, 10), (7, 8), (14, 5)], out_of=10), 2 / 10), w['recency']),
            Factor('dollar_size', metric('insider_value_sold'),
                   with_floor(above([(10e6, 5), (5e6, 4), (1e6, 3)], out_of=5), 1 / 5), w['dollar_size']),
        ]

    def qualifies(self, bundle: MetricBundle, score: float) -> bool:
        rally = bundle.price_change_30d_pct
        return score >= self.min_score and rally is not None and rally >= self.min_rally_pct

    def score(self, bundle: MetricBundle) -> ScoreResult:
        result = self.scorer.score(bundle)
        result.total_score = float(round(result.total_score))
        result.triggered = self.qualifies(bundle, result.total_score)
        logger.debug("Insider disconnect", extra={'symbol': bundle.symbol, 'score': result.total_score,
                                                  'qualified': result.triggered})
        return result
