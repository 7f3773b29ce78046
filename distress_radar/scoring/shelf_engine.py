"""
Shelf dilution risk (SDR), 0-100.

Ranks companies that recently filed a shelf, resale or stock-plan
registration by how soon and how hard they are likely to draw on it:
    runway (25), debt load (20), filing recency (20), market cap (15),
    form type (10), monthly burn (10)
"""
from typing import Dict, List, Optional

from distress_radar.core.types import MetricBundle, ScoreResult
from distress_radar.scoring.weighted_scorer import (
    Factor, WeightedFactorScorer, at_most, above, below, metric, with_floor,
)

AMENDMENT_MARKER = '/A'
REGISTRATION_FORMS = frozenset({'S-3', 'S-1'})
PROSPECTUS_SUPPLEMENT = '424B5'


_RUNWAY = with_floor(below([(3, 25), (6, 20), (12, 15), (24, 10)], out_of=25), 5 / 25)
_RECENCY = with_floor(at_most([(2, 20), (5, 15), (7, 10)], out_of=20), 5 / 20)
_MARKET_CAP = with_floor(below([(50e6, 15), (200e6, 12), (500e6, 8), (1e9, 5)], out_of=15), 2 / 15)
_BURN = with_floor(above([(10_000_000, 10), (5_000_000, 8), (1_000_000, 5)], out_of=10), 3 / 10)


def _form_points(form: str) -> float:
    """Amendments mean the registration is moving; plan registrations score lowest."""
    if AMENDMENT_MARKER in form:
        return 1.0
    if form in REGISTRATION_FORMS:
        return 0.8
    if form == PROSPECTUS_SUPPLEMENT:
        return 0.7
    return 0.5


def _burn_points(burn: float) -> float:
    return _BURN(burn) if burn > 0 else 0.0


class ShelfRiskEngine:
    ENGINE_NAME = 'shelf_dilution_risk'
    SCALE = 100.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        'runway': 25,
        'debt_load': 20,
        'filing_recency': 20,
        'market_cap': 15,
        'form_type': 10,
        'monthly_burn': 10,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None):
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('runway', metric('runway_months'), _RUNWAY, w['runway']),
            Factor('debt_load', metric('debt_to_cash'),
                   above([(10, 20), (5, 15), (2, 10), (1, 5)], out_of=20), w['debt_load']),
            Factor('filing_recency', metric('days_since_event'), _RECENCY, w['filing_recency']),
            Factor('market_cap', metric('market_cap'), _MARKET_CAP, w['market_cap']),
            Factor('form_type', metric('event_form'), _form_points, w['form_type']),
            Factor('monthly_burn', metric('monthly_burn'), _burn_points, w['monthly_burn']),
        ]

    def score(self, bundle: MetricBundle) -> ScoreResult:
        result = self.scorer.score(bundle)
        result.total_score = float(round(result.total_score))
        return result
