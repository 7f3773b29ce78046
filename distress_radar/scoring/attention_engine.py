"""
Market attention (virality) engine, 0-100.

High attention means more eyeballs on a distressed name: liquidity, size,
headline flow and a listed options chain all widen the audience.
"""
import logging
from typing import Dict, List, Optional

from distress_radar.core.types import MetricBundle, ScoreResult
from distress_radar.scoring.classification import ThresholdBands, ATTENTION_BANDS
from distress_radar.scoring.weighted_scorer import Factor, WeightedFactorScorer, above, flag, metric

logger = logging.getLogger(__name__)

NEWS_POINTS_PER_ARTICLE = 5


def _news_flow(count: int) -> float:
    return min(count * NEWS_POINTS_PER_ARTICLE, 20) / 20


class AttentionEngine:
    ENGINE_NAME = 'attention'
    SCALE = 100.0

    DEFAULT_WEIGHTS: Dict[str, float] = {
        'volume': 35,
        'market_cap': 25,
        'news_flow': 20,
        'options': 20,
    }

    def __init__(self, weight_overrides: Optional[Dict[str, float]] = None,
                 bands: ThresholdBands = ATTENTION_BANDS):
        self.bands = bands
        self.scorer = WeightedFactorScorer(self.ENGINE_NAME, self._factors(), self.SCALE, weight_overrides)

    def _factors(self) -> List[Factor]:
        w = self.DEFAULT_WEIGHTS
        return [
            Factor('volume', metric('avg_volume'),
                   above([(5_000_000, 35), (1_000_000, 25), (250_000, 15), (50_000, 8)], out_of=35), w['volume']),
            Factor('market_cap', metric('market_cap'),
                   above([(5_000_000_000, 25), (500_000_000, 18), (50_000_000, 10), (10_000_000, 5)], out_of=25),
                   w['market_cap']),
            Factor('news_flow', metric('news_count'), _news_flow, w['news_flow']),
            Factor('options', metric('has_options'), flag(), w['options']),
        ]

    def score(self, bundle: MetricBundle) -> ScoreResult:
        result = self.scorer.score(bundle)
        result.tier = self.bands.classify(result.total_score)
        return result
