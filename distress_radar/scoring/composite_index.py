import logging
import math

from distress_radar.core.types import CompositeIndexResult
from distress_radar.scoring.classification import ThresholdBands, COMPOSITE_INDEX_BANDS

logger = logging.getLogger(__name__)


class CompositeIndex:
    """Viral Insolvency Score: round(risk_weight * risk + attention_weight * attention).

    Both inputs are 0-100 scores; the weights must sum to 1.
    """

    def __init__(self, risk_weight: float = 0.6, attention_weight: float = 0.4,
                 bands: ThresholdBands = COMPOSITE_INDEX_BANDS):
        if risk_weight < 0 or attention_weight < 0:
            raise ValueError('index weights must be >= 0')
        if abs(risk_weight + attention_weight - 1.0) > 1e-6:
            raise ValueError(f'index weights must sum to 1.0 (got {risk_weight + attention_weight})')
        self.risk_weight = risk_weight
        self.attention_weight = attention_weight
        self.bands = bands

    def combine(self, risk_score: float, attention_score: float) -> CompositeIndexResult:
        blended = self.risk_weight * risk_score + self.attention_weight * attention_score
        # round half up
        value = int(math.floor(blended + 0.5 + 1e-9))
        tier = self.bands.classify(value)
        logger.debug("Composite index", extra={'risk': risk_score, 'attention': attention_score,
                                               'index': value, 'tier': tier.label})
        return CompositeIndexResult(value=value, tier=tier, risk_score=risk_score, attention_score=attention_score)
