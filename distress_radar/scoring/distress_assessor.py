import logging
from typing import Optional

from distress_radar.core.config import ScoringConfig
from distress_radar.core.types import DistressAssessment, MetricBundle
from distress_radar.scoring.attention_engine import AttentionEngine
from distress_radar.scoring.composite_index import CompositeIndex
from distress_radar.scoring.dilution_engine import DilutionSeverityEngine, DilutionSignalEngine
from distress_radar.scoring.insolvency_engine import InsolvencyEngine
from distress_radar.scoring.outcome_model import OutcomeModel, format_outcome_summary

logger = logging.getLogger(__name__)


class DistressAssessor:
    """Runs every scoring engine over one MetricBundle.

    Engines are built once from the scoring config so weight overrides are
    validated at construction rather than per candidate.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()
        self.insolvency = InsolvencyEngine(self.config.insolvency_weights)
        self.attention = AttentionEngine(self.config.attention_weights)
        self.dilution_severity = DilutionSeverityEngine(self.config.dilution_severity_weights)
        self.dilution_signal = DilutionSignalEngine(self.config.dilution_signal_weights)
        self.outcomes = OutcomeModel()
        self.index = CompositeIndex(self.config.index_risk_weight, self.config.index_attention_weight)

    def assess(self, bundle: MetricBundle) -> DistressAssessment:
        insolvency = self.insolvency.score(bundle)
        attention = self.attention.score(bundle)
        outcome = self.outcomes.estimate(bundle)
        assessment = DistressAssessment(
            symbol=bundle.symbol,
            metrics=bundle,
            insolvency=insolvency,
            attention=attention,
            dilution_severity=self.dilution_severity.score(bundle),
            dilution_signal=self.dilution_signal.score(bundle),
            outcome=outcome,
            index=self.index.combine(insolvency.total_score, attention.total_score),
            insufficient_data=not bundle.has_financial_statements,
            outcome_summary=format_outcome_summary(outcome),
        )
        logger.debug("Assessed candidate", extra={
            'symbol': bundle.symbol,
            'insolvency': insolvency.total_score,
            'attention': attention.total_score,
            'index': assessment.index.value,
            'insufficient_data': assessment.insufficient_data,
        })
        return assessment
