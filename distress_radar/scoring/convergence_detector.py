"""
Convergence detector for critical distress events.

A convergence event is when independent failure signals line up at once:
    mechanism_active           an ATM/shelf/offering is live (or known-active override)
    risk_above_threshold       insolvency score >= min_risk
    attention_above_threshold  composite index >= min_index

All criteria must pass. A result one criterion short is a near miss and is
reported with the failing criteria named.
"""
import logging
import math
from statistics import mean
from typing import Iterable, Optional

from distress_radar.core.types import (
    CriteriaSet, Criterion, ConvergenceResult, DistressAssessment, OfferingActivity,
)

logger = logging.getLogger(__name__)

POINTS_PER_FILING = 10
MIN_MECHANISM_POINTS = 10


class ConvergenceDetector:

    def __init__(self, min_risk: float = 50.0, min_index: float = 60.0,
                 known_active: Optional[Iterable[str]] = None):
        self.min_risk = min_risk
        self.min_index = min_index
        self.known_active = {s.upper() for s in (known_active or [])}

    def _mechanism(self, symbol: str, offerings: Optional[OfferingActivity]) -> Criterion:
        if symbol.upper() in self.known_active:
            return Criterion('mechanism_active', True, float(MIN_MECHANISM_POINTS),
                             'known active dilution mechanism')
        if offerings is None or not offerings.has_active_mechanism:
            return Criterion('mechanism_active', False, 0.0, 'no active offering mechanism')
        points = max(offerings.recent_filing_count * POINTS_PER_FILING, MIN_MECHANISM_POINTS)
        return Criterion('mechanism_active', True, float(points),
                         f'{offerings.recent_filing_count} recent offering filing(s)')

    def build_criteria(self, symbol: str, offerings: Optional[OfferingActivity],
                       risk_score: float, index_value: float) -> CriteriaSet:
        return CriteriaSet(
            mechanism_active=self._mechanism(symbol, offerings),
            risk_above_threshold=Criterion(
                'risk_above_threshold', risk_score >= self.min_risk, float(risk_score),
                f'insolvency risk {risk_score:.0f} vs {self.min_risk:.0f} required'),
            attention_above_threshold=Criterion(
                'attention_above_threshold', index_value >= self.min_index, float(index_value),
                f'composite index {index_value:.0f} vs {self.min_index:.0f} required'),
        )

    @staticmethod
    def evaluate(symbol: str, criteria: CriteriaSet) -> ConvergenceResult:
        items = list(criteria.items())
        met = {name: c.passed for name, c in items}
        pass_count = sum(1 for passed in met.values() if passed)
        converged = pass_count == len(items)
        failing = [name for name, c in items if not c.passed]
        failing_details = [c.detail for _, c in items if not c.passed]

        intensity = None
        if converged:
            scores = [c.score if c.score is not None else 0.0 for _, c in items]
            intensity = int(math.floor(mean(scores) + 0.5))

        return ConvergenceResult(
            symbol=symbol,
            criteria_met=met,
            pass_count=pass_count,
            is_converged=converged,
            intensity=intensity,
            failing=failing,
            failing_details=failing_details,
        )

    def detect(self, assessment: DistressAssessment,
               offerings: Optional[OfferingActivity] = None) -> ConvergenceResult:
        if offerings is None:
            metrics = assessment.metrics
            offerings = OfferingActivity(
                has_active_mechanism=bool(metrics.mechanism_active),
                recent_filing_count=metrics.recent_filing_count or 0,
                offering_amount=metrics.offering_amount,
            )
        criteria = self.build_criteria(assessment.symbol, offerings,
                                       assessment.insolvency.total_score, assessment.index.value)
        result = self.evaluate(assessment.symbol, criteria)
        if result.is_converged:
            logger.info("Convergence detected", extra={'symbol': result.symbol, 'intensity': result.intensity})
        elif result.is_near_miss:
            logger.info("Convergence near miss", extra={'symbol': result.symbol, 'failing': result.failing})
        return result
