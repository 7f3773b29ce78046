"""
Outcome Probability Model

Estimates how a distressed company's situation resolves:
    DILUTION       ATM, follow-on offering, PIPE
    RESTRUCTURING  covenant breach, debt-for-equity swap, reverse split
    BANKRUPTCY     Chapter 11, liquidation, receivership

Rule blocks add raw points per outcome independently, so one input can feed
several outcomes (runway < 1 month adds to both bankruptcy and dilution).
Raw points are then normalized to integer percentages summing to 100.
"""
import logging
import math
from typing import Dict, List, Optional

from distress_radar.core.types import (
    MetricBundle, OutcomeDistribution,
    OUTCOME_DILUTION, OUTCOME_RESTRUCTURING, OUTCOME_BANKRUPTCY, OUTCOME_STABLE,
    CONFIDENCE_LOW, CONFIDENCE_MEDIUM, CONFIDENCE_HIGH,
)

logger = logging.getLogger(__name__)

# Tie-break order for the primary outcome and for leftover percentage points
OUTCOME_PRIORITY: List[str] = [OUTCOME_DILUTION, OUTCOME_RESTRUCTURING, OUTCOME_BANKRUPTCY]

HIGH_CONFIDENCE_POINTS = 80
MEDIUM_CONFIDENCE_POINTS = 50


def largest_remainder_percentages(raw_points: Dict[str, float], labels: List[str]) -> Dict[str, int]:
    """Integer percentages summing to exactly 100 (Hamilton method).

    Floors every share, then hands the leftover points to the largest
    fractional remainders; equal remainders go to the earlier label.
    """
    total = sum(raw_points.get(label, 0.0) for label in labels)
    if total <= 0:
        return {label: 0 for label in labels}
    exact = {label: raw_points.get(label, 0.0) / total * 100 for label in labels}
    floors = {label: int(math.floor(exact[label])) for label in labels}
    leftover = 100 - sum(floors.values())
    by_remainder = sorted(labels, key=lambda label: (-(exact[label] - floors[label]), labels.index(label)))
    for label in by_remainder[:leftover]:
        floors[label] += 1
    return floors


class OutcomeModel:

    def __init__(self):
        self.points: Dict[str, float] = {}

    def _add(self, **points: float) -> None:
        for key, value in points.items():
            label = key.upper()
            self.points[label] = self.points.get(label, 0.0) + value

    # ═══════════════════════════════════════════════════════════════════════════
    # RULE BLOCKS
    # ═══════════════════════════════════════════════════════════════════════════

    def _runway_block(self, runway: Optional[float]) -> None:
        if runway is None:
            return
        if runway < 1:
            self._add(bankruptcy=35, dilution=20)
        elif runway < 3:
            self._add(bankruptcy=20, dilution=25)
        elif runway < 6:
            self._add(bankruptcy=10, dilution=20)
        elif runway < 12:
            self._add(dilution=10)

    def _debt_block(self, debt_to_cash: Optional[float]) -> None:
        if debt_to_cash is None:
            return
        if debt_to_cash > 50:
            self._add(restructuring=30, bankruptcy=15)
        elif debt_to_cash > 20:
            self._add(restructuring=20, bankruptcy=10)
        elif debt_to_cash > 10:
            self._add(restructuring=15)
        elif debt_to_cash > 5:
            self._add(restructuring=10)

    def _cash_coverage_block(self, cash: Optional[float], debt: Optional[float]) -> None:
        if not cash or not debt or cash <= 0 or debt <= 0:
            return
        ratio = cash / debt
        if ratio < 0.02:
            self._add(bankruptcy=25)
        elif ratio < 0.05:
            self._add(bankruptcy=15)
        elif ratio < 0.10:
            self._add(restructuring=10)

    def _interest_block(self, coverage: Optional[float]) -> None:
        if coverage is None:
            return
        if coverage < 0:
            self._add(restructuring=20, bankruptcy=10)
        elif coverage < 1:
            self._add(restructuring=15, bankruptcy=5)
        elif coverage < 2:
            self._add(restructuring=10)

    def _revenue_block(self, change_pct: Optional[float]) -> None:
        if change_pct is None:
            return
        if change_pct < -50:
            self._add(dilution=15, restructuring=15, bankruptcy=15)
        elif change_pct < -30:
            self._add(dilution=10, restructuring=10, bankruptcy=10)
        elif change_pct < -10:
            self._add(dilution=5, restructuring=5)

    def _losses_block(self, loss_quarters: Optional[int], ocf_negative: Optional[int]) -> None:
        loss_quarters = loss_quarters or 0
        if loss_quarters >= 4:
            self._add(dilution=10, restructuring=5)
        elif loss_quarters >= 3:
            self._add(dilution=5)
        if (ocf_negative or 0) >= 4:
            self._add(dilution=10, bankruptcy=5)

    def _burn_block(self, burn: Optional[float], runway: Optional[float]) -> None:
        if burn and burn > 0 and runway is not None and runway < 4:
            self._add(dilution=15)

    # ═══════════════════════════════════════════════════════════════════════════

    def estimate(self, bundle: MetricBundle) -> OutcomeDistribution:
        self.points = {label: 0.0 for label in OUTCOME_PRIORITY}
        self._runway_block(bundle.runway_months)
        self._debt_block(bundle.debt_to_cash)
        self._cash_coverage_block(bundle.cash, bundle.total_debt)
        self._interest_block(bundle.interest_coverage)
        self._revenue_block(bundle.revenue_change_pct)
        self._losses_block(bundle.negative_income_quarters, bundle.ocf_negative_quarters)
        self._burn_block(bundle.monthly_burn, bundle.runway_months)
        return self.normalize(dict(self.points))

    @staticmethod
    def normalize(raw_points: Dict[str, float]) -> OutcomeDistribution:
        total = sum(raw_points.get(label, 0.0) for label in OUTCOME_PRIORITY)
        raw = {label: raw_points.get(label, 0.0) for label in OUTCOME_PRIORITY}
        if total <= 0:
            return OutcomeDistribution(
                percentages={label: 0 for label in OUTCOME_PRIORITY},
                raw_points=raw,
                total_raw_points=0.0,
                primary_outcome=OUTCOME_STABLE,
                confidence=CONFIDENCE_LOW,
            )

        percentages = largest_remainder_percentages(raw, OUTCOME_PRIORITY)
        primary = OUTCOME_PRIORITY[0]
        for label in OUTCOME_PRIORITY[1:]:
            if percentages[label] > percentages[primary]:
                primary = label

        if total >= HIGH_CONFIDENCE_POINTS:
            confidence = CONFIDENCE_HIGH
        elif total >= MEDIUM_CONFIDENCE_POINTS:
            confidence = CONFIDENCE_MEDIUM
        else:
            confidence = CONFIDENCE_LOW

        return OutcomeDistribution(
            percentages=percentages,
            raw_points=raw,
            total_raw_points=total,
            primary_outcome=primary,
            confidence=confidence,
        )


def format_outcome_summary(outcome: OutcomeDistribution) -> str:
    dilution = outcome.percentage(OUTCOME_DILUTION)
    restructuring = outcome.percentage(OUTCOME_RESTRUCTURING)
    bankruptcy = outcome.percentage(OUTCOME_BANKRUPTCY)
    primary = outcome.primary_outcome

    if primary == OUTCOME_BANKRUPTCY and bankruptcy >= 40:
        return "High probability of insolvency proceedings. Math favors failure without immediate intervention."
    if primary == OUTCOME_DILUTION and dilution >= 40:
        return "Base case: emergency dilution incoming. Expect ATM, offering, or PIPE to buy time."
    if primary == OUTCOME_RESTRUCTURING and restructuring >= 40:
        return "Debt restructuring likely. Watch for reverse split, debt-for-equity swap, or covenant breach."
    if bankruptcy >= 30 and dilution >= 30:
        return "Dual risk: dilution attempt likely, but bankruptcy still on the table if it fails."
    return "Multiple distress signals present. Outcome depends on management's next move."
