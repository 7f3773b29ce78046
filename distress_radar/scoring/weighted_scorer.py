import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from distress_radar.core.types import FactorScore, MetricBundle, ScoreResult

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6
CONTRIBUTION_DECIMALS = 6

StepFn = Callable[[Any], float]


@dataclass(frozen=True)
class Factor:
    """One row of an engine's factor table.

    The extractor pulls the input from a MetricBundle (None when unknown);
    the step function maps a known input to a fraction in [0, 1].
    """
    name: str
    extractor: Callable[[MetricBundle], Any]
    step_fn: StepFn
    weight: float


# ═══════════════════════════════════════════════════════════════════════════════
# STEP HELPERS
# ═══════════════════════════════════════════════════════════════════════════════
# Each helper takes (threshold, points) pairs ordered from the most to the least
# severe band and returns points / out_of for the first band that matches.
# out_of defaults to 1.0 so fractional tables can be written directly.
# ═══════════════════════════════════════════════════════════════════════════════

def _first_match(value: float, steps: Sequence[Tuple[float, float]], test: Callable[[float, float], bool],
                 out_of: float) -> float:
    for threshold, points in steps:
        if test(value, threshold):
            return points / out_of
    return 0.0


def at_most(steps: Sequence[Tuple[float, float]], out_of: float = 1.0) -> StepFn:
    return lambda v: _first_match(v, steps, lambda x, t: x <= t, out_of)


def below(steps: Sequence[Tuple[float, float]], out_of: float = 1.0) -> StepFn:
    return lambda v: _first_match(v, steps, lambda x, t: x < t, out_of)


def at_least(steps: Sequence[Tuple[float, float]], out_of: float = 1.0) -> StepFn:
    return lambda v: _first_match(v, steps, lambda x, t: x >= t, out_of)


def above(steps: Sequence[Tuple[float, float]], out_of: float = 1.0) -> StepFn:
    return lambda v: _first_match(v, steps, lambda x, t: x > t, out_of)


def bands(ranges: Sequence[Tuple[float, float, float]], out_of: float = 1.0) -> StepFn:
    """Sweet-spot step: first inclusive (low, high, points) range containing the value."""
    def step(v: float) -> float:
        for low, high, points in ranges:
            if low <= v <= high:
                return points / out_of
        return 0.0
    return step


def flag(points: float = 1.0, out_of: float = 1.0) -> StepFn:
    return lambda v: points / out_of if v else 0.0


def with_floor(step: StepFn, floor: float) -> StepFn:
    """Known inputs that miss every band still earn the floor fraction."""
    return lambda v: step(v) or floor


def metric(name: str) -> Callable[[MetricBundle], Any]:
    """Extractor reading a single MetricBundle field."""
    return lambda bundle: getattr(bundle, name, None)


def merge_weights(defaults: Dict[str, float], overrides: Optional[Dict[str, float]]) -> Dict[str, float]:
    """Overlay a partial override table; unknown factor names are rejected."""
    merged = dict(defaults)
    for name, weight in (overrides or {}).items():
        if name not in merged:
            raise ValueError(f"Unknown factor '{name}' in weight override (known: {sorted(merged)})")
        merged[name] = float(weight)
    return merged


class WeightedFactorScorer:
    """Reduces a factor table over a MetricBundle into a ScoreResult.

    total = sum(raw_i * weight_i), clamped to [0, scale]. Unknown inputs and
    step-function failures contribute 0 without skipping other factors.
    """

    def __init__(self, engine: str, factors: List[Factor], scale: float = 100.0,
                 weight_overrides: Optional[Dict[str, float]] = None):
        if weight_overrides:
            weights = merge_weights({f.name: f.weight for f in factors}, weight_overrides)
            factors = [replace(f, weight=weights[f.name]) for f in factors]
        self.engine = engine
        self.factors = list(factors)
        self.scale = float(scale)
        self._validate()

    def _validate(self) -> None:
        names = [f.name for f in self.factors]
        if len(names) != len(set(names)):
            raise ValueError(f"{self.engine}: duplicate factor names {names}")
        if any(f.weight < 0 for f in self.factors):
            raise ValueError(f"{self.engine}: factor weights must be >= 0")
        total = sum(f.weight for f in self.factors)
        if abs(total - self.scale) > WEIGHT_TOLERANCE:
            raise ValueError(f"{self.engine}: factor weights sum to {total}, expected {self.scale}")

    @property
    def weights(self) -> Dict[str, float]:
        return {f.name: f.weight for f in self.factors}

    def _score_factor(self, factor: Factor, bundle: MetricBundle) -> FactorScore:
        value = None
        raw = 0.0
        try:
            value = factor.extractor(bundle)
            if value is not None:
                raw = min(1.0, max(0.0, float(factor.step_fn(value))))
        except (TypeError, ValueError, ZeroDivisionError) as e:
            logger.debug("Factor %s failed: %s", factor.name, e, extra={'symbol': bundle.symbol})
            raw = 0.0
        contribution = round(raw * factor.weight, CONTRIBUTION_DECIMALS)
        return FactorScore(factor.name, value, raw, factor.weight, contribution)

    def score(self, bundle: MetricBundle) -> ScoreResult:
        breakdown = [self._score_factor(f, bundle) for f in self.factors]
        total = sum(b.contribution for b in breakdown)
        total = round(min(self.scale, max(0.0, total)), CONTRIBUTION_DECIMALS)
        logger.debug("%s score", self.engine, extra={'symbol': bundle.symbol, 'score': total})
        return ScoreResult(engine=self.engine, total_score=total, scale=self.scale, breakdown=breakdown)
