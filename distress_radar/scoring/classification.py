from typing import List, Sequence, Tuple, Iterable

from distress_radar.core.types import Tier, TIER_INSUFFICIENT_DATA


class ThresholdBands:
    """Ordered (lower_bound, label) bands, lowest first.

    Bounds must be strictly increasing. classify() picks the highest bound that
    is still <= score; scores below the first bound fall into the first band.
    Tier.rank is the band index, so rank never decreases as score increases.
    """

    def __init__(self, bands: Sequence[Tuple[float, str]], alert_labels: Iterable[str] = ()):
        if not bands:
            raise ValueError('ThresholdBands needs at least one band')
        bounds = [b for b, _ in bands]
        if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
            raise ValueError(f'band bounds must be strictly increasing: {bounds}')
        labels = [label for _, label in bands]
        alert_labels = set(alert_labels)
        unknown = alert_labels - set(labels)
        if unknown:
            raise ValueError(f'alert labels not in bands: {sorted(unknown)}')
        self.bands: List[Tuple[float, str]] = list(bands)
        self.alert_labels = alert_labels

    @property
    def labels(self) -> List[str]:
        return [label for _, label in self.bands]

    def classify(self, score: float) -> Tier:
        index = 0
        for i in range(len(self.bands) - 1, -1, -1):
            if score >= self.bands[i][0]:
                index = i
                break
        label = self.bands[index][1]
        return Tier(label=label, rank=index, alert_eligible=label in self.alert_labels)


INSOLVENCY_BANDS = ThresholdBands(
    [(0, 'HEALTHY_IGNORE'), (50, 'DISTRESS_WATCHLIST'), (70, 'INSOLVENCY_ALERT')],
    alert_labels=['INSOLVENCY_ALERT'],
)

ATTENTION_BANDS = ThresholdBands(
    [(0, 'LOW_VIRAL'), (45, 'MODERATE_VIRAL'), (70, 'HIGH_VIRAL')],
)

DILUTION_SEVERITY_BANDS = ThresholdBands(
    [(0, 'LOW'), (30, 'MODERATE'), (50, 'ELEVATED'), (70, 'SEVERE')],
    alert_labels=['ELEVATED', 'SEVERE'],
)

COMPOSITE_INDEX_BANDS = ThresholdBands(
    [(0, 'STORE_ONLY'), (60, 'WATCHLIST'), (75, 'PRIME_ALERT')],
    alert_labels=['WATCHLIST', 'PRIME_ALERT'],
)

# Reserved tier for scores that could not be computed; ranks below every band
INSUFFICIENT_DATA_TIER = Tier(label=TIER_INSUFFICIENT_DATA, rank=-1, alert_eligible=False)
