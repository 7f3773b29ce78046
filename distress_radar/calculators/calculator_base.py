import logging
import numpy as np
import pandas as pd
from typing import Optional, List, Any, Dict

logger = logging.getLogger(__name__)


class CalculatorBase:
    """Base class providing cached candle series and result helpers.

    Price-based subclasses set a `history` DataFrame with 'Open', 'High',
    'Low', 'Close' and 'Volume' columns (ascending index). Statement-based
    subclasses only use the result helpers.
    """

    def _column(self, name: str) -> Optional[pd.Series]:
        cache_name = f"_{name.lower()}_cache"
        cache = getattr(self, cache_name, None)
        if cache is not None:
            return cache

        hist = getattr(self, "history", None)
        if hist is None or name not in hist.columns:
            return None

        series = pd.to_numeric(hist[name], errors='coerce').dropna()
        if series.empty:
            return None

        if isinstance(series.index, pd.DatetimeIndex) and series.index.tz is not None:
            series = series.copy()
            series.index = series.index.tz_localize(None)

        setattr(self, cache_name, series)
        return series

    @property
    def prices(self) -> Optional[pd.Series]:
        """Close price series (cleaned, tz-naive)."""
        return self._column('Close')

    @property
    def opens(self) -> Optional[pd.Series]:
        """Open price series."""
        return self._column('Open')

    @property
    def highs(self) -> Optional[pd.Series]:
        """High price series."""
        return self._column('High')

    @property
    def volumes(self) -> Optional[pd.Series]:
        """Volume series."""
        return self._column('Volume')

    def _require_prices(self, min_len: int) -> Optional[pd.Series]:
        """Prices if length >= min_len, else None."""
        series = self.prices
        if series is None or len(series) < min_len:
            return None
        return series

    def _require_volumes(self, min_len: int) -> Optional[pd.Series]:
        """Volumes if length >= min_len, else None."""
        series = self.volumes
        if series is None or len(series) < min_len:
            return None
        return series

    def _require_candles(self, min_len: int) -> Optional[pd.DataFrame]:
        """Full OHLC rows (no gaps) if at least min_len, else None."""
        hist = getattr(self, "history", None)
        if hist is None or hist.empty:
            return None
        cols = [c for c in ('Open', 'High', 'Low', 'Close') if c in hist.columns]
        if len(cols) < 4:
            return None
        candles = hist[cols].apply(pd.to_numeric, errors='coerce').dropna()
        if len(candles) < min_len:
            return None
        return candles

    def _clean_result(self, value: Any) -> Optional[float]:
        """Clean result (None/NaN/inf -> None)."""
        if value is None or pd.isna(value) or not np.isfinite(value):
            return None
        return float(value)

    def _store_result(self, key: str, value: Any) -> Optional[float]:
        """Store cleaned numeric result in calculations dict."""
        cleaned = self._clean_result(value)
        if cleaned is not None:
            if not hasattr(self, 'calculations'):
                self.calculations = {}
            self.calculations[key] = cleaned
        return cleaned

    def _store_value(self, key: str, value: Any) -> Any:
        """Store a non-numeric result (label, flag, count) unless it is None."""
        if value is not None:
            if not hasattr(self, 'calculations'):
                self.calculations = {}
            self.calculations[key] = value
        return value

    def _collect_new_results(self, callables: List[Any]) -> Dict[str, Any]:
        """Execute callables and return newly-added calculations."""
        if not hasattr(self, 'calculations'):
            self.calculations = {}
        before = set(self.calculations.keys())
        for fn in callables:
            try:
                fn()
            except Exception as e:
                logger.debug("Calculation %s failed: %s", getattr(fn, '__name__', fn), e)
        after = set(self.calculations.keys())
        new_keys = after - before
        return {k: self.calculations[k] for k in new_keys}
