import numpy as np
import pandas as pd
from datetime import date, datetime
from typing import Dict, Optional, List, Any

from distress_radar.calculators.calculator_base import CalculatorBase


class PriceActionCalculator(CalculatorBase):
    """Calculates short-horizon price/volume signals from daily candles.

    Expects `history` with Open/High/Low/Close/Volume columns and an
    ascending DatetimeIndex (oldest first).
    """
    GAIN_WINDOW = 7
    MONTH_WINDOW = 22
    FADE_WINDOW = 5
    MAX_GREEN_STREAK = 5
    EVENT_WINDOW_CANDLES = 30
    MIN_EVENT_CANDLES = 7
    MIN_WINDOW_CANDLES = 2

    def __init__(self, history: pd.DataFrame, event_date: Optional[date] = None,
                 as_of: Optional[date] = None):
        """
        Args:
            history: Daily OHLCV DataFrame (ascending)
            event_date: Date of the triggering event (e.g. ATM filing)
            as_of: Reference date for recency metrics (defaults to today)
        """
        if history is None:
            history = pd.DataFrame()
        elif not history.empty:
            history = history.sort_index()
        self.history = history
        self.event_date = event_date
        self.as_of = as_of or date.today()
        self.calculations: Dict[str, Any] = {}

    def calculate_gain_7d(self) -> Optional[float]:
        """Percent change from the close GAIN_WINDOW candles back to the last close."""
        prices = self._require_prices(self.GAIN_WINDOW)
        if prices is None:
            return None
        base = prices.iloc[-self.GAIN_WINDOW]
        if base <= 0:
            return None
        return self._store_result('gain_7d_pct', (prices.iloc[-1] - base) / base * 100)

    def calculate_change_30d(self) -> Optional[float]:
        """Percent change over roughly one trading month (MONTH_WINDOW candles)."""
        prices = self._require_prices(self.MONTH_WINDOW)
        if prices is None:
            return None
        base = prices.iloc[-self.MONTH_WINDOW]
        if base <= 0:
            return None
        return self._store_result('price_change_30d_pct', (prices.iloc[-1] - base) / base * 100)

    def calculate_red_candle(self) -> Optional[bool]:
        """Whether the last candle closed red, plus the green streak before it."""
        candles = self._require_candles(1)
        if candles is None:
            return None
        is_red = bool(candles['Close'].iloc[-1] < candles['Open'].iloc[-1])

        streak = 0
        prior = candles.iloc[:-1]
        for i in range(len(prior) - 1, -1, -1):
            if streak >= self.MAX_GREEN_STREAK:
                break
            if prior['Close'].iloc[i] > prior['Open'].iloc[i]:
                streak += 1
            else:
                break

        self._store_value('green_streak', streak)
        return self._store_value('last_candle_red', is_red)

    def calculate_volume_fade(self) -> Optional[float]:
        """Average volume of the last 5 candles relative to the 5 before."""
        volumes = self._require_volumes(self.FADE_WINDOW * 2)
        if volumes is None:
            return None
        recent = volumes.iloc[-self.FADE_WINDOW:].mean()
        prior = volumes.iloc[-2 * self.FADE_WINDOW:-self.FADE_WINDOW].mean()
        if prior <= 0:
            return None
        return self._store_result('volume_fade_ratio', recent / prior)

    def calculate_event_window(self) -> Optional[float]:
        """Peak gain, current gain and pullback measured from the event-date open."""
        if self.event_date is None:
            return None
        candles = self._require_candles(self.MIN_EVENT_CANDLES)
        if candles is None:
            return None
        candles = candles.iloc[-self.EVENT_WINDOW_CANDLES:]

        index_dates = pd.to_datetime(candles.index)
        if getattr(index_dates, 'tz', None) is not None:
            index_dates = index_dates.tz_localize(None)
        on_or_after = np.flatnonzero(index_dates >= pd.Timestamp(self.event_date))
        start = int(on_or_after[0]) if len(on_or_after) else 0
        window = candles.iloc[start:]
        if len(window) < self.MIN_WINDOW_CANDLES:
            return None

        start_price = window['Open'].iloc[0]
        if start_price <= 0:
            return None
        peak_gain = (window['High'].max() - start_price) / start_price * 100
        current_gain = (window['Close'].iloc[-1] - start_price) / start_price * 100

        self._store_result('peak_gain_pct', peak_gain)
        self._store_result('current_gain_pct', current_gain)
        return self._store_result('pullback_pct', peak_gain - current_gain)

    def calculate_days_since_event(self) -> Optional[int]:
        if self.event_date is None:
            return None
        event = self.event_date.date() if isinstance(self.event_date, datetime) else self.event_date
        return self._store_value('days_since_event', max(0, (self.as_of - event).days))

    def calculate_all(self, metrics: List[str] = None) -> Dict[str, Any]:
        """Calculate all (or selected) metric groups."""
        group_methods = {
            'momentum': lambda: self._collect_new_results([
                self.calculate_gain_7d,
                self.calculate_change_30d,
                self.calculate_red_candle,
                self.calculate_volume_fade,
            ]),
            'event': lambda: self._collect_new_results([
                self.calculate_event_window,
                self.calculate_days_since_event,
            ]),
        }
        groups = metrics or list(group_methods.keys())
        for group in groups:
            if group in group_methods:
                group_methods[group]()
        return dict(self.calculations)
