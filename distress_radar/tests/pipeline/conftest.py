"""Shared test fixtures for pipeline tests."""
from datetime import date
from typing import Dict, Optional

import pandas as pd
import pytest

from distress_radar.core.types import (
    Quote, RawFundamentals, AttentionInputs, OfferingActivity,
)

PERIODS = [pd.Timestamp(d) for d in ('2024-12-31', '2024-09-30', '2024-06-30', '2024-03-31')]


@pytest.fixture
def distressed_statements():
    """Quarterly statements (newest first) for a company burning through its last cash."""
    balance_sheet = pd.DataFrame({
        'CashAndCashEquivalents': [3_000_000, 8_000_000, 14_000_000, 20_000_000],
        'TotalDebt': [30_000_000, 28_000_000, 25_000_000, 20_000_000],
    }, index=PERIODS).T
    cashflow = pd.DataFrame({
        'OperatingCashFlow': [-6_000_000, -5_000_000, -4_000_000, -3_000_000],
    }, index=PERIODS).T
    income_stmt = pd.DataFrame({
        'TotalRevenue': [5_000_000, 6_000_000, 8_000_000, 10_000_000],
        'NetIncome': [-7_000_000, -6_000_000, -5_000_000, -4_000_000],
        'EBITDA': [-2_000_000, -1_500_000, -1_000_000, -500_000],
        'InterestExpense': [1_000_000, 900_000, 800_000, 700_000],
        'BasicAverageShares': [150_000_000, 130_000_000, 110_000_000, 100_000_000],
    }, index=PERIODS).T
    return {'balance_sheet': balance_sheet, 'cashflow': cashflow, 'income_stmt': income_stmt}


@pytest.fixture
def price_history():
    """Ten daily candles: flat, a five-day green run, then a red reversal on thin volume."""
    closes = [1, 1, 1, 1, 2, 3, 4, 5, 6, 5]
    opens = [1, 1, 1, 1, 1.5, 2.5, 3.5, 4.5, 5.5, 5.8]
    highs = [max(o, c) for o, c in zip(opens, closes)]
    highs[8] = 6.5
    lows = [min(o, c) for o, c in zip(opens, closes)]
    return pd.DataFrame({
        'Open': [float(v) for v in opens],
        'High': [float(v) for v in highs],
        'Low': [float(v) for v in lows],
        'Close': [float(v) for v in closes],
        'Volume': [1000.0] * 5 + [500.0] * 5,
    }, index=pd.date_range('2025-01-01', periods=10, freq='D', name='Date'))


@pytest.fixture
def distressed_fundamentals(distressed_statements):
    return RawFundamentals(symbol='DIST', **distressed_statements)


class FakeProvider:
    """In-memory MarketDataProvider keyed by symbol.

    Symbols listed in `failing` raise on fetch_quote to exercise the
    funnel's per-candidate failure isolation.
    """

    def __init__(self, quotes: Dict[str, Quote],
                 fundamentals: Optional[Dict[str, RawFundamentals]] = None,
                 history: Optional[pd.DataFrame] = None,
                 attention: Optional[Dict[str, AttentionInputs]] = None,
                 offerings: Optional[Dict[str, OfferingActivity]] = None,
                 universe=None,
                 insider_feed=None,
                 failing=()):
        self.quotes = quotes
        self.fundamentals = fundamentals or {}
        self.history = history if history is not None else pd.DataFrame()
        self.attention = attention or {}
        self.offerings = offerings or {}
        self.universe = universe or []
        self.insider_feed = insider_feed or []
        self.failing = set(failing)
        self.calls = []

    async def fetch_quote(self, symbol):
        self.calls.append(('quote', symbol))
        if symbol in self.failing:
            raise RuntimeError(f'quote endpoint down for {symbol}')
        return self.quotes.get(symbol)

    async def fetch_fundamentals(self, symbol):
        self.calls.append(('fundamentals', symbol))
        return self.fundamentals.get(symbol)

    async def fetch_price_series(self, symbol, lookback_days):
        self.calls.append(('prices', symbol))
        return self.history

    async def fetch_attention_inputs(self, symbol):
        self.calls.append(('attention', symbol))
        return self.attention.get(symbol, AttentionInputs())

    async def fetch_offering_activity(self, symbol):
        self.calls.append(('offerings', symbol))
        return self.offerings.get(symbol, OfferingActivity())

    async def fetch_universe(self):
        return list(self.universe)

    async def fetch_latest_insider_trades(self, pages=10):
        self.calls.append(('insider_feed', pages))
        return list(self.insider_feed)


@pytest.fixture
def distressed_quote():
    return Quote(symbol='DIST', price=2.0, market_cap=150_000_000, volume=3_000_000,
                 avg_volume=1_000_000, exchange='NASDAQ', company_name='Distressed Corp')


@pytest.fixture
def fake_provider(distressed_quote, distressed_fundamentals, price_history):
    """DIST passes every stage, THIN is too small for stage 1, BOOM fails its quote call."""
    return FakeProvider(
        quotes={
            'DIST': distressed_quote,
            'THIN': Quote(symbol='THIN', price=0.5, market_cap=1_000_000, volume=10_000, avg_volume=20_000),
        },
        fundamentals={'DIST': distressed_fundamentals},
        history=price_history,
        attention={'DIST': AttentionInputs(avg_volume=1_000_000, market_cap=150_000_000,
                                           news_count=5, has_options=True)},
        offerings={'DIST': OfferingActivity(True, 2, 30_000_000, source='test')},
        failing={'BOOM'},
    )


@pytest.fixture
def scan_day():
    return date(2025, 1, 8)
