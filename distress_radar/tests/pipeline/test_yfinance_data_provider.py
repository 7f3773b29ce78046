"""Tests for YFinanceDataProvider."""
import asyncio
from datetime import date
from unittest.mock import MagicMock, Mock, PropertyMock

import pandas as pd
import pytest

from distress_radar.services.yfinance_data_provider import YFinanceDataProvider


@pytest.fixture
def mock_ticker(distressed_statements, price_history):
    """Mock yfinance Ticker for testing."""
    ticker = MagicMock()
    ticker.info = {
        'currentPrice': 2.0,
        'marketCap': 150_000_000,
        'volume': 3_000_000,
        'averageVolume': 1_000_000,
        'exchange': 'NMS',
        'longName': 'Distressed Corp',
        'floatShares': 30_000_000,
        'sharesOutstanding': 150_000_000,
    }
    ticker.get_balance_sheet.return_value = distressed_statements['balance_sheet']
    ticker.get_cashflow.return_value = distressed_statements['cashflow']
    ticker.get_income_stmt.return_value = distressed_statements['income_stmt']
    ticker.insider_transactions = pd.DataFrame([
        {'Shares': 1000, 'Value': 2500.0, 'Text': 'Sale at price 2.50 per share.', 'Start Date': '2025-01-02'},
    ])
    ticker.history.return_value = price_history
    ticker.get_news.return_value = [
        {'content': {'pubDate': '2025-01-07T10:00:00Z'}},
        {'content': {'pubDate': '2024-11-01T10:00:00Z'}},
    ]
    ticker.options = ('2025-01-17', '2025-02-21')
    return ticker


@pytest.fixture
def provider(mock_ticker):
    screen = Mock(side_effect=lambda query: {
        'day_losers': {'quotes': [{'symbol': 'AAA', 'longName': 'Alpha Inc', 'exchange': 'NMS', 'marketCap': 1}]},
        'most_actives': {'quotes': [{'symbol': 'BBB', 'shortName': 'Beta'}, {'longName': 'no symbol'}]},
        'day_gainers': {},
    }[query])
    return YFinanceDataProvider(ticker_factory=lambda symbol: mock_ticker, screen_fn=screen,
                                today=lambda: date(2025, 1, 8))


class TestYFinanceDataProvider:
    """Test suite for YFinanceDataProvider."""

    def test_fetch_quote(self, provider):
        quote = asyncio.run(provider.fetch_quote('dist'))
        assert quote.symbol == 'DIST'
        assert quote.price == 2.0
        assert quote.avg_volume == 1_000_000
        assert quote.company_name == 'Distressed Corp'

    def test_missing_info_gives_no_quote(self, mock_ticker):
        type(mock_ticker).info = PropertyMock(side_effect=RuntimeError('rate limited'))
        provider = YFinanceDataProvider(ticker_factory=lambda s: mock_ticker, screen_fn=Mock())
        assert asyncio.run(provider.fetch_quote('DIST')) is None

    def test_fetch_fundamentals(self, provider, mock_ticker):
        fundamentals = asyncio.run(provider.fetch_fundamentals('DIST'))

        assert fundamentals.has_statements()
        mock_ticker.get_balance_sheet.assert_called_with(freq='quarterly')
        assert fundamentals.shares_float.float_ratio == pytest.approx(0.2)
        assert fundamentals.insider_trades[0].price == pytest.approx(2.5)
        assert fundamentals.altman_z_score is None

    def test_statement_failure_degrades_to_empty(self, provider, mock_ticker):
        mock_ticker.get_cashflow.side_effect = RuntimeError('boom')
        fundamentals = asyncio.run(provider.fetch_fundamentals('DIST'))
        assert fundamentals.cashflow.empty
        assert not fundamentals.has_statements()

    def test_fetch_price_series(self, provider, mock_ticker):
        frame = asyncio.run(provider.fetch_price_series('DIST', 5))
        mock_ticker.history.assert_called_with(period='10d')
        assert len(frame) == 5
        assert frame.index[-1] == pd.Timestamp('2025-01-10')

    def test_fetch_attention_inputs(self, provider):
        attention = asyncio.run(provider.fetch_attention_inputs('DIST'))
        assert attention.news_count == 1
        assert attention.has_options is True
        assert attention.market_cap == 150_000_000

    def test_offering_activity_is_inactive(self, provider):
        activity = asyncio.run(provider.fetch_offering_activity('DIST'))
        assert activity.has_active_mechanism is False
        assert activity.source == 'yfinance'

    def test_no_market_wide_insider_feed(self, provider):
        assert asyncio.run(provider.fetch_latest_insider_trades()) == []

    def test_fetch_universe(self, provider):
        rows = asyncio.run(provider.fetch_universe())
        assert [(r['symbol'], r['source'], r['name']) for r in rows] == [
            ('AAA', 'loser', 'Alpha Inc'), ('BBB', 'active', 'Beta'),
        ]

    def test_ticker_cache(self, mock_ticker):
        factory = Mock(return_value=mock_ticker)
        provider = YFinanceDataProvider(ticker_factory=factory, screen_fn=Mock())
        provider.stock('dist')
        provider.stock('DIST')
        assert factory.call_count == 1

        provider.clear_cache()
        provider.stock('DIST')
        assert factory.call_count == 2
