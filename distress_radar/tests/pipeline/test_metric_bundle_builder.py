"""Tests for MetricBundleBuilder."""
from datetime import date

import pytest

from distress_radar.calculators.metric_bundle_builder import MetricBundleBuilder
from distress_radar.core.types import AttentionInputs, InsiderTrade, OfferingActivity, Quote, RawFundamentals


class TestMetricBundleBuilder:
    """Test suite for MetricBundleBuilder."""

    def test_full_bundle(self, distressed_quote, distressed_fundamentals, price_history):
        bundle = MetricBundleBuilder(as_of=date(2025, 1, 12)).build(
            'DIST',
            quote=distressed_quote,
            fundamentals=distressed_fundamentals,
            price_history=price_history,
            attention=AttentionInputs(avg_volume=5, market_cap=5, news_count=3, has_options=True),
            offerings=OfferingActivity(True, 2, offering_amount=30_000_000),
            event_date=date(2025, 1, 5),
        )

        assert bundle.has_financial_statements
        assert bundle.runway_months == pytest.approx(1.5)
        assert bundle.gain_7d_pct == pytest.approx(400.0)
        assert bundle.days_since_event == 7
        # quote wins over attention inputs
        assert bundle.avg_volume == 1_000_000
        assert bundle.market_cap == 150_000_000
        assert bundle.volume_ratio == pytest.approx(3.0)
        assert bundle.news_count == 3
        assert bundle.mechanism_active is True
        assert bundle.recent_filing_count == 2
        assert bundle.offering_impact_ratio == pytest.approx(0.2)

    def test_offering_impact_ratio(self):
        bundle = MetricBundleBuilder().build(
            'X', quote=Quote('X', market_cap=100_000_000),
            offerings=OfferingActivity(True, 1, offering_amount=30_000_000))
        assert bundle.offering_impact_ratio == pytest.approx(0.3)

    def test_attention_fills_missing_quote_fields(self):
        bundle = MetricBundleBuilder().build(
            'X', attention=AttentionInputs(avg_volume=75_000, market_cap=20_000_000))
        assert bundle.avg_volume == 75_000
        assert bundle.market_cap == 20_000_000
        assert bundle.volume_ratio is None

    def test_unknown_volume_average_gives_neutral_ratio(self):
        bundle = MetricBundleBuilder().build('X', quote=Quote('X', volume=10_000))
        assert bundle.volume_ratio == 1.0

    def test_partial_statements_flagged(self, distressed_statements):
        fundamentals = RawFundamentals('X', balance_sheet=distressed_statements['balance_sheet'])
        bundle = MetricBundleBuilder().build('X', fundamentals=fundamentals)

        assert not bundle.has_financial_statements
        assert bundle.cash == pytest.approx(3_000_000)
        assert bundle.runway_months is None

    def test_quote_taken_from_fundamentals(self, distressed_quote, distressed_statements):
        fundamentals = RawFundamentals('DIST', quote=distressed_quote, **distressed_statements)
        bundle = MetricBundleBuilder().build('DIST', fundamentals=fundamentals)
        assert bundle.price == 2.0

    def test_event_without_prices(self):
        bundle = MetricBundleBuilder(as_of=date(2025, 1, 10)).build('X', event_date=date(2025, 1, 7))
        assert bundle.days_since_event == 3
        assert bundle.pullback_pct is None

    def test_insider_sales_and_form(self):
        sales = [
            InsiderTrade('S-Sale', 10_000, 5.0, '2025-01-06', symbol='X', insider='A', role='CEO'),
            InsiderTrade('S-Sale', 10_000, 5.0, '2025-01-02', symbol='X', insider='B', role='Director'),
        ]
        bundle = MetricBundleBuilder(as_of=date(2025, 1, 8)).build(
            'X', quote=Quote('X', market_cap=10_000_000), insider_sales=sales, event_form='S-3')

        assert bundle.insider_value_sold == pytest.approx(100_000)
        assert bundle.insider_pct_market_cap_sold == pytest.approx(1.0)
        assert bundle.ceo_selling is True
        assert bundle.days_since_insider_sale == 2
        assert bundle.event_form == 'S-3'

    def test_no_insider_sales_leaves_fields_unknown(self):
        bundle = MetricBundleBuilder().build('X', quote=Quote('X', market_cap=10_000_000))
        assert bundle.insider_value_sold is None
        assert bundle.event_form is None
