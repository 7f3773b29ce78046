"""Tests for InsiderSellingCalculator and sale grouping."""
from datetime import date

import pytest

from distress_radar.calculators.insider_selling_calculator import (
    InsiderSellingCalculator, group_sales_by_symbol, is_open_market_sale,
)
from distress_radar.core.types import InsiderTrade

AS_OF = date(2025, 1, 31)


class TestGroupSalesBySymbol:
    """Test suite for filtering the insider feed down to recent sales."""

    def test_keeps_recent_priced_sales(self):
        trades = [
            InsiderTrade('S-Sale', 100, 10.0, '2025-01-20', symbol='ALPH', insider='A'),
            InsiderTrade('F-InKind', 100, 10.0, '2025-01-20', symbol='ALPH', insider='B',
                         acquisition_or_disposition='D'),
            InsiderTrade('P-Purchase', 100, 10.0, '2025-01-20', symbol='ALPH', insider='C'),
            InsiderTrade('G-Gift', 100, 10.0, '2025-01-20', symbol='ALPH', insider='D',
                         acquisition_or_disposition='D'),
            InsiderTrade('S-Sale', 100, 0.0, '2025-01-20', symbol='ALPH', insider='E'),
            InsiderTrade('S-Sale', 100, 10.0, '2024-12-15', symbol='ALPH', insider='F'),
            InsiderTrade('S-Sale', 100, 10.0, '2025-01-25', symbol='BRK.B', insider='G'),
            InsiderTrade('S-Sale', 100, 10.0, '2025-01-25', symbol='BETA', insider='H'),
        ]
        grouped = group_sales_by_symbol(trades, AS_OF, window_days=30)

        assert sorted(grouped) == ['ALPH', 'BETA']
        assert [t.insider for t in grouped['ALPH']] == ['A', 'B']

    def test_gift_is_never_a_sale(self):
        assert not is_open_market_sale(InsiderTrade('G-Gift', 100, 5.0, acquisition_or_disposition='D'))

    def test_undated_trades_dropped(self):
        assert group_sales_by_symbol([InsiderTrade('S-Sale', 1, 1.0, None, symbol='X')], AS_OF) == {}


class TestInsiderSellingCalculator:
    """Test suite for InsiderSellingCalculator."""

    def test_cluster_with_senior_sellers(self):
        sales = [
            InsiderTrade('S-Sale', 50_000, 4.0, '2025-01-29', insider='Jane Roe', role='Chief Executive Officer'),
            InsiderTrade('S-Sale', 25_000, 4.0, '2025-01-22', insider='Jane Roe', role='Chief Executive Officer'),
            InsiderTrade('S-Sale', 10_000, 4.0, '2025-01-10', insider='Sam Poe', role='CFO'),
        ]
        result = InsiderSellingCalculator(sales, market_cap=20_000_000, as_of=AS_OF).calculate_all()

        assert result['insider_value_sold'] == pytest.approx(340_000)
        assert result['insider_pct_market_cap_sold'] == pytest.approx(1.7)
        assert result['insider_seller_count'] == 2
        assert result['insider_sale_count'] == 3
        assert result['ceo_selling'] is True
        assert result['cfo_selling'] is True
        assert result['director_selling'] is False
        assert result['insider_cluster_sale'] is True
        assert result['days_since_insider_sale'] == 2

    def test_single_sale_is_not_a_cluster(self):
        sales = [InsiderTrade('S-Sale', 1_000, 150.0, '2025-01-30', insider='Ann Lee', role='director')]
        result = InsiderSellingCalculator(sales, as_of=AS_OF).calculate_all()

        assert result['insider_cluster_sale'] is False
        assert result['director_selling'] is True
        assert 'insider_pct_market_cap_sold' not in result

    def test_no_sales_produce_nothing(self):
        assert InsiderSellingCalculator(None).calculate_all() == {}
