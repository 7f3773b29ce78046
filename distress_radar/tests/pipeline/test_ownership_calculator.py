"""Tests for OwnershipCalculator."""
import pytest

from distress_radar.calculators.ownership_calculator import OwnershipCalculator
from distress_radar.core.types import InsiderTrade, ShareFloat


class TestOwnershipCalculator:
    """Test suite for OwnershipCalculator."""

    def test_heavy_selling(self):
        trades = [
            InsiderTrade('S-Sale', shares=1000, price=10.0),
            InsiderTrade('P-Purchase', shares=100, price=10.0),
        ]
        result = OwnershipCalculator(trades).calculate_all()

        assert result['insider_sell_value'] == pytest.approx(10_000)
        assert result['insider_buy_value'] == pytest.approx(1_000)
        assert result['insider_net_value'] == pytest.approx(-9_000)
        assert result['insider_bias'] == 'HEAVY_SELLING'

    def test_unclassified_trades_ignored(self):
        trades = [InsiderTrade('A-Award', shares=5000, price=1.0), InsiderTrade('Stock Gift', shares=10)]
        result = OwnershipCalculator(trades).calculate_all()
        assert result['insider_net_value'] == 0
        assert result['insider_bias'] == 'BALANCED'

    def test_net_buying(self):
        result = OwnershipCalculator([InsiderTrade('Buy', shares=500, price=2.0)]).calculate_all()
        assert result['insider_bias'] == 'NET_BUYING'

    def test_float_ratio(self):
        result = OwnershipCalculator(shares_float=ShareFloat(20_000_000, 100_000_000)).calculate_all()
        assert result['float_ratio'] == pytest.approx(0.2)

    def test_unknown_inputs_produce_nothing(self):
        """No trade list is unknown, not zero flow"""
        result = OwnershipCalculator(None, ShareFloat(1_000, None)).calculate_all()
        assert result == {}
