"""Shared test fixtures for scoring tests."""
import pytest

from distress_radar.core.types import MetricBundle


@pytest.fixture
def make_bundle():
    """Factory for MetricBundles with statements present unless stated otherwise."""
    def _make(symbol: str = 'TEST', has_financial_statements: bool = True, **metrics) -> MetricBundle:
        return MetricBundle(symbol=symbol, has_financial_statements=has_financial_statements, **metrics)
    return _make


@pytest.fixture
def distressed_bundle(make_bundle):
    """Every insolvency factor at its worst band."""
    return make_bundle(
        symbol='DIST',
        cash=7_500_000,
        total_debt=45_000_000,
        monthly_burn=5_000_000,
        runway_months=1.5,
        debt_to_cash=6.0,
        cash_to_debt=0.1667,
        interest_coverage=-0.5,
        revenue_change_pct=-35.0,
        negative_income_quarters=4,
        ocf_negative_quarters=4,
        ocf_worsening=True,
        altman_z=0.8,
        insider_buy_value=0.0,
        insider_sell_value=2_000_000,
        insider_net_value=-2_000_000,
        share_growth_pct=60.0,
        avg_volume=2_000_000,
        market_cap=150_000_000,
        volume_ratio=2.5,
        news_count=5,
        has_options=True,
        pullback_pct=35.0,
        peak_gain_pct=120.0,
        days_since_event=2,
    )


@pytest.fixture
def healthy_bundle(make_bundle):
    return make_bundle(
        symbol='HLTH',
        cash=500_000_000,
        total_debt=100_000_000,
        monthly_burn=0.0,
        runway_months=24.0,
        debt_to_cash=0.2,
        cash_to_debt=5.0,
        interest_coverage=10.0,
        revenue_change_pct=15.0,
        negative_income_quarters=0,
        ocf_negative_quarters=0,
        ocf_worsening=False,
        altman_z=4.2,
        share_growth_pct=1.0,
        avg_volume=40_000,
        market_cap=8_000_000,
        news_count=0,
        has_options=False,
    )


@pytest.fixture
def parabolic_bundle(make_bundle):
    """Parabolic runner that has just printed a red candle into a large offering."""
    return make_bundle(
        symbol='PUMP',
        gain_7d_pct=400.0,
        last_candle_red=True,
        green_streak=4,
        volume_fade_ratio=0.4,
        monthly_burn=1_000_000,
        runway_months=1.5,
        offering_impact_ratio=0.3,
        float_ratio=0.15,
    )
