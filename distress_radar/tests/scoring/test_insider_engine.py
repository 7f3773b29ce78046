"""Tests for InsiderDisconnectEngine."""
import pytest

from distress_radar.scoring.insider_engine import InsiderDisconnectEngine


@pytest.fixture
def dumping_bundle(make_bundle):
    """Three senior insiders unloading 6% of the company into a 60% rally."""
    return make_bundle(
        symbol='DUMP',
        insider_value_sold=20_000_000,
        insider_pct_market_cap_sold=6.0,
        price_change_30d_pct=60.0,
        ceo_selling=True,
        cfo_selling=True,
        director_selling=True,
        insider_seller_count=3,
        insider_sale_count=5,
        insider_cluster_sale=True,
        days_since_insider_sale=1,
    )


class TestInsiderDisconnectEngine:
    """Test suite for insider disconnect scoring and qualification."""

    def test_every_factor_at_top_band(self, dumping_bundle):
        result = InsiderDisconnectEngine().score(dumping_bundle)

        assert result.contribution_of('seniority') == pytest.approx(20)
        assert result.contribution_of('cluster') == pytest.approx(15)
        assert result.total_score == 100
        assert result.triggered is True

    def test_falling_stock_never_qualifies(self, make_bundle, dumping_bundle):
        bundle = make_bundle(**{**dumping_bundle.to_dict(), 'price_change_30d_pct': -20.0})
        result = InsiderDisconnectEngine().score(bundle)

        assert result.contribution_of('price_disconnect') == 0
        assert result.total_score == 75
        assert result.triggered is False

    def test_unknown_rally_does_not_qualify(self, make_bundle, dumping_bundle):
        bundle = make_bundle(**{**dumping_bundle.to_dict(), 'price_change_30d_pct': None})
        assert InsiderDisconnectEngine().score(bundle).triggered is False

    def test_single_director_sale(self, make_bundle):
        bundle = make_bundle(
            insider_value_sold=150_000,
            insider_pct_market_cap_sold=0.1,
            price_change_30d_pct=20.0,
            ceo_selling=False,
            cfo_selling=False,
            director_selling=True,
            insider_seller_count=1,
            insider_sale_count=1,
            days_since_insider_sale=20,
        )
        result = InsiderDisconnectEngine().score(bundle)

        # impact floor 5 + disconnect 15 + director 3 + recency floor 2 + size floor 1
        assert result.contribution_of('cluster') == 0
        assert result.total_score == 26
        assert result.triggered is False

    def test_repeat_seller_cluster_points(self, make_bundle):
        engine = InsiderDisconnectEngine()
        two_sellers = engine.score(make_bundle(insider_seller_count=2, insider_sale_count=2))
        three_sales = engine.score(make_bundle(insider_seller_count=1, insider_sale_count=3))
        two_sales = engine.score(make_bundle(insider_seller_count=1, insider_sale_count=2))

        assert two_sellers.contribution_of('cluster') == pytest.approx(12)
        assert three_sales.contribution_of('cluster') == pytest.approx(10)
        assert two_sales.contribution_of('cluster') == pytest.approx(5)

    def test_custom_threshold(self, dumping_bundle):
        engine = InsiderDisconnectEngine(min_score=101)
        assert engine.score(dumping_bundle).triggered is False
