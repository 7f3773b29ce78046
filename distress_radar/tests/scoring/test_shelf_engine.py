"""Tests for ShelfRiskEngine."""
import pytest

from distress_radar.scoring.shelf_engine import ShelfRiskEngine


class TestShelfRiskEngine:
    """Test suite for shelf dilution risk scoring."""

    def test_distressed_amendment(self, make_bundle, distressed_bundle):
        bundle = make_bundle(**{**distressed_bundle.to_dict(), 'event_form': 'S-3/A'})
        result = ShelfRiskEngine().score(bundle)

        assert result.contribution_of('runway') == pytest.approx(25)
        assert result.contribution_of('debt_load') == pytest.approx(15)
        assert result.contribution_of('filing_recency') == pytest.approx(20)
        assert result.contribution_of('market_cap') == pytest.approx(12)
        assert result.contribution_of('form_type') == pytest.approx(10)
        assert result.contribution_of('monthly_burn') == pytest.approx(5)
        assert result.total_score == 87

    def test_healthy_filer_keeps_floors(self, healthy_bundle):
        result = ShelfRiskEngine().score(healthy_bundle)

        # Capped runway still earns the floor; a non-burner earns nothing for burn
        assert result.contribution_of('runway') == pytest.approx(5)
        assert result.contribution_of('monthly_burn') == 0
        assert result.contribution_of('market_cap') == pytest.approx(15)
        assert result.total_score == 20

    def test_form_ordering(self, make_bundle):
        engine = ShelfRiskEngine()
        points = {form: engine.score(make_bundle(event_form=form)).contribution_of('form_type')
                  for form in ('S-1/A', 'S-3', 'S-1', '424B5', 'S-8')}
        assert points == pytest.approx({'S-1/A': 10, 'S-3': 8, 'S-1': 8, '424B5': 7, 'S-8': 5})

    def test_unknown_inputs_contribute_nothing(self, make_bundle):
        result = ShelfRiskEngine().score(make_bundle(has_financial_statements=False))
        assert result.total_score == 0

    def test_stale_filing_and_large_cap_floors(self, make_bundle):
        result = ShelfRiskEngine().score(make_bundle(days_since_event=30, market_cap=5_000_000_000))
        assert result.contribution_of('filing_recency') == pytest.approx(5)
        assert result.contribution_of('market_cap') == pytest.approx(2)

    def test_weight_override_must_sum_to_scale(self):
        with pytest.raises(ValueError):
            ShelfRiskEngine({'runway': 50})
