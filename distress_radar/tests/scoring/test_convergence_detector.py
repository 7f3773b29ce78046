"""Tests for ConvergenceDetector."""
from dataclasses import replace

import pytest

from distress_radar.core.types import Criterion, CriteriaSet, OfferingActivity
from distress_radar.scoring.convergence_detector import ConvergenceDetector
from distress_radar.scoring.distress_assessor import DistressAssessor


def _criteria(mechanism=True, risk=True, attention=True, scores=(20.0, 60.0, 70.0)):
    return CriteriaSet(
        mechanism_active=Criterion('mechanism_active', mechanism, scores[0], 'mechanism'),
        risk_above_threshold=Criterion('risk_above_threshold', risk, scores[1], 'risk'),
        attention_above_threshold=Criterion('attention_above_threshold', attention, scores[2], 'attention'),
    )


class TestConvergenceDetector:

    def test_all_criteria_converge(self):
        detector = ConvergenceDetector()
        criteria = detector.build_criteria('ABC', OfferingActivity(True, 2), risk_score=60, index_value=70)
        result = detector.evaluate('ABC', criteria)

        assert result.is_converged
        assert result.pass_count == 3
        assert result.intensity == 50

    def test_near_miss_names_failing_criterion(self):
        result = ConvergenceDetector.evaluate('ABC', _criteria(attention=False))

        assert not result.is_converged
        assert result.pass_count == 2
        assert result.is_near_miss
        assert result.failing == ['attention_above_threshold']
        assert result.intensity is None

    @pytest.mark.parametrize('field', ['mechanism_active', 'risk_above_threshold', 'attention_above_threshold'])
    def test_any_single_failure_blocks_convergence(self, field):
        criteria = _criteria()
        setattr(criteria, field, replace(getattr(criteria, field), passed=False))
        assert not ConvergenceDetector.evaluate('ABC', criteria).is_converged

    def test_two_failures_is_not_near_miss(self):
        result = ConvergenceDetector.evaluate('ABC', _criteria(risk=False, attention=False))
        assert not result.is_near_miss

    def test_intensity_rounds_half_up(self):
        result = ConvergenceDetector.evaluate('ABC', _criteria(scores=(20.0, 53.5, 60.0)))
        assert result.intensity == 45

    def test_active_without_filings_scores_ten(self):
        criteria = ConvergenceDetector().build_criteria('ABC', OfferingActivity(True, 0), 50, 60)
        assert criteria.mechanism_active.passed
        assert criteria.mechanism_active.score == 10

    def test_known_active_override_ignores_filing_count(self):
        detector = ConvergenceDetector(known_active=['AMZE'])
        criteria = detector.build_criteria('AMZE', OfferingActivity(True, 4), 55, 65)
        assert criteria.mechanism_active.score == 10
        assert ConvergenceDetector().build_criteria('AMZE', OfferingActivity(True, 4), 55, 65).mechanism_active.score == 40

    def test_known_active_override(self):
        detector = ConvergenceDetector(known_active=['amze'])
        criteria = detector.build_criteria('AMZE', None, 55, 65)
        assert criteria.mechanism_active.passed
        assert criteria.mechanism_active.score == 10

    def test_no_mechanism(self):
        criteria = ConvergenceDetector().build_criteria('ABC', OfferingActivity(False, 0), 90, 90)
        assert not criteria.mechanism_active.passed

    def test_thresholds_are_inclusive(self):
        criteria = ConvergenceDetector().build_criteria('ABC', OfferingActivity(True, 1), 50, 60)
        assert criteria.risk_above_threshold.passed
        assert criteria.attention_above_threshold.passed

    def test_detect_from_assessment(self, distressed_bundle):
        bundle = replace(distressed_bundle, mechanism_active=True, recent_filing_count=3)
        assessment = DistressAssessor().assess(bundle)
        result = ConvergenceDetector().detect(assessment)

        assert result.is_converged
        expected = (30 + assessment.insolvency.total_score + assessment.index.value) / 3
        assert result.intensity == int(expected + 0.5)
