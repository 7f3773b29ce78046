"""Tests for LeaderboardRanker and reason summaries."""
from datetime import date, timedelta

import pytest

from distress_radar.core.types import Candidate, MetricBundle
from distress_radar.orchestration.leaderboard_ranker import (
    LeaderboardRanker, insolvency_reason, dilution_reason, format_date_range, insider_reason, shelf_reason,
)
from distress_radar.services.cooldown_ledger import CooldownLedger, InMemoryCooldownRepository


def _rank(ranker, scores):
    return ranker.rank(
        scores.items(),
        candidate_fn=lambda kv: Candidate(kv[0], 'test'),
        score_fn=lambda kv: kv[1],
        reason_fn=lambda kv: f'{kv[0]} reason',
        metrics_fn=lambda kv: {'score': kv[1]},
    )


class TestReasons:
    """Test suite for reason summaries."""

    def test_insolvency_reason(self):
        metrics = MetricBundle('X', runway_months=2.0, debt_to_cash=6.0, monthly_burn=12_000_000)
        assert insolvency_reason(metrics) == "2.0mo runway · debt 6.0x cash → liquidity tightening"

    def test_insolvency_meaning_follows_strongest_signal(self):
        metrics = MetricBundle('X', runway_months=10.0, debt_to_cash=8.0)
        assert insolvency_reason(metrics) == "debt 8.0x cash · 10.0mo runway → insolvency pressure rising"

    def test_insolvency_fallback(self):
        assert insolvency_reason(MetricBundle('X')) == 'financial distress deepening'

    def test_dilution_reason(self):
        metrics = MetricBundle('X', pullback_pct=35.0, days_since_event=2)
        assert dilution_reason(metrics) == "-35% off peak · ATM filed 2d ago → rally unwinding"

    def test_dilution_fallback(self):
        assert dilution_reason(MetricBundle('X')) == "ATM filed → dilution overhang building"

    def test_at_most_two_metrics(self):
        metrics = MetricBundle('X', runway_months=1.0, pullback_pct=50.0, days_since_event=1, debt_to_cash=9.0)
        assert dilution_reason(metrics).count(' · ') == 1

    def test_shelf_reason(self):
        metrics = MetricBundle('X', runway_months=0.8, debt_to_cash=3.0, market_cap=40_000_000)
        assert shelf_reason(metrics) == "0.8mo runway · debt 3.0x cash → dilution imminent"

    def test_shelf_reason_fills_with_cap_and_age(self):
        metrics = MetricBundle('X', runway_months=24.0, debt_to_cash=0.5, market_cap=45_000_000, days_since_event=2)
        assert shelf_reason(metrics) == "$45M cap · filed 2d ago → early shelf positioning"

    def test_shelf_reason_emergency(self):
        metrics = MetricBundle('X', runway_months=2.0, debt_to_cash=12.0)
        assert shelf_reason(metrics) == "2.0mo runway · debt 12.0x cash → emergency capital needed"

    def test_insider_reason(self):
        metrics = MetricBundle('X', insider_value_sold=3_900_000, ceo_selling=True, cfo_selling=True,
                               price_change_30d_pct=38.0)
        assert insider_reason(metrics) == "$3.9M sold · CEO + CFO · +38% rally → dumping into strength"

    def test_insider_reason_cluster(self):
        metrics = MetricBundle('X', insider_value_sold=175_000, insider_cluster_sale=True,
                               insider_seller_count=3, price_change_30d_pct=12.0)
        assert insider_reason(metrics) == "$175K sold · cluster · +12% rally → coordinated exit"

    def test_insider_reason_quiet(self):
        metrics = MetricBundle('X', insider_value_sold=250_000, insider_seller_count=1, price_change_30d_pct=8.0)
        assert insider_reason(metrics) == "$250K sold · +8% rally → quiet profit-taking"

    def test_date_range(self):
        assert format_date_range(date(2025, 1, 8)) == "1/1–1/8"
        assert format_date_range(date(2025, 3, 2), days=3) == "2/27–3/2"


class TestLeaderboardRanker:
    """Test suite for LeaderboardRanker."""

    def test_orders_and_ranks(self):
        entries, skipped = _rank(LeaderboardRanker(size=10), {'BBB': 50, 'AAA': 50, 'CCC': 80})

        assert [(e.rank, e.symbol) for e in entries] == [(1, 'CCC'), (2, 'AAA'), (3, 'BBB')]
        assert entries[0].reason_summary == 'CCC reason'
        assert entries[0].to_dict()['ticker'] == 'CCC'
        assert skipped == []

    def test_top_k(self):
        entries, _ = _rank(LeaderboardRanker(size=2), {'A': 10, 'B': 20, 'C': 30})
        assert [e.symbol for e in entries] == ['C', 'B']
        assert [e.rank for e in entries] == [1, 2]

    def test_min_score(self):
        entries, _ = _rank(LeaderboardRanker(min_score=40), {'A': 39.9, 'B': 40})
        assert [e.symbol for e in entries] == ['B']

    def test_cooldown_skip(self):
        today = date(2025, 1, 31)
        ledger = CooldownLedger(
            InMemoryCooldownRepository({'A': (today - timedelta(days=3)).isoformat()}), clock=lambda: today)
        entries, skipped = _rank(LeaderboardRanker(ledger=ledger), {'A': 90, 'B': 60})

        assert [(e.rank, e.symbol) for e in entries] == [(1, 'B')]
        assert [s.key for s in skipped] == ['A']

    def test_empty(self):
        assert _rank(LeaderboardRanker(), {}) == ([], [])

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            LeaderboardRanker(size=0)
