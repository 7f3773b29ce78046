"""Tests for UniverseProvider, SecAtmFilingSearch and SecShelfFilingSearch."""
import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from distress_radar.core.config import FunnelConfig
from distress_radar.services.universe_provider import (
    UniverseProvider, SecAtmFilingSearch, SecShelfFilingSearch, is_tradable_row, extract_ticker, ATM_FORM,
)

HITS = [
    {'_source': {'display_names': ['Alpha Therapeutics  (ALPH)  (CIK 0001)'], 'file_date': '2025-01-03'}},
    {'_source': {'display_names': ['Alpha Therapeutics  (ALPH)  (CIK 0001)'], 'file_date': '2025-01-06'}},
    {'_source': {'display_names': ['Beta Motors Inc.  (BETA, BETAW)  (CIK 0002)'], 'file_date': '2025-01-06'}},
    {'_source': {'display_names': ['Private Holdings LLC  (CIK 0003)'], 'file_date': '2025-01-05'}},
    {'_source': {'display_names': ['Gamma Corp  (GAMA)  (CIK 0004)'], 'file_date': '2025-01-02'}},
]


class TestUniverseProvider:
    """Test suite for UniverseProvider."""

    def test_merge_dedupes_and_keeps_first_source(self):
        rows = [
            {'symbol': 'abc', 'source': 'loser', 'companyName': 'ABC Corp', 'exchange': 'NASDAQ'},
            {'symbol': 'ABC', 'source': 'active'},
            {'symbol': 'DEF', 'source': 'active', 'name': 'Def Inc'},
        ]
        candidates = UniverseProvider.merge(rows, known=['def', 'zzz'])

        assert [(c.symbol, c.source) for c in candidates] == [('ABC', 'loser'), ('DEF', 'active'), ('ZZZ', 'known')]
        assert candidates[0].company_name == 'ABC Corp'

    def test_filtered_symbol_is_not_readded(self):
        """A symbol dropped as a fund stays dropped even if a later row looks tradable"""
        rows = [
            {'symbol': 'SPY', 'source': 'active', 'name': 'SPDR S&P 500 ETF Trust'},
            {'symbol': 'SPY', 'source': 'screener', 'name': 'SPY'},
        ]
        assert UniverseProvider.merge(rows) == []

    @pytest.mark.parametrize('row,expected', [
        ({'companyName': 'Acme Corp', 'exchange': 'NYSE'}, True),
        ({'companyName': 'Acme Fund', 'exchange': 'NYSE'}, False),
        ({'name': 'iShares Bitcoin ETF'}, False),
        ({'companyName': 'Trustmark Corp', 'exchangeShortName': 'NASDAQ'}, True),
        ({'companyName': 'Acme Corp', 'exchange': 'OTC'}, False),
        ({'companyName': 'Acme Corp'}, True),
    ])
    def test_is_tradable_row(self, row, expected):
        assert is_tradable_row(row) is expected

    def test_fetch(self):
        provider = MagicMock()
        provider.fetch_universe = AsyncMock(return_value=[{'symbol': 'AAA', 'source': 'gainer'}])
        universe = UniverseProvider(provider, FunnelConfig(known_distress=['BBB']))

        candidates = asyncio.run(universe.fetch())
        assert [c.symbol for c in candidates] == ['AAA', 'BBB']


class TestSecAtmFilingSearch:
    """Test suite for SecAtmFilingSearch."""

    @pytest.mark.parametrize('name,ticker', [
        ('Alpha  (ALPH)  (CIK 1)', 'ALPH'),
        ('Beta  (BETA, BETAW)  (CIK 2)', 'BETA'),
        ('Private  (CIK 3)', None),
        (None, None),
    ])
    def test_extract_ticker(self, name, ticker):
        assert extract_ticker(name) == ticker

    def test_to_candidates_keeps_latest_filing(self):
        candidates = SecAtmFilingSearch.to_candidates(HITS)

        assert [(c.symbol, c.event_date) for c in candidates] == [
            ('ALPH', date(2025, 1, 6)), ('BETA', date(2025, 1, 6)), ('GAMA', date(2025, 1, 2)),
        ]
        assert candidates[1].company_name == 'Beta Motors Inc.'
        assert all(c.source == 'sec_filing' for c in candidates)

    def test_search_request(self):
        session = MagicMock()
        session.get.return_value.json.return_value = {'hits': {'hits': HITS}}
        search = SecAtmFilingSearch(session=session, today=lambda: date(2025, 1, 8), pause=0)

        candidates = search.recent_atm_filings(days=7)

        params = session.get.call_args[1]['params']
        assert params['forms'] == ATM_FORM
        assert params['startdt'] == '2025-01-01'
        assert params['enddt'] == '2025-01-08'
        assert len(candidates) == 3

    def test_request_failure_returns_empty(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.Timeout('slow')
        search = SecAtmFilingSearch(session=session, pause=0)
        assert search.recent_atm_filings() == []

    def test_fetch_runs_in_thread(self):
        session = MagicMock()
        session.get.return_value.json.return_value = {'hits': {'hits': []}}
        search = SecAtmFilingSearch(session=session, pause=0)
        assert asyncio.run(search.fetch(3)) == []


def _hit(name, filed, form):
    return {'_source': {'display_names': [name], 'file_date': filed, 'form': form}}


SHELF_HITS = {
    'S-3,S-3/A': [_hit('Alpha Therapeutics  (ALPH)  (CIK 0001)', '2025-01-03', 'S-3')],
    'S-1,S-1/A': [
        _hit('Alpha Therapeutics  (ALPH)  (CIK 0001)', '2025-01-06', 'S-1/A'),
        _hit('Beta Motors Inc.  (BETA)  (CIK 0002)', '2025-01-04', 'S-1'),
    ],
    'S-8': [
        _hit('Beta Motors Inc.  (BETA)  (CIK 0002)', '2025-01-07', 'S-8'),
        _hit('Gamma Corp  (GAMA)  (CIK 0004)', '2025-01-05', None),
    ],
}


class TestSecShelfFilingSearch:
    """Test suite for SecShelfFilingSearch."""

    @pytest.fixture
    def session(self):
        session = MagicMock()

        def respond(url, params, timeout):
            response = MagicMock()
            response.json.return_value = {'hits': {'hits': SHELF_HITS[params['forms']]}}
            return response
        session.get.side_effect = respond
        return session

    def test_merges_registration_searches(self, session):
        search = SecShelfFilingSearch(session=session, today=lambda: date(2025, 1, 8), pause=0)

        candidates = search.recent_shelf_filings(days=7)

        assert [(c.symbol, c.form_type, c.event_date) for c in candidates] == [
            ('ALPH', 'S-1/A', date(2025, 1, 6)),
            ('GAMA', 'S-8', date(2025, 1, 5)),
            ('BETA', 'S-1', date(2025, 1, 4)),
        ]
        assert [c[1]['params']['forms'] for c in session.get.call_args_list] == ['S-3,S-3/A', 'S-1,S-1/A', 'S-8']

    def test_plan_registration_never_displaces_shelf(self, session):
        """A newer S-8 does not replace an S-1 already found for the ticker"""
        search = SecShelfFilingSearch(session=session, today=lambda: date(2025, 1, 8), pause=0)
        beta = next(c for c in search.recent_shelf_filings() if c.symbol == 'BETA')
        assert beta.form_type == 'S-1'

    def test_one_failed_search_keeps_others(self, session):
        def respond(url, params, timeout):
            if params['forms'] == 'S-1,S-1/A':
                raise requests.exceptions.ConnectionError('reset')
            response = MagicMock()
            response.json.return_value = {'hits': {'hits': SHELF_HITS[params['forms']]}}
            return response
        session.get.side_effect = respond
        search = SecShelfFilingSearch(session=session, today=lambda: date(2025, 1, 8), pause=0)

        candidates = search.recent_shelf_filings()

        assert [(c.symbol, c.form_type) for c in candidates] == [('BETA', 'S-8'), ('GAMA', 'S-8'), ('ALPH', 'S-3')]

    def test_fetch_uses_shelf_searches(self, session):
        search = SecShelfFilingSearch(session=session, today=lambda: date(2025, 1, 8), pause=0)
        assert len(asyncio.run(search.fetch(7))) == 3
        assert session.get.call_count == 3

    def test_atm_candidates_carry_form(self):
        assert {c.form_type for c in SecAtmFilingSearch.to_candidates(HITS)} == {ATM_FORM}
