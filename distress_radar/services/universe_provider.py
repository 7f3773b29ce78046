"""
Universe Provider

Builds the base candidate universe for a scan:
    - mover and screener rows from the market data provider, tagged by source
    - the configured known-distress list
    - recent ATM prospectus supplements (424B5) from SEC EDGAR full-text search
    - recent shelf (S-3), resale (S-1) and stock-plan (S-8) registrations
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from distress_radar.core.config import FunnelConfig, EnvConfig
from distress_radar.core.types import Candidate, SOURCE_KNOWN, SOURCE_SEC_FILING
from distress_radar.services.market_data_provider import MarketDataProvider, parse_date

logger = logging.getLogger(__name__)

NON_OPERATING_NAME = re.compile(r'\b(ETF|ETN|Fund|Trust|Index)\b', re.IGNORECASE)
US_EXCHANGES = frozenset({'NASDAQ', 'NYSE', 'AMEX', 'NYSEAMERICAN'})


def is_tradable_row(row: Dict[str, Any]) -> bool:
    """Drop funds/ETFs by name and anything listed outside the major US exchanges."""
    for key in ('companyName', 'name'):
        name = row.get(key)
        if name and NON_OPERATING_NAME.search(str(name)):
            return False
    exchange = row.get('exchange') or row.get('exchangeShortName')
    if exchange and str(exchange).upper() not in US_EXCHANGES:
        return False
    return True


class UniverseProvider:

    def __init__(self, provider: MarketDataProvider, config: Optional[FunnelConfig] = None):
        self.provider = provider
        self.config = config or FunnelConfig()

    @staticmethod
    def merge(rows: Iterable[Dict[str, Any]], known: Iterable[str] = ()) -> List[Candidate]:
        """Dedupe by symbol keeping the first source seen, then append unseen known names."""
        seen = set()
        candidates: List[Candidate] = []
        for row in rows:
            symbol = str(row.get('symbol') or '').strip().upper()
            if not symbol or symbol in seen:
                continue
            seen.add(symbol)
            if not is_tradable_row(row):
                continue
            candidates.append(Candidate(
                symbol=symbol,
                source=row.get('source', 'unknown'),
                company_name=row.get('companyName') or row.get('name') or symbol,
            ))
        for symbol in known:
            symbol = symbol.strip().upper()
            if symbol and symbol not in seen:
                seen.add(symbol)
                candidates.append(Candidate(symbol=symbol, source=SOURCE_KNOWN, company_name=symbol))
        return candidates

    async def fetch(self) -> List[Candidate]:
        rows = await self.provider.fetch_universe()
        candidates = self.merge(rows, self.config.known_distress or [])
        logger.info("Base universe built", extra={'rows': len(rows), 'candidates': len(candidates)})
        return candidates


# ═══════════════════════════════════════════════════════════════════════════════
# SEC EDGAR ATM FILINGS
# ═══════════════════════════════════════════════════════════════════════════════

EFTS_URL = "https://efts.sec.gov/LATEST/search-index"
ATM_QUERY = '"at-the-market" OR "ATM offering" OR "equity distribution agreement"'
ATM_FORM = "424B5"
DEFAULT_USER_AGENT = "distress-radar/0.1 (research@example.com)"
TICKER_PATTERN = re.compile(r'\(([A-Z]{1,5})[,)]')


def extract_ticker(display_name: Optional[str]) -> Optional[str]:
    """'Company Name  (TICK, TICK2)  (CIK ...)' -> 'TICK'"""
    if not display_name:
        return None
    match = TICKER_PATTERN.search(display_name)
    return match.group(1) if match else None


class SecAtmFilingSearch:
    """Finds companies that recently filed an ATM prospectus supplement."""
    MAX_RESULTS = 200
    REQUEST_TIMEOUT = 15
    PAUSE = 0.35

    def __init__(self, session: Optional[requests.Session] = None,
                 user_agent: Optional[str] = None,
                 today: Optional[Callable[[], date]] = None,
                 pause: Optional[float] = None):
        self.user_agent = user_agent or EnvConfig.get('SEC_USER_AGENT', default=DEFAULT_USER_AGENT)
        self.session = session or self._build_session(self.user_agent)
        self._today = today or date.today
        self.pause = self.PAUSE if pause is None else pause

    @staticmethod
    def _build_session(user_agent: str) -> requests.Session:
        s = requests.Session()
        s.headers.update({"User-Agent": user_agent})
        retry = Retry(total=3, backoff_factor=0.5, status_forcelist=(429, 500, 502, 503))
        s.mount("https://", HTTPAdapter(max_retries=retry))
        return s

    def search_hits(self, start_date: date, end_date: date,
                    query: str = ATM_QUERY, forms: str = ATM_FORM) -> List[Dict[str, Any]]:
        params = {
            "q": query,
            "forms": forms,
            "dateRange": "custom",
            "startdt": start_date.isoformat(),
            "enddt": end_date.isoformat(),
            "size": self.MAX_RESULTS,
        }
        if self.pause:
            time.sleep(self.pause)
        resp = self.session.get(EFTS_URL, params=params, timeout=self.REQUEST_TIMEOUT)
        resp.raise_for_status()
        return resp.json().get("hits", {}).get("hits", [])

    @staticmethod
    def to_candidates(hits: Iterable[Dict[str, Any]], default_form: str = ATM_FORM) -> List[Candidate]:
        """Latest filing per ticker, most recent first."""
        latest: Dict[str, Candidate] = {}
        for hit in hits:
            src = hit.get("_source", {})
            names = src.get("display_names") or []
            display_name = names[0] if names else None
            ticker = extract_ticker(display_name)
            filed = parse_date(src.get("file_date"))
            if not ticker or filed is None:
                continue
            existing = latest.get(ticker)
            if existing is None or filed > existing.event_date:
                latest[ticker] = Candidate(
                    symbol=ticker,
                    source=SOURCE_SEC_FILING,
                    company_name=display_name.split('  (')[0].strip() or ticker,
                    event_date=filed,
                    form_type=src.get("form") or default_form,
                )
        return sorted(latest.values(), key=lambda c: (-c.event_date.toordinal(), c.symbol))

    def recent_atm_filings(self, days: int = 7) -> List[Candidate]:
        end = self._today()
        start = end - timedelta(days=days)
        try:
            hits = self.search_hits(start, end)
        except requests.RequestException as e:
            logger.warning("EFTS request failed: %s", e)
            return []
        except ValueError as e:
            logger.warning("EFTS returned invalid JSON: %s", e)
            return []
        candidates = self.to_candidates(hits)
        logger.info("ATM filings found", extra={'hits': len(hits), 'tickers': len(candidates),
                                                 'start': start.isoformat(), 'end': end.isoformat()})
        return candidates

    async def fetch(self, days: int = 7) -> List[Candidate]:
        return await asyncio.to_thread(self.recent_atm_filings, days)


# ═══════════════════════════════════════════════════════════════════════════════
# SEC EDGAR SHELF REGISTRATIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ShelfSearch:
    query: str
    forms: str
    default_form: str
    # Stock-plan registrations never displace a shelf or resale filing
    fill_only: bool = False


SHELF_SEARCHES = (
    ShelfSearch('"shelf registration" OR "securities registered"', 'S-3,S-3/A', 'S-3'),
    ShelfSearch('"securities registered" OR "offering price"', 'S-1,S-1/A', 'S-1'),
    ShelfSearch('"employee stock" OR "equity incentive" OR "compensation plan"', 'S-8', 'S-8', fill_only=True),
)


class SecShelfFilingSearch(SecAtmFilingSearch):
    """Finds companies that recently registered securities they can sell later."""

    def __init__(self, *args, searches=SHELF_SEARCHES, **kwargs):
        super().__init__(*args, **kwargs)
        self.searches = tuple(searches)

    @staticmethod
    def merge(batches: Iterable[Tuple[ShelfSearch, List[Candidate]]]) -> List[Candidate]:
        """Newest filing per ticker across searches; fill-only searches just add unseen tickers."""
        merged: Dict[str, Candidate] = {}
        for search, candidates in batches:
            for candidate in candidates:
                existing = merged.get(candidate.symbol)
                if existing is None:
                    merged[candidate.symbol] = candidate
                elif not search.fill_only and candidate.event_date > existing.event_date:
                    merged[candidate.symbol] = candidate
        return sorted(merged.values(), key=lambda c: (-c.event_date.toordinal(), c.symbol))

    def recent_shelf_filings(self, days: int = 7) -> List[Candidate]:
        end = self._today()
        start = end - timedelta(days=days)
        batches = []
        for search in self.searches:
            try:
                hits = self.search_hits(start, end, query=search.query, forms=search.forms)
            except requests.RequestException as e:
                logger.warning("EFTS %s search failed: %s", search.forms, e)
                continue
            except ValueError as e:
                logger.warning("EFTS %s search returned invalid JSON: %s", search.forms, e)
                continue
            batches.append((search, self.to_candidates(hits, default_form=search.default_form)))
            logger.debug("Shelf search", extra={'forms': search.forms, 'hits': len(hits)})
        candidates = self.merge(batches)
        logger.info("Shelf filings found", extra={'tickers': len(candidates),
                                                   'start': start.isoformat(), 'end': end.isoformat()})
        return candidates

    async def fetch(self, days: int = 7) -> List[Candidate]:
        return await asyncio.to_thread(self.recent_shelf_filings, days)
