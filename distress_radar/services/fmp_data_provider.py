import asyncio
import logging
import threading
import time
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from distress_radar.core.config import FmpConfig
from distress_radar.core.types import (
    Quote, RawFundamentals, AttentionInputs, OfferingActivity, InsiderTrade,
    SOURCE_LOSER, SOURCE_ACTIVE, SOURCE_GAINER, SOURCE_SCREENER,
)
from distress_radar.services.market_data_provider import (
    BALANCE_SHEET_FIELDS, CASHFLOW_FIELDS, INCOME_FIELDS,
    first_record, as_float, parse_date, statement_frame, candles_frame,
    insider_trades, share_float, is_offering_filing, count_recent,
)

logger = logging.getLogger(__name__)


class FmpRequestError(RuntimeError):
    """An FMP call failed (transport error, HTTP error or unreadable body)."""


class FmpCallLimitError(FmpRequestError):
    """The per-run call budget is exhausted."""


class FmpDataProvider:
    """MarketDataProvider backed by the FinancialModelingPrep stable API.

    Blocking requests run in worker threads so one candidate's fetches can be
    gathered concurrently. Every call is spaced by delay_between_calls and
    counted against max_calls_per_run.
    """
    STATEMENT_LIMIT = 4
    INSIDER_LIMIT = 50
    NEWS_LIMIT = 20
    NEWS_WINDOW_DAYS = 7
    FILING_SEARCH_LIMIT = 10
    OFFERING_LOOKBACK_DAYS = 730
    SCREENER_LIMIT = 500
    INSIDER_FEED_PAGE_SIZE = 100

    # Heuristic for listed options: sizeable, actively traded names
    OPTIONS_MIN_MARKET_CAP = 100_000_000
    OPTIONS_MIN_AVG_VOLUME = 100_000

    def __init__(self,
                 config: Optional[FmpConfig] = None,
                 session: Optional[requests.Session] = None,
                 filing_window_days: int = 180,
                 screener_params: Optional[Dict[str, Any]] = None,
                 today: Optional[Callable[[], date]] = None):
        self.config = config or FmpConfig()
        self.session = session or self._build_session()
        self.filing_window_days = filing_window_days
        self.screener_params = screener_params or {
            'marketCapMoreThan': 10_000_000,
            'marketCapLowerThan': 10_000_000_000,
            'isActivelyTrading': 'true',
            'limit': self.SCREENER_LIMIT,
        }
        self._today = today or date.today
        self._call_count = 0
        self._lock = threading.Lock()

    @staticmethod
    def _build_session() -> requests.Session:
        s = requests.Session()
        s.headers.update({'Accept': 'application/json'})
        retry = Retry(total=3, backoff_factor=0.5, status_forcelist=(429, 500, 502, 503))
        s.mount('https://', HTTPAdapter(max_retries=retry))
        return s

    @property
    def call_count(self) -> int:
        return self._call_count

    def reset_call_count(self) -> None:
        with self._lock:
            self._call_count = 0

    def _reserve_call(self, endpoint: str) -> int:
        with self._lock:
            if self._call_count >= self.config.max_calls_per_run:
                raise FmpCallLimitError(
                    f"FMP call limit reached ({self.config.max_calls_per_run} per run); refusing {endpoint}")
            self._call_count += 1
            return self._call_count

    def get(self, endpoint: str, **params) -> Any:
        """Blocking GET against the stable API; raises FmpRequestError on failure."""
        call_number = self._reserve_call(endpoint)
        if self.config.delay_between_calls:
            time.sleep(self.config.delay_between_calls)

        url = f"{self.config.base_url}/{endpoint.lstrip('/')}"
        query = {k: v for k, v in params.items() if v is not None}
        query['apikey'] = self.config.api_key
        logger.debug("FMP call", extra={'endpoint': endpoint, 'symbol': params.get('symbol'),
                                        'call_number': call_number})
        try:
            response = self.session.get(url, params=query, timeout=self.config.request_timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FmpRequestError(f"FMP {endpoint} returned HTTP {status}") from e
        except requests.exceptions.RequestException as e:
            raise FmpRequestError(f"FMP {endpoint} request failed: {e}") from e
        except ValueError as e:
            raise FmpRequestError(f"FMP {endpoint} returned invalid JSON") from e

    async def _fetch(self, endpoint: str, **params) -> Any:
        return await asyncio.to_thread(self.get, endpoint, **params)

    async def _fetch_optional(self, endpoint: str, **params) -> Any:
        """Fetch a supplementary endpoint; degrade to None unless the call budget is gone."""
        try:
            return await self._fetch(endpoint, **params)
        except FmpCallLimitError:
            raise
        except FmpRequestError as e:
            logger.warning("Degraded FMP fetch: %s", e, extra={'symbol': params.get('symbol'), 'endpoint': endpoint})
            return None

    # ═══════════════════════════════════════════════════════════════════════════
    # MarketDataProvider
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _to_quote(symbol: str, record: Optional[Dict[str, Any]]) -> Optional[Quote]:
        if not record:
            return None
        return Quote(
            symbol=symbol.upper(),
            price=as_float(record.get('price')),
            market_cap=as_float(record.get('marketCap') or record.get('mktCap')),
            volume=as_float(record.get('volume')),
            avg_volume=as_float(record.get('avgVolume') or record.get('averageVolume')),
            exchange=record.get('exchange') or record.get('exchangeShortName'),
            company_name=record.get('name') or record.get('companyName'),
        )

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = await self._fetch('quote', symbol=symbol)
        return self._to_quote(symbol, first_record(data))

    async def fetch_fundamentals(self, symbol: str) -> Optional[RawFundamentals]:
        limit = self.STATEMENT_LIMIT
        quote, balance, cashflow, income, scores, insiders, floats = await asyncio.gather(
            self._fetch_optional('quote', symbol=symbol),
            self._fetch_optional('balance-sheet-statement', symbol=symbol, period='quarter', limit=limit),
            self._fetch_optional('cash-flow-statement', symbol=symbol, period='quarter', limit=limit),
            self._fetch_optional('income-statement', symbol=symbol, period='quarter', limit=limit),
            self._fetch_optional('financial-scores', symbol=symbol),
            self._fetch_optional('insider-trading', symbol=symbol, limit=self.INSIDER_LIMIT),
            self._fetch_optional('shares-float', symbol=symbol),
        )
        score_record = first_record(scores)
        fundamentals = RawFundamentals(
            symbol=symbol.upper(),
            quote=self._to_quote(symbol, first_record(quote)),
            balance_sheet=statement_frame(balance if isinstance(balance, list) else None, BALANCE_SHEET_FIELDS),
            cashflow=statement_frame(cashflow if isinstance(cashflow, list) else None, CASHFLOW_FIELDS),
            income_stmt=statement_frame(income if isinstance(income, list) else None, INCOME_FIELDS),
            altman_z_score=as_float(score_record.get('altmanZScore')) if score_record else None,
            insider_trades=insider_trades(insiders if isinstance(insiders, list) else None),
            shares_float=share_float(first_record(floats)),
        )
        if not fundamentals.has_statements():
            logger.warning("Partial fundamentals", extra={
                'symbol': symbol,
                'balance_sheet': not fundamentals.balance_sheet.empty,
                'cashflow': not fundamentals.cashflow.empty,
                'income_stmt': not fundamentals.income_stmt.empty,
            })
        return fundamentals

    async def fetch_price_series(self, symbol: str, lookback_days: int) -> pd.DataFrame:
        data = await self._fetch_optional('historical-price-eod/full', symbol=symbol)
        if isinstance(data, dict):
            data = data.get('historical')
        return candles_frame(data if isinstance(data, list) else None, lookback_days)

    async def fetch_attention_inputs(self, symbol: str) -> AttentionInputs:
        quote_data, news = await asyncio.gather(
            self._fetch_optional('quote', symbol=symbol),
            self._fetch_optional('news/stock', symbols=symbol, limit=self.NEWS_LIMIT),
        )
        quote = self._to_quote(symbol, first_record(quote_data))
        avg_volume = None
        market_cap = None
        if quote is not None:
            avg_volume = quote.avg_volume if quote.avg_volume is not None else quote.volume
            market_cap = quote.market_cap

        news_count = None
        if isinstance(news, list):
            dates = [n.get('publishedDate') for n in news if isinstance(n, dict)]
            news_count = count_recent(dates, self.NEWS_WINDOW_DAYS, self._today())

        has_options = None
        if avg_volume is not None and market_cap is not None:
            has_options = market_cap > self.OPTIONS_MIN_MARKET_CAP and avg_volume > self.OPTIONS_MIN_AVG_VOLUME
        return AttentionInputs(avg_volume=avg_volume, market_cap=market_cap,
                               news_count=news_count, has_options=has_options)

    async def fetch_offering_activity(self, symbol: str) -> OfferingActivity:
        filings, profile = await asyncio.gather(
            self._fetch_optional('sec-filings-search/symbol', symbol=symbol, limit=self.FILING_SEARCH_LIMIT),
            self._fetch_optional('profile', symbol=symbol),
        )
        if filings is None:
            return OfferingActivity(has_active_mechanism=False, recent_filing_count=0, source='fmp')
        offerings = [f for f in (filings or []) if isinstance(f, dict) and is_offering_filing(f)]
        recent = count_recent((f.get('filingDate') or f.get('date') for f in offerings),
                              self.filing_window_days, self._today())

        amount = None
        profile_record = first_record(profile)
        cik = profile_record.get('cik') if profile_record else None
        if cik:
            raised = await self._fetch_optional('fundraising', cik=cik)
            amount = self._remaining_offering_amount(raised)

        activity = OfferingActivity(
            has_active_mechanism=bool(offerings),
            recent_filing_count=recent,
            offering_amount=amount,
            source='fmp',
        )
        logger.debug("Offering activity", extra={'symbol': symbol, 'filings': len(offerings), 'recent': recent})
        return activity

    def _remaining_offering_amount(self, records: Any) -> Optional[float]:
        """Sum of unsold offering capacity over the last two years."""
        if not isinstance(records, list):
            return None
        cutoff = self._today() - timedelta(days=self.OFFERING_LOOKBACK_DAYS)
        total = 0.0
        seen = False
        for record in records:
            if not isinstance(record, dict):
                continue
            filed = parse_date(record.get('date') or record.get('filingDate'))
            if filed is None or filed < cutoff:
                continue
            remaining = as_float(record.get('totalAmountRemaining'))
            if remaining is not None:
                total += remaining
                seen = True
        return total if seen else None

    async def fetch_universe(self) -> List[Dict[str, Any]]:
        sources = [
            (SOURCE_LOSER, 'biggest-losers', {}),
            (SOURCE_ACTIVE, 'most-actives', {}),
            (SOURCE_GAINER, 'biggest-gainers', {}),
            (SOURCE_SCREENER, 'company-screener', self.screener_params),
        ]
        results = await asyncio.gather(*(self._fetch_optional(endpoint, **params)
                                          for _, endpoint, params in sources))
        rows: List[Dict[str, Any]] = []
        for (source, endpoint, _), data in zip(sources, results):
            if not isinstance(data, list):
                continue
            for row in data:
                if isinstance(row, dict) and row.get('symbol'):
                    rows.append({**row, 'source': source})
            logger.info("Universe source %s returned %d rows", endpoint, len(data))
        return rows

    async def fetch_latest_insider_trades(self, pages: int = 10) -> List[InsiderTrade]:
        """Market-wide Form 4 feed, newest first; stops at the first empty or failed page."""
        trades: List[InsiderTrade] = []
        for page in range(pages):
            data = await self._fetch_optional('insider-trading/latest', page=page, limit=self.INSIDER_FEED_PAGE_SIZE)
            if not isinstance(data, list) or not data:
                break
            trades.extend(insider_trades(data))
        logger.info("Insider feed returned %d transactions", len(trades))
        return trades
