import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import yfinance as yf

from distress_radar.core.types import (
    Quote, RawFundamentals, AttentionInputs, OfferingActivity, InsiderTrade, ShareFloat,
    SOURCE_LOSER, SOURCE_ACTIVE, SOURCE_GAINER,
)
from distress_radar.services.market_data_provider import OHLCV_COLUMNS, as_float, count_recent

logger = logging.getLogger(__name__)


class YFinanceDataProvider:
    """MarketDataProvider backed by yfinance.

    yfinance has no offering data, so offering activity is always reported as
    inactive, and it has no market-wide insider feed. ticker_factory and screen_fn are injectable for testing.
    """
    DEFAULT_FINANCIAL_FREQ: str = "quarterly"
    NEWS_COUNT: int = 20
    NEWS_WINDOW_DAYS: int = 7
    SCREEN_QUERIES: Dict[str, str] = {
        SOURCE_LOSER: 'day_losers',
        SOURCE_ACTIVE: 'most_actives',
        SOURCE_GAINER: 'day_gainers',
    }

    def __init__(self,
                 ticker_factory: Optional[Callable[[str], Any]] = None,
                 screen_fn: Optional[Callable[..., Any]] = None,
                 financial_freq: Optional[str] = None,
                 today: Optional[Callable[[], date]] = None):
        self._ticker_factory: Callable[[str], Any] = ticker_factory or (lambda t: yf.Ticker(t))
        self._screen_fn = screen_fn or yf.screen
        self.financial_freq = financial_freq or self.DEFAULT_FINANCIAL_FREQ
        self._today = today or date.today
        self._stocks: Dict[str, Any] = {}

    def stock(self, symbol: str) -> Any:
        """Lazy-load and cache one ticker object per symbol."""
        symbol = symbol.upper()
        if symbol not in self._stocks:
            self._stocks[symbol] = self._ticker_factory(symbol)
        return self._stocks[symbol]

    def _info(self, symbol: str) -> Dict[str, Any]:
        try:
            return self.stock(symbol).info or {}
        except Exception as e:
            logger.warning("Could not fetch info for %s: %s", symbol, e, extra={'symbol': symbol})
            return {}

    def _statement(self, symbol: str, getter: str) -> pd.DataFrame:
        try:
            frame = getattr(self.stock(symbol), getter)(freq=self.financial_freq)
        except Exception as e:
            logger.warning("Could not fetch %s for %s: %s", getter, symbol, e, extra={'symbol': symbol})
            return pd.DataFrame()
        return frame if isinstance(frame, pd.DataFrame) else pd.DataFrame()

    def _insider_trades(self, symbol: str) -> Optional[List[InsiderTrade]]:
        try:
            frame = self.stock(symbol).insider_transactions
        except Exception as e:
            logger.debug("No insider data for %s: %s", symbol, e)
            return None
        if frame is None or not isinstance(frame, pd.DataFrame):
            return None
        trades = []
        for _, row in frame.iterrows():
            shares = as_float(row.get('Shares'))
            value = as_float(row.get('Value'))
            price = value / shares if value is not None and shares else None
            trades.append(InsiderTrade(
                transaction_type=str(row.get('Text') or row.get('Transaction') or ''),
                shares=shares,
                price=price,
                date=str(row.get('Start Date')) if row.get('Start Date') is not None else None,
            ))
        return trades

    # --- blocking loaders (run in worker threads) ---

    def _load_quote(self, symbol: str) -> Optional[Quote]:
        info = self._info(symbol)
        if not info:
            return None
        return Quote(
            symbol=symbol.upper(),
            price=as_float(info.get('currentPrice') or info.get('regularMarketPrice')),
            market_cap=as_float(info.get('marketCap')),
            volume=as_float(info.get('volume') or info.get('regularMarketVolume')),
            avg_volume=as_float(info.get('averageVolume') or info.get('averageDailyVolume3Month')),
            exchange=info.get('exchange'),
            company_name=info.get('longName') or info.get('shortName'),
        )

    def _load_fundamentals(self, symbol: str) -> RawFundamentals:
        info = self._info(symbol)
        shares_float = None
        if info.get('floatShares') is not None or info.get('sharesOutstanding') is not None:
            shares_float = ShareFloat(float_shares=as_float(info.get('floatShares')),
                                      outstanding_shares=as_float(info.get('sharesOutstanding')))
        return RawFundamentals(
            symbol=symbol.upper(),
            quote=self._load_quote(symbol),
            balance_sheet=self._statement(symbol, 'get_balance_sheet'),
            cashflow=self._statement(symbol, 'get_cashflow'),
            income_stmt=self._statement(symbol, 'get_income_stmt'),
            altman_z_score=None,
            insider_trades=self._insider_trades(symbol),
            shares_float=shares_float,
        )

    def _load_history(self, symbol: str, lookback_days: int) -> pd.DataFrame:
        # Calendar padding so lookback_days trading sessions are available
        period = f"{max(lookback_days * 2, 10)}d"
        hist = self.stock(symbol).history(period=period)
        if hist is None or hist.empty:
            return pd.DataFrame(columns=OHLCV_COLUMNS)
        cols = [c for c in OHLCV_COLUMNS if c in hist.columns]
        return hist[cols].sort_index().iloc[-lookback_days:]

    def _load_attention(self, symbol: str) -> AttentionInputs:
        quote = self._load_quote(symbol)
        stock = self.stock(symbol)

        news_count = None
        try:
            articles = stock.get_news(count=self.NEWS_COUNT) or []
            dates = [(a.get('content') or {}).get('pubDate') for a in articles if isinstance(a, dict)]
            news_count = count_recent(dates, self.NEWS_WINDOW_DAYS, self._today())
        except Exception as e:
            logger.debug("Could not fetch news for %s: %s", symbol, e)

        has_options = None
        try:
            has_options = len(stock.options or ()) > 0
        except Exception as e:
            logger.debug("Could not fetch options for %s: %s", symbol, e)

        return AttentionInputs(
            avg_volume=quote.avg_volume if quote else None,
            market_cap=quote.market_cap if quote else None,
            news_count=news_count,
            has_options=has_options,
        )

    def _load_universe(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for source, query in self.SCREEN_QUERIES.items():
            try:
                result = self._screen_fn(query) or {}
            except Exception as e:
                logger.warning("yfinance screen %s failed: %s", query, e)
                continue
            for quote in result.get('quotes', []):
                if not quote.get('symbol'):
                    continue
                rows.append({
                    'symbol': quote['symbol'],
                    'name': quote.get('longName') or quote.get('shortName'),
                    'exchange': quote.get('exchange'),
                    'marketCap': quote.get('marketCap'),
                    'source': source,
                })
        return rows

    # ═══════════════════════════════════════════════════════════════════════════
    # MarketDataProvider
    # ═══════════════════════════════════════════════════════════════════════════

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        return await asyncio.to_thread(self._load_quote, symbol)

    async def fetch_fundamentals(self, symbol: str) -> Optional[RawFundamentals]:
        return await asyncio.to_thread(self._load_fundamentals, symbol)

    async def fetch_price_series(self, symbol: str, lookback_days: int) -> pd.DataFrame:
        return await asyncio.to_thread(self._load_history, symbol, lookback_days)

    async def fetch_attention_inputs(self, symbol: str) -> AttentionInputs:
        return await asyncio.to_thread(self._load_attention, symbol)

    async def fetch_offering_activity(self, symbol: str) -> OfferingActivity:
        return OfferingActivity(has_active_mechanism=False, recent_filing_count=0, source='yfinance')

    async def fetch_universe(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._load_universe)

    async def fetch_latest_insider_trades(self, pages: int = 10) -> List[InsiderTrade]:
        return []

    def clear_cache(self) -> None:
        self._stocks.clear()
        logger.debug("Cleared YFinanceDataProvider cache")
