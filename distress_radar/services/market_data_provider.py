import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

import pandas as pd

from distress_radar.core.types import (
    Quote, RawFundamentals, AttentionInputs, OfferingActivity, InsiderTrade, ShareFloat,
)

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['Open', 'High', 'Low', 'Close', 'Volume']

# FMP statement field -> canonical (yfinance) row name
BALANCE_SHEET_FIELDS: Dict[str, str] = {
    'cashAndCashEquivalents': 'CashAndCashEquivalents',
    'cashAndShortTermInvestments': 'CashCashEquivalentsAndShortTermInvestments',
    'totalDebt': 'TotalDebt',
    'shortTermDebt': 'CurrentDebt',
    'longTermDebt': 'LongTermDebt',
    'totalAssets': 'TotalAssets',
    'totalLiabilities': 'TotalLiabilitiesNetMinorityInterest',
    'totalStockholdersEquity': 'StockholdersEquity',
}

CASHFLOW_FIELDS: Dict[str, str] = {
    'operatingCashFlow': 'OperatingCashFlow',
    'netCashProvidedByOperatingActivities': 'OperatingCashFlow',
    'capitalExpenditure': 'CapitalExpenditure',
    'freeCashFlow': 'FreeCashFlow',
}

INCOME_FIELDS: Dict[str, str] = {
    'revenue': 'TotalRevenue',
    'netIncome': 'NetIncome',
    'ebitda': 'EBITDA',
    'operatingIncome': 'OperatingIncome',
    'interestExpense': 'InterestExpense',
    'weightedAverageShsOut': 'BasicAverageShares',
    'weightedAverageShsOutDil': 'DilutedAverageShares',
}

# Filing types / descriptions that indicate an equity offering mechanism
OFFERING_FORM_MARKERS = ('S-', '424')
OFFERING_DESCRIPTION_MARKERS = ('offering', 'prospectus')


@runtime_checkable
class MarketDataProvider(Protocol):
    """Upstream data collaborator. Any result may be partial."""

    async def fetch_quote(self, symbol: str) -> Optional[Quote]: ...

    async def fetch_fundamentals(self, symbol: str) -> Optional[RawFundamentals]: ...

    async def fetch_price_series(self, symbol: str, lookback_days: int) -> pd.DataFrame: ...

    async def fetch_attention_inputs(self, symbol: str) -> AttentionInputs: ...

    async def fetch_offering_activity(self, symbol: str) -> OfferingActivity: ...

    async def fetch_universe(self) -> List[Dict[str, Any]]: ...

    async def fetch_latest_insider_trades(self, pages: int = 10) -> List[InsiderTrade]: ...


# ═══════════════════════════════════════════════════════════════════════════════
# SHARED MAPPING HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def first_record(data: Any) -> Optional[Dict[str, Any]]:
    """FMP returns lists for single-record endpoints; take the first dict."""
    if isinstance(data, list):
        return data[0] if data and isinstance(data[0], dict) else None
    return data if isinstance(data, dict) else None


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if pd.isna(result) else result


def parse_date(value: Any) -> Optional[date]:
    """Parse 'YYYY-MM-DD' or ISO datetime strings; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.Timestamp(str(value)).date()
    except (ValueError, TypeError):
        return None


def statement_frame(records: Optional[List[Dict[str, Any]]], field_map: Dict[str, str]) -> pd.DataFrame:
    """Convert FMP statement records (newest first) into rows=line items, cols=periods.

    Column order follows the record order, so the most recent period stays first.
    Canonical rows that no record populates are left out.
    """
    if not records:
        return pd.DataFrame()
    columns: Dict[Any, Dict[str, float]] = {}
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            continue
        period = parse_date(record.get('date'))
        key = pd.Timestamp(period) if period is not None else i
        column: Dict[str, float] = {}
        for source, target in field_map.items():
            value = as_float(record.get(source))
            if value is not None and target not in column:
                column[target] = value
        columns[key] = column
    frame = pd.DataFrame(columns)
    return frame.dropna(how='all')


def candles_frame(rows: Optional[List[Dict[str, Any]]], lookback_days: int) -> pd.DataFrame:
    """FMP EOD rows are newest first; keep the last lookback_days and sort ascending."""
    if not rows:
        return pd.DataFrame(columns=OHLCV_COLUMNS)
    limited = [r for r in rows[:lookback_days] if isinstance(r, dict) and r.get('date')]
    if not limited:
        return pd.DataFrame(columns=OHLCV_COLUMNS)
    frame = pd.DataFrame({
        'Open': [as_float(r.get('open')) for r in limited],
        'High': [as_float(r.get('high')) for r in limited],
        'Low': [as_float(r.get('low')) for r in limited],
        'Close': [as_float(r.get('close')) for r in limited],
        'Volume': [as_float(r.get('volume')) for r in limited],
    }, index=pd.DatetimeIndex([pd.Timestamp(r['date']) for r in limited], name='Date'))
    return frame.sort_index()


def insider_trades(records: Optional[List[Dict[str, Any]]]) -> Optional[List[InsiderTrade]]:
    if records is None:
        return None
    return [
        InsiderTrade(
            transaction_type=str(r.get('transactionType') or ''),
            shares=as_float(r.get('securitiesTransacted')),
            price=as_float(r.get('price')),
            date=r.get('transactionDate') or r.get('filingDate'),
            symbol=r.get('symbol'),
            insider=r.get('reportingName') or (str(r['reportingCik']) if r.get('reportingCik') else None),
            role=r.get('typeOfOwner'),
            acquisition_or_disposition=r.get('acquisitionOrDisposition'),
        )
        for r in records if isinstance(r, dict)
    ]


def share_float(record: Optional[Dict[str, Any]]) -> Optional[ShareFloat]:
    if not record:
        return None
    return ShareFloat(
        float_shares=as_float(record.get('floatShares')),
        outstanding_shares=as_float(record.get('outstandingShares')),
    )


def is_offering_filing(filing: Dict[str, Any]) -> bool:
    form = str(filing.get('formType') or filing.get('type') or '')
    description = str(filing.get('description') or '').lower()
    return (any(marker in form for marker in OFFERING_FORM_MARKERS)
            or any(marker in description for marker in OFFERING_DESCRIPTION_MARKERS))


def count_recent(dates: Iterable[Any], window_days: int, as_of: Optional[date] = None) -> int:
    """Number of dates strictly within window_days of as_of."""
    as_of = as_of or date.today()
    cutoff = as_of - timedelta(days=window_days)
    count = 0
    for value in dates:
        parsed = parse_date(value)
        if parsed is not None and parsed > cutoff:
            count += 1
    return count
