import re
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Optional, List, Any, Iterable

from distress_radar.core.types import InsiderTrade
from distress_radar.calculators.calculator_base import CalculatorBase
from distress_radar.services.market_data_provider import parse_date

SALE_CODE = 'S-Sale'
GIFT_CODE = 'G-Gift'
DISPOSITION = 'D'
LISTED_TICKER = re.compile(r'^[A-Z]{1,5}$')

CEO_ROLE = re.compile(r'ceo|chief executive', re.IGNORECASE)
CFO_ROLE = re.compile(r'cfo|chief financial', re.IGNORECASE)
DIRECTOR_ROLE = re.compile(r'director', re.IGNORECASE)


def is_open_market_sale(trade: InsiderTrade) -> bool:
    """Priced sales and dispositions; gifts carry no price and are not sales."""
    if trade.transaction_type == GIFT_CODE:
        return False
    if trade.transaction_type != SALE_CODE and trade.acquisition_or_disposition != DISPOSITION:
        return False
    return bool(trade.price and trade.price > 0)


def group_sales_by_symbol(trades: Iterable[InsiderTrade], as_of: date,
                          window_days: int = 30) -> Dict[str, List[InsiderTrade]]:
    """Recent open-market sales keyed by listed ticker, in input order."""
    cutoff = as_of - timedelta(days=window_days)
    grouped: Dict[str, List[InsiderTrade]] = defaultdict(list)
    for trade in trades:
        if not is_open_market_sale(trade):
            continue
        traded = parse_date(trade.date)
        if traded is None or traded < cutoff:
            continue
        symbol = (trade.symbol or '').strip()
        if not LISTED_TICKER.match(symbol):
            continue
        grouped[symbol].append(trade)
    return dict(grouped)


class InsiderSellingCalculator(CalculatorBase):
    """Who sold, how much, and how recently, over one symbol's sale list."""
    CLUSTER_MIN_INSIDERS = 2
    CLUSTER_MIN_SALES = 3

    def __init__(self, sales: Optional[List[InsiderTrade]], market_cap: Optional[float] = None,
                 as_of: Optional[date] = None):
        self.sales = sales or []
        self.market_cap = market_cap
        self.as_of = as_of or date.today()
        self.calculations: Dict[str, Any] = {}

    def calculate_value_sold(self) -> Optional[float]:
        if not self.sales:
            return None
        total = sum(t.value for t in self.sales)
        if self.market_cap:
            self._store_result('insider_pct_market_cap_sold', total / self.market_cap * 100)
        return self._store_result('insider_value_sold', total)

    def calculate_seller_profile(self) -> Optional[int]:
        """Distinct sellers, sale count, senior roles and the cluster flag."""
        if not self.sales:
            return None
        sellers = len({t.insider for t in self.sales})
        roles = [t.role or '' for t in self.sales]
        self._store_value('insider_sale_count', len(self.sales))
        self._store_value('ceo_selling', any(CEO_ROLE.search(r) for r in roles))
        self._store_value('cfo_selling', any(CFO_ROLE.search(r) for r in roles))
        self._store_value('director_selling', any(DIRECTOR_ROLE.search(r) for r in roles))
        self._store_value('insider_cluster_sale',
                          sellers >= self.CLUSTER_MIN_INSIDERS or len(self.sales) >= self.CLUSTER_MIN_SALES)
        return self._store_value('insider_seller_count', sellers)

    def calculate_days_since_sale(self) -> Optional[int]:
        dates = [d for d in (parse_date(t.date) for t in self.sales) if d is not None]
        if not dates:
            return None
        return self._store_value('days_since_insider_sale', max(0, (self.as_of - max(dates)).days))

    def calculate_all(self) -> Dict[str, Any]:
        self._collect_new_results([
            self.calculate_value_sold,
            self.calculate_seller_profile,
            self.calculate_days_since_sale,
        ])
        return dict(self.calculations)
