from typing import Dict, Optional, List, Any

from distress_radar.core.types import InsiderTrade, ShareFloat
from distress_radar.calculators.calculator_base import CalculatorBase


class OwnershipCalculator(CalculatorBase):
    """Insider flow and float metrics."""
    HEAVY_SELLING_MULTIPLE = 3.0
    NET_SKEW_MULTIPLE = 1.5

    def __init__(self, insider_trades: Optional[List[InsiderTrade]] = None,
                 shares_float: Optional[ShareFloat] = None):
        self.insider_trades = insider_trades
        self.shares_float = shares_float
        self.calculations: Dict[str, Any] = {}

    @staticmethod
    def _trade_side(transaction_type: str) -> Optional[str]:
        text = (transaction_type or '').lower()
        if 'buy' in text or 'purchase' in text:
            return 'buy'
        if 'sell' in text or 'sale' in text:
            return 'sell'
        return None

    def calculate_insider_flow(self) -> Optional[float]:
        """Net insider dollar flow (buys minus sells); None without a trade list."""
        if self.insider_trades is None:
            return None

        buy_value = 0.0
        sell_value = 0.0
        for trade in self.insider_trades:
            value = trade.value
            side = self._trade_side(trade.transaction_type)
            if side == 'buy':
                buy_value += value
            elif side == 'sell':
                sell_value += value

        if sell_value > buy_value * self.HEAVY_SELLING_MULTIPLE:
            bias = 'HEAVY_SELLING'
        elif sell_value > buy_value * self.NET_SKEW_MULTIPLE:
            bias = 'NET_SELLING'
        elif buy_value > sell_value * self.NET_SKEW_MULTIPLE:
            bias = 'NET_BUYING'
        else:
            bias = 'BALANCED'

        self._store_result('insider_buy_value', buy_value)
        self._store_result('insider_sell_value', sell_value)
        self._store_value('insider_bias', bias)
        return self._store_result('insider_net_value', buy_value - sell_value)

    def calculate_float_ratio(self) -> Optional[float]:
        if self.shares_float is None:
            return None
        return self._store_result('float_ratio', self.shares_float.float_ratio)

    def calculate_all(self) -> Dict[str, Any]:
        self._collect_new_results([self.calculate_insider_flow, self.calculate_float_ratio])
        return dict(self.calculations)
