import numpy as np
import pandas as pd
from typing import Dict, Optional, List, Any

from distress_radar.calculators.calculator_base import CalculatorBase

RUNWAY_CAP_MONTHS = 24.0
NO_DEBT_RATIO = 999.0
NO_CASH_DEBT_RATIO = 999.0
NO_INTEREST_COVERAGE = 10.0


def classify_runway(runway_months: Optional[float]) -> Optional[str]:
    if runway_months is None:
        return None
    if runway_months <= 3:
        return 'CRITICAL'
    if runway_months <= 6:
        return 'SHORT'
    if runway_months <= 12:
        return 'OK'
    return 'COMFORTABLE'


def classify_altman(z_score: Optional[float]) -> str:
    if z_score is None:
        return 'UNKNOWN'
    if z_score < 1.2:
        return 'DISTRESS'
    if z_score < 1.8:
        return 'GREY_ZONE'
    if z_score < 3:
        return 'CAUTION'
    return 'SAFE'


class FinancialCalculator(CalculatorBase):
    """Calculates liquidity and distress metrics from quarterly statements.

    Statements are DataFrames with rows=line items and cols=periods, most
    recent period first. Every metric is stored under its MetricBundle name;
    a metric with too little history is left out rather than stored as zero.
    """
    LOOKBACK_QUARTERS = 4
    MIN_TREND_QUARTERS = 2
    MONTHS_PER_QUARTER = 3

    CASH_ROWS = ('CashAndCashEquivalents', 'CashCashEquivalentsAndShortTermInvestments')
    EARNINGS_ROWS = ('EBITDA', 'NormalizedEBITDA', 'OperatingIncome')
    SHARE_ROWS = ('BasicAverageShares', 'DilutedAverageShares', 'OrdinarySharesNumber')

    def __init__(self, income_stmt: pd.DataFrame, balance_sheet: pd.DataFrame,
                 cashflow: pd.DataFrame, altman_z_score: Optional[float] = None):
        """Initialize calculator with financial statements.

        Args:
            income_stmt: Income statement DataFrame (rows=metrics, cols=periods)
            balance_sheet: Balance sheet DataFrame (rows=metrics, cols=periods)
            cashflow: Cash flow statement DataFrame (rows=metrics, cols=periods)
            altman_z_score: Vendor-supplied Altman Z, if any
        """
        self.income_stmt = income_stmt
        self.balance_sheet = balance_sheet
        self.cashflow = cashflow
        self.altman_z_score = altman_z_score
        self.calculations: Dict[str, Any] = {}
        self._validate_inputs()

    def _validate_inputs(self) -> None:
        """Replace missing statements with empty frames."""
        for name, df in [('income_stmt', self.income_stmt),
                         ('balance_sheet', self.balance_sheet),
                         ('cashflow', self.cashflow)]:
            if df is None:
                setattr(self, name, pd.DataFrame())

    def _safe_get(self, df: pd.DataFrame, row: str, col, default: float = None) -> Optional[float]:
        """Safely get a value from DataFrame with validation."""
        if df.empty or row not in df.index or col not in df.columns:
            return default
        val = df.loc[row, col]
        if isinstance(val, pd.Series):
            val = val.iloc[0]
        val = pd.to_numeric(val, errors='coerce')
        if pd.isna(val) or not np.isfinite(val):
            return default
        return float(val)

    def _latest_col(self, df: pd.DataFrame):
        """Return the most recent column from a DataFrame, or None if empty."""
        return df.columns[0] if not df.empty else None

    def _latest(self, df: pd.DataFrame, *rows: str) -> Optional[float]:
        """Latest-period value of the first row that has one."""
        col = self._latest_col(df)
        if col is None:
            return None
        for row in rows:
            val = self._safe_get(df, row, col)
            if val is not None:
                return val
        return None

    def _recent_values(self, df: pd.DataFrame, *rows: str) -> List[float]:
        """Known values of the first present row over the lookback window, newest first."""
        if df.empty:
            return []
        for row in rows:
            if row not in df.index:
                continue
            values = [self._safe_get(df, row, col) for col in df.columns[:self.LOOKBACK_QUARTERS]]
            known = [v for v in values if v is not None]
            if known:
                return known
        return []

    # --- liquidity ---

    def calculate_cash(self) -> Optional[float]:
        return self._store_result('cash', self._latest(self.balance_sheet, *self.CASH_ROWS))

    def calculate_total_debt(self) -> Optional[float]:
        total = self._latest(self.balance_sheet, 'TotalDebt')
        if total is None:
            current = self._latest(self.balance_sheet, 'CurrentDebt', 'CurrentDebtAndCapitalLeaseObligation')
            long_term = self._latest(self.balance_sheet, 'LongTermDebt', 'LongTermDebtAndCapitalLeaseObligation')
            if current is not None or long_term is not None:
                total = (current or 0.0) + (long_term or 0.0)
        return self._store_result('total_debt', total)

    def calculate_operating_cash_flow(self) -> Optional[float]:
        return self._store_result('operating_cash_flow', self._latest(self.cashflow, 'OperatingCashFlow'))

    def calculate_monthly_burn(self) -> Optional[float]:
        """Burn exists only when operating cash flow is negative."""
        ocf = self.calculate_operating_cash_flow()
        if ocf is None:
            return None
        burn = abs(ocf) / self.MONTHS_PER_QUARTER if ocf < 0 else 0.0
        return self._store_result('monthly_burn', burn)

    def calculate_runway(self) -> Optional[float]:
        """Months of cash at the current burn, capped at the comfortable sentinel."""
        cash = self.calculate_cash()
        burn = self.calculate_monthly_burn()
        if cash is None or burn is None:
            return None
        runway = cash / burn if burn > 0 else RUNWAY_CAP_MONTHS
        runway = min(runway, RUNWAY_CAP_MONTHS)
        self._store_value('runway_category', classify_runway(runway))
        return self._store_result('runway_months', runway)

    def calculate_debt_ratios(self) -> Optional[float]:
        """Debt/cash multiple and cash/debt coverage with no-cash and no-debt sentinels."""
        cash = self.calculate_cash()
        debt = self.calculate_total_debt()
        if cash is None or debt is None:
            return None
        if cash > 0:
            debt_to_cash = debt / cash
        else:
            debt_to_cash = NO_CASH_DEBT_RATIO if debt > 0 else 0.0
        cash_to_debt = cash / debt if debt > 0 else NO_DEBT_RATIO
        self._store_result('cash_to_debt', cash_to_debt)
        return self._store_result('debt_to_cash', debt_to_cash)

    def calculate_average_quarterly_burn(self) -> Optional[float]:
        """Mean size of the negative operating-cash-flow quarters in the lookback."""
        values = self._recent_values(self.cashflow, 'OperatingCashFlow')
        if not values:
            return None
        negatives = [v for v in values if v < 0]
        avg = abs(sum(negatives) / len(negatives)) if negatives else 0.0
        return self._store_result('average_quarterly_burn', avg)

    # --- profitability & trend ---

    def calculate_interest_coverage(self) -> Optional[float]:
        earnings = self._latest(self.income_stmt, *self.EARNINGS_ROWS)
        if earnings is None:
            return None
        interest = self._latest(self.income_stmt, 'InterestExpense', 'InterestExpenseNonOperating')
        if interest is None or interest == 0:
            return self._store_result('interest_coverage', NO_INTEREST_COVERAGE)
        return self._store_result('interest_coverage', earnings / abs(interest))

    def calculate_revenue_trend(self) -> Optional[float]:
        revenues = self._recent_values(self.income_stmt, 'TotalRevenue', 'OperatingRevenue')
        if len(revenues) < self.MIN_TREND_QUARTERS:
            return None
        oldest = revenues[min(3, len(revenues) - 1)]
        if oldest == 0:
            return None
        change = (revenues[0] - oldest) / abs(oldest) * 100
        if change > 10:
            trend = 'GROWING'
        elif change > -10:
            trend = 'FLAT'
        else:
            trend = 'DECLINING'
        self._store_value('revenue_trend', trend)
        return self._store_result('revenue_change_pct', change)

    def calculate_negative_income_quarters(self) -> Optional[int]:
        incomes = self._recent_values(self.income_stmt, 'NetIncome', 'NetIncomeCommonStockholders')
        if not incomes:
            return None
        return self._store_value('negative_income_quarters', sum(1 for v in incomes if v < 0))

    def calculate_ocf_trend(self) -> Optional[int]:
        values = self._recent_values(self.cashflow, 'OperatingCashFlow')
        if len(values) < self.MIN_TREND_QUARTERS:
            return None
        negative = sum(1 for v in values if v < 0)
        worsening = values[0] < values[1]
        if worsening:
            trend = 'DETERIORATING'
        elif negative >= 3:
            trend = 'POOR'
        else:
            trend = 'STABLE'
        self._store_value('ocf_worsening', worsening)
        self._store_value('ocf_trend', trend)
        return self._store_value('ocf_negative_quarters', negative)

    def calculate_share_growth(self) -> Optional[float]:
        shares = self._recent_values(self.income_stmt, *self.SHARE_ROWS)
        if len(shares) < self.MIN_TREND_QUARTERS:
            return None
        oldest = shares[min(3, len(shares) - 1)]
        if oldest <= 0:
            return None
        return self._store_result('share_growth_pct', (shares[0] - oldest) / oldest * 100)

    def calculate_altman(self) -> Optional[float]:
        self._store_value('altman_zone', classify_altman(self._clean_result(self.altman_z_score)))
        return self._store_result('altman_z', self.altman_z_score)

    # --- groups ---

    def calculate_liquidity_group(self) -> Dict[str, Any]:
        return self._collect_new_results([
            self.calculate_runway,
            self.calculate_debt_ratios,
            self.calculate_average_quarterly_burn,
        ])

    def calculate_profitability_group(self) -> Dict[str, Any]:
        return self._collect_new_results([
            self.calculate_interest_coverage,
            self.calculate_revenue_trend,
            self.calculate_negative_income_quarters,
            self.calculate_ocf_trend,
            self.calculate_share_growth,
            self.calculate_altman,
        ])

    def calculate_all(self, metrics: List[str] = None) -> Dict[str, Any]:
        """Calculate all (or selected) metric groups."""
        group_methods = {
            'liquidity': self.calculate_liquidity_group,
            'profitability': self.calculate_profitability_group,
        }
        groups = metrics or list(group_methods.keys())
        for group in groups:
            if group in group_methods:
                group_methods[group]()
        return dict(self.calculations)
