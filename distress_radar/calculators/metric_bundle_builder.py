import logging
from dataclasses import fields
from datetime import date
from typing import Optional, Dict, Any, List

import pandas as pd

from distress_radar.core.types import (
    MetricBundle, Quote, RawFundamentals, AttentionInputs, OfferingActivity, InsiderTrade,
)
from distress_radar.calculators.financial_calculator import FinancialCalculator
from distress_radar.calculators.insider_selling_calculator import InsiderSellingCalculator
from distress_radar.calculators.ownership_calculator import OwnershipCalculator
from distress_radar.calculators.price_action_calculator import PriceActionCalculator

logger = logging.getLogger(__name__)

_BUNDLE_FIELDS = {f.name for f in fields(MetricBundle)}


class MetricBundleBuilder:
    """Builds a MetricBundle from everything fetched for one symbol.

    This is the only place raw inputs are read. Precedence rules:
      - quote values win over attention inputs for avg_volume and market_cap
      - volume_ratio comes from the quote (1.0 when average volume is unknown)
      - offering_impact_ratio is offering_amount / market_cap when both > 0
      - insider sales are measured against the resolved market_cap
    """

    def __init__(self, as_of: Optional[date] = None):
        self.as_of = as_of

    def build(self,
              symbol: str,
              quote: Optional[Quote] = None,
              fundamentals: Optional[RawFundamentals] = None,
              price_history: Optional[pd.DataFrame] = None,
              attention: Optional[AttentionInputs] = None,
              offerings: Optional[OfferingActivity] = None,
              event_date: Optional[date] = None,
              event_form: Optional[str] = None,
              insider_sales: Optional[List[InsiderTrade]] = None) -> MetricBundle:
        values: Dict[str, Any] = {}

        if quote is None and fundamentals is not None:
            quote = fundamentals.quote

        if fundamentals is not None:
            financial = FinancialCalculator(
                fundamentals.income_stmt,
                fundamentals.balance_sheet,
                fundamentals.cashflow,
                altman_z_score=fundamentals.altman_z_score,
            )
            values.update(financial.calculate_all())
            ownership = OwnershipCalculator(fundamentals.insider_trades, fundamentals.shares_float)
            values.update(ownership.calculate_all())

        if price_history is not None and not price_history.empty:
            price_action = PriceActionCalculator(price_history, event_date=event_date, as_of=self.as_of)
            values.update(price_action.calculate_all())
        elif event_date is not None:
            values.update(PriceActionCalculator(None, event_date=event_date, as_of=self.as_of).calculate_all(['event']))

        values.update(self._quote_values(quote, attention))
        values.update(self._attention_values(attention))
        values.update(self._offering_values(offerings, values.get('market_cap')))
        if insider_sales:
            values.update(InsiderSellingCalculator(insider_sales, values.get('market_cap'), self.as_of).calculate_all())
        if event_form:
            values['event_form'] = event_form

        bundle = MetricBundle(
            symbol=symbol,
            has_financial_statements=bool(fundamentals is not None and fundamentals.has_statements()),
            **{k: v for k, v in values.items() if k in _BUNDLE_FIELDS},
        )
        logger.debug("Built metric bundle", extra={
            'symbol': symbol,
            'known_metrics': len(bundle.to_dict()),
            'has_statements': bundle.has_financial_statements,
        })
        return bundle

    @staticmethod
    def _quote_values(quote: Optional[Quote], attention: Optional[AttentionInputs]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if quote is not None:
            out['price'] = quote.price
            out['volume'] = quote.volume
            out['volume_ratio'] = quote.volume_ratio
        avg_volume = quote.avg_volume if quote is not None else None
        market_cap = quote.market_cap if quote is not None else None
        if attention is not None:
            if avg_volume is None:
                avg_volume = attention.avg_volume
            if market_cap is None:
                market_cap = attention.market_cap
        out['avg_volume'] = avg_volume
        out['market_cap'] = market_cap
        return {k: v for k, v in out.items() if v is not None}

    @staticmethod
    def _attention_values(attention: Optional[AttentionInputs]) -> Dict[str, Any]:
        if attention is None:
            return {}
        out = {'news_count': attention.news_count, 'has_options': attention.has_options}
        return {k: v for k, v in out.items() if v is not None}

    @staticmethod
    def _offering_values(offerings: Optional[OfferingActivity], market_cap: Optional[float]) -> Dict[str, Any]:
        if offerings is None:
            return {}
        out: Dict[str, Any] = {
            'mechanism_active': offerings.has_active_mechanism,
            'recent_filing_count': offerings.recent_filing_count,
        }
        amount = offerings.offering_amount
        if amount is not None:
            out['offering_amount'] = amount
            if amount > 0 and market_cap is not None and market_cap > 0:
                out['offering_impact_ratio'] = amount / market_cap
        return out
