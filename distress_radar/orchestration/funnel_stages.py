import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from distress_radar.calculators.metric_bundle_builder import MetricBundleBuilder
from distress_radar.core.config import FunnelConfig
from distress_radar.core.types import EnrichedCandidate, InsiderTrade, RawFundamentals
from distress_radar.orchestration.staged_filter_funnel import FunnelStage
from distress_radar.scoring.distress_assessor import DistressAssessor
from distress_radar.services.market_data_provider import MarketDataProvider

logger = logging.getLogger(__name__)


def _degrade(symbol: str, part: str, result: Any) -> Any:
    """Pass a fetch result through; a failed supplementary fetch becomes unknown."""
    if not isinstance(result, BaseException):
        return result
    if not isinstance(result, Exception):
        raise result
    logger.warning("Supplementary fetch failed; metrics unavailable: %s", result,
                   extra={'symbol': symbol, 'part': part})
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# STAGE 1: QUOTE FILTER (one cheap call per candidate)
# ═══════════════════════════════════════════════════════════════════════════════

class QuoteStage(FunnelStage):
    name = "stage1Passed"

    def __init__(self, provider: MarketDataProvider, config: Optional[FunnelConfig] = None):
        self.config = config or FunnelConfig()
        super().__init__(delay=self.config.quote_delay, max_input=self.config.max_universe)
        self.provider = provider

    async def enrich(self, item: EnrichedCandidate) -> EnrichedCandidate:
        quote = await self.provider.fetch_quote(item.symbol)
        return replace(item, quote=quote)

    def keep(self, item: EnrichedCandidate) -> bool:
        q = item.quote
        if q is None or q.market_cap is None or q.price is None:
            return False
        return (self.config.min_market_cap <= q.market_cap <= self.config.max_market_cap
                and self.config.min_price <= q.price <= self.config.max_price)


class ListedQuoteStage(QuoteStage):
    """Quote stage for event-driven candidates: only requires a live listing."""
    name = "listed"

    def keep(self, item: EnrichedCandidate) -> bool:
        q = item.quote
        return q is not None and (q.market_cap or 0) > 0


# ═══════════════════════════════════════════════════════════════════════════════
# STAGE 2: ATTENTION FILTER (reuses the stage-1 quote)
# ═══════════════════════════════════════════════════════════════════════════════

class AttentionStage(FunnelStage):
    name = "stage2Passed"

    def __init__(self, provider: MarketDataProvider, config: Optional[FunnelConfig] = None):
        self.config = config or FunnelConfig()
        super().__init__(delay=self.config.attention_delay)
        self.provider = provider

    async def enrich(self, item: EnrichedCandidate) -> EnrichedCandidate:
        if item.quote is not None:
            return item
        return replace(item, quote=await self.provider.fetch_quote(item.symbol))

    def keep(self, item: EnrichedCandidate) -> bool:
        q = item.quote
        if q is None or q.avg_volume is None or q.avg_volume < self.config.min_avg_volume:
            return False
        retail = (q.market_cap is not None
                  and self.config.retail_min_market_cap <= q.market_cap <= self.config.retail_max_market_cap)
        surging = q.volume is not None and q.volume > self.config.volume_surge_ratio * q.avg_volume
        return retail or surging


# ═══════════════════════════════════════════════════════════════════════════════
# STAGE 3: FULL ANALYSIS (statements, prices, attention, offerings)
# ═══════════════════════════════════════════════════════════════════════════════

class FullAnalysisStage(FunnelStage):
    name = "fullAnalyzed"

    def __init__(self, provider: MarketDataProvider,
                 config: Optional[FunnelConfig] = None,
                 assessor: Optional[DistressAssessor] = None,
                 builder: Optional[MetricBundleBuilder] = None,
                 require_statements: bool = True):
        self.config = config or FunnelConfig()
        super().__init__(delay=self.config.analysis_delay, max_input=self.config.max_analyze)
        self.provider = provider
        self.assessor = assessor or DistressAssessor()
        self.builder = builder or MetricBundleBuilder()
        self.require_statements = require_statements

    def prioritize(self, candidates: List[EnrichedCandidate]) -> List[EnrichedCandidate]:
        ordered = sorted(candidates, key=lambda c: c.volume_ratio, reverse=True)
        return ordered[:self.max_input]

    async def enrich(self, item: EnrichedCandidate) -> EnrichedCandidate:
        symbol = item.symbol
        fundamentals, *supplementary = await asyncio.gather(
            self.provider.fetch_fundamentals(symbol),
            self.provider.fetch_price_series(symbol, self.config.price_lookback_days),
            self.provider.fetch_attention_inputs(symbol),
            self.provider.fetch_offering_activity(symbol),
            return_exceptions=True,
        )
        # Only a fundamentals failure excludes the candidate
        if isinstance(fundamentals, BaseException):
            raise fundamentals
        history, attention, offerings = [_degrade(symbol, part, result) for part, result in
                                         zip(('price_series', 'attention', 'offerings'), supplementary)]
        fundamentals = fundamentals or RawFundamentals(symbol=symbol)
        quote = item.quote or fundamentals.quote
        metrics = self.builder.build(
            symbol,
            quote=quote,
            fundamentals=fundamentals,
            price_history=history,
            attention=attention,
            offerings=offerings,
            event_date=item.candidate.event_date,
            event_form=item.candidate.form_type,
        )
        assessment = self.assessor.assess(metrics)
        logger.debug("Analyzed candidate", extra={'symbol': symbol, 'index': assessment.index.value})
        return replace(item, quote=quote, fundamentals=fundamentals, price_history=history,
                       attention=attention, offerings=offerings, metrics=metrics, assessment=assessment)

    def keep(self, item: EnrichedCandidate) -> bool:
        if item.assessment is None:
            return False
        if self.require_statements and item.assessment.insufficient_data:
            logger.debug("Dropped for insufficient data", extra={'symbol': item.symbol})
            return False
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# INSIDER SELLING (feed-driven candidates: quote floor, then prices + sales)
# ═══════════════════════════════════════════════════════════════════════════════

class InsiderQuoteStage(QuoteStage):
    """Sellers must be a real listing: market-cap and price floors only."""
    name = "quoted"

    def keep(self, item: EnrichedCandidate) -> bool:
        q = item.quote
        if q is None or q.market_cap is None or q.price is None:
            return False
        return q.market_cap >= self.config.insider_min_market_cap and q.price >= self.config.insider_min_price


class InsiderAnalysisStage(FunnelStage):
    name = "insiderAnalyzed"

    def __init__(self, provider: MarketDataProvider,
                 sales_by_symbol: Dict[str, List[InsiderTrade]],
                 config: Optional[FunnelConfig] = None,
                 builder: Optional[MetricBundleBuilder] = None):
        self.config = config or FunnelConfig()
        super().__init__(delay=self.config.analysis_delay, max_input=self.config.max_analyze)
        self.provider = provider
        self.sales_by_symbol = sales_by_symbol
        self.builder = builder or MetricBundleBuilder()

    def prioritize(self, candidates: List[EnrichedCandidate]) -> List[EnrichedCandidate]:
        """Largest sellers first."""
        def value_sold(item: EnrichedCandidate) -> float:
            return sum(t.value for t in self.sales_by_symbol.get(item.symbol, []))
        return sorted(candidates, key=lambda c: (-value_sold(c), c.symbol))[:self.max_input]

    async def enrich(self, item: EnrichedCandidate) -> EnrichedCandidate:
        symbol = item.symbol
        try:
            history = await self.provider.fetch_price_series(symbol, self.config.price_lookback_days)
        except Exception as e:
            history = _degrade(symbol, 'price_series', e)
        metrics = self.builder.build(symbol, quote=item.quote, price_history=history,
                                     insider_sales=self.sales_by_symbol.get(symbol, []))
        return replace(item, price_history=history, metrics=metrics)

    def keep(self, item: EnrichedCandidate) -> bool:
        sold = item.metrics.insider_value_sold if item.metrics else None
        return sold is not None and sold >= self.config.insider_min_value_sold
