# --- distress scan orchestrator ---
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from distress_radar.calculators.insider_selling_calculator import group_sales_by_symbol
from distress_radar.calculators.metric_bundle_builder import MetricBundleBuilder
from distress_radar.core.config import AppConfig
from distress_radar.core.types import (
    Candidate, ConvergenceResult, EnrichedCandidate, FunnelReport, LeaderboardEntry, ScanReport,
    ScoreResult, SkippedCandidate, SOURCE_INSIDER_FEED,
)

from distress_radar.services.cooldown_ledger import CooldownLedger, JsonFileCooldownRepository
from distress_radar.services.fmp_data_provider import FmpDataProvider
from distress_radar.services.leaderboard_store import LeaderboardStore
from distress_radar.services.market_data_provider import MarketDataProvider
from distress_radar.services.publishing import ContentGenerator, DryRunPublisher, Publisher, TemplateContentGenerator
from distress_radar.services.universe_provider import SecAtmFilingSearch, SecShelfFilingSearch, UniverseProvider

from distress_radar.scoring.convergence_detector import ConvergenceDetector
from distress_radar.scoring.distress_assessor import DistressAssessor
from distress_radar.scoring.insider_engine import InsiderDisconnectEngine
from distress_radar.scoring.shelf_engine import ShelfRiskEngine

from distress_radar.orchestration.funnel_stages import (
    AttentionStage, FullAnalysisStage, InsiderAnalysisStage, InsiderQuoteStage, ListedQuoteStage, QuoteStage,
)
from distress_radar.orchestration.leaderboard_ranker import (
    LeaderboardRanker, dilution_reason, format_date_range, insider_reason, insolvency_reason, shelf_reason,
)
from distress_radar.orchestration.staged_filter_funnel import StagedFilterFunnel

logger = logging.getLogger(__name__)


def _round(value: Optional[float], digits: int = 1) -> Optional[float]:
    return round(value, digits) if value is not None else None


def insolvency_entry_metrics(item: EnrichedCandidate) -> Dict[str, Any]:
    m = item.metrics
    a = item.assessment
    return {
        'vis': a.index.value,
        'tier': a.index.tier.label,
        'insolvencyScore': a.insolvency.total_score,
        'attentionScore': a.attention.total_score,
        'runway': _round(m.runway_months),
        'debtCashRatio': _round(m.debt_to_cash),
        'monthlyBurn': m.monthly_burn,
        'marketCap': m.market_cap,
        'avgVolume': m.avg_volume,
        'primaryOutcome': a.outcome.primary_outcome,
    }


def dilution_entry_metrics(item: EnrichedCandidate) -> Dict[str, Any]:
    m = item.metrics
    return {
        'tier': item.assessment.dilution_severity.label,
        'runway': _round(m.runway_months),
        'pullback': _round(m.pullback_pct),
        'peakGain': _round(m.peak_gain_pct),
        'daysSinceFiling': m.days_since_event,
        'marketCap': m.market_cap,
        'debtCashRatio': _round(m.debt_to_cash),
        'signalTriggered': item.assessment.dilution_signal.triggered,
    }


def shelf_entry_metrics(item: EnrichedCandidate, result: ScoreResult) -> Dict[str, Any]:
    m = item.metrics
    return {
        'sdr': result.total_score,
        'formType': item.candidate.form_type,
        'runway': _round(m.runway_months),
        'debtCashRatio': _round(m.debt_to_cash),
        'marketCap': m.market_cap,
        'monthlyBurn': m.monthly_burn,
        'daysSinceFiling': m.days_since_event,
    }


def insider_entry_metrics(item: EnrichedCandidate, result: ScoreResult) -> Dict[str, Any]:
    m = item.metrics
    return {
        'ids': result.total_score,
        'totalValueSold': m.insider_value_sold,
        'pctMarketCapSold': _round(m.insider_pct_market_cap_sold, 2),
        'priceChange30d': _round(m.price_change_30d_pct),
        'insiderCount': m.insider_seller_count,
        'salesCount': m.insider_sale_count,
        'hasCEO': m.ceo_selling,
        'hasCFO': m.cfo_selling,
        'isClusterSale': m.insider_cluster_sale,
        'daysSinceLastSale': m.days_since_insider_sale,
        'marketCap': m.market_cap,
    }


class DistressScanOrchestrator:
    """
    Runs the weekly distress scans end to end.

    Sections:
        - run_insolvency_leaderboard(): universe -> funnel -> VIS leaderboard
        - run_dilution_leaderboard(): recent ATM filings -> enrichment -> severity leaderboard
        - run_shelf_leaderboard(): recent shelf registrations -> enrichment -> SDR leaderboard
        - run_insider_leaderboard(): insider sales feed -> quote + price checks -> IDS leaderboard
        - run_alert(force): leaderboard -> cooldown selection -> content -> publish
        - detect_convergence(): convergence events and near misses over analyzed candidates

    Every collaborator is injectable so tests never touch the network or disk.
    Persistence, convergence and publishing failures are recorded on the
    ScanReport instead of aborting the run.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        provider: Optional[MarketDataProvider] = None,
        universe: Optional[UniverseProvider] = None,
        atm_search: Optional[SecAtmFilingSearch] = None,
        shelf_search: Optional[SecShelfFilingSearch] = None,
        ledger: Optional[CooldownLedger] = None,
        publisher: Optional[Publisher] = None,
        content_generator: Optional[ContentGenerator] = None,
        store_factory: Optional[Callable[[Any], LeaderboardStore]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.config = config or AppConfig.from_env()
        self.clock = clock or datetime.now
        self._sleep = sleep

        self.provider = provider or FmpDataProvider(self.config.fmp,
                                                    filing_window_days=self.config.scoring.filing_window_days)
        self.universe = universe or UniverseProvider(self.provider, self.config.funnel)
        self.atm_search = atm_search or SecAtmFilingSearch(today=lambda: self.clock().date())
        self.shelf_search = shelf_search or SecShelfFilingSearch(today=lambda: self.clock().date())
        self.ledger = ledger or CooldownLedger(JsonFileCooldownRepository(self.config.alerts.cooldown_file),
                                               self.config.alerts.cooldown_days,
                                               clock=lambda: self.clock().date())
        if publisher is None and not self.config.alerts.dry_run:
            logger.warning("No publisher configured; falling back to dry run")
        self.publisher = publisher or DryRunPublisher()
        self.content_generator = content_generator or TemplateContentGenerator()
        self._store_factory = store_factory or (lambda path: LeaderboardStore(path))

        self.assessor = DistressAssessor(self.config.scoring)
        self.detector = ConvergenceDetector(self.config.scoring.convergence_min_risk,
                                            self.config.scoring.convergence_min_index,
                                            self.config.scoring.known_dilution_active)
        self.shelf_engine = ShelfRiskEngine(self.config.scoring.shelf_weights)
        self.insider_engine = InsiderDisconnectEngine(self.config.scoring.insider_weights,
                                                      min_score=self.config.alerts.insider_min_score)

        logger.debug("Initialized DistressScanOrchestrator", extra={
            'provider': type(self.provider).__name__, 'dry_run': self.config.alerts.dry_run})

    # --- section isolation ---

    @staticmethod
    def _guard(report: ScanReport, section: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception as e:
            logger.error("Section %s failed: %s", section, e, exc_info=True)
            report.errors.append({'section': section, 'error': str(e)})
            return None

    def _new_report(self, days: int = 7) -> ScanReport:
        now = self.clock()
        return ScanReport(generated_at=now.isoformat(), date_range=format_date_range(now.date(), days))

    def _ranker(self, min_score: float, apply_cooldown: bool = True) -> LeaderboardRanker:
        return LeaderboardRanker(size=self.config.alerts.leaderboard_size, min_score=min_score,
                                 ledger=self.ledger if apply_cooldown else None)

    def _builder(self) -> MetricBundleBuilder:
        """Recency metrics are measured against the run clock."""
        return MetricBundleBuilder(as_of=self.clock().date())

    # --- pipelines ---

    async def scan_universe(self) -> FunnelReport:
        candidates = await self.universe.fetch()
        funnel = StagedFilterFunnel([
            QuoteStage(self.provider, self.config.funnel),
            AttentionStage(self.provider, self.config.funnel),
            FullAnalysisStage(self.provider, self.config.funnel, assessor=self.assessor, builder=self._builder()),
        ], sleep=self._sleep)
        return await funnel.run(candidates)

    async def scan_atm_filings(self, days: Optional[int] = None) -> FunnelReport:
        return await self._scan_filings(self.atm_search, days)

    async def scan_shelf_filings(self, days: Optional[int] = None) -> FunnelReport:
        return await self._scan_filings(self.shelf_search, days)

    async def scan_insider_sellers(self) -> FunnelReport:
        funnel_config = self.config.funnel
        trades = await self.provider.fetch_latest_insider_trades(funnel_config.insider_feed_pages)
        sales = group_sales_by_symbol(trades, self.clock().date(), funnel_config.insider_lookback_days)
        candidates = [Candidate(symbol=symbol, source=SOURCE_INSIDER_FEED) for symbol in sorted(sales)]
        logger.info("Insider sellers found", extra={'transactions': len(trades), 'tickers': len(candidates)})
        funnel = StagedFilterFunnel([
            InsiderQuoteStage(self.provider, funnel_config),
            InsiderAnalysisStage(self.provider, sales, funnel_config, builder=self._builder()),
        ], sleep=self._sleep)
        return await funnel.run(candidates)

    async def _scan_filings(self, search: SecAtmFilingSearch, days: Optional[int]) -> FunnelReport:
        candidates = await search.fetch(days or self.config.funnel.filing_lookback_days)
        funnel = StagedFilterFunnel([
            ListedQuoteStage(self.provider, self.config.funnel),
            FullAnalysisStage(self.provider, self.config.funnel, assessor=self.assessor, builder=self._builder(),
                              require_statements=False),
        ], sleep=self._sleep)
        return await funnel.run(candidates)

    def detect_convergence(self, analyzed: List[EnrichedCandidate]
                           ) -> Tuple[List[ConvergenceResult], List[ConvergenceResult]]:
        events: List[ConvergenceResult] = []
        near_misses: List[ConvergenceResult] = []
        for item in analyzed:
            if item.assessment is None or item.assessment.insufficient_data:
                continue
            result = self.detector.detect(item.assessment, item.offerings)
            if result.is_converged:
                events.append(result)
            elif result.is_near_miss:
                near_misses.append(result)
        events.sort(key=lambda r: (-(r.intensity or 0), r.symbol))
        logger.info("Convergence scan: %d events, %d near misses", len(events), len(near_misses))
        return events, near_misses

    def build_insolvency_report(self, funnel_report: FunnelReport, apply_cooldown: bool = True) -> ScanReport:
        report = self._new_report()
        scored = [s for s in funnel_report.survivors if s.assessment and not s.assessment.insufficient_data]
        entries, skipped = self._ranker(self.config.alerts.min_score, apply_cooldown).rank(
            scored,
            candidate_fn=lambda s: s.candidate,
            score_fn=lambda s: s.assessment.index.value,
            reason_fn=lambda s: insolvency_reason(s.metrics),
            metrics_fn=insolvency_entry_metrics,
        )
        report.leaderboard = entries
        report.skipped_cooldown = [s.key for s in skipped]
        report.pipeline = {**funnel_report.counts(), 'qualified': len(entries)}
        for stage in funnel_report.stages:
            for symbol, error in stage.failures:
                report.errors.append({'section': stage.name, 'symbol': symbol, 'error': error})

        found = self._guard(report, 'convergence', lambda: self.detect_convergence(scored))
        if found is not None:
            report.convergence_events, report.near_misses = found
        return report

    async def run_insolvency_leaderboard(self) -> ScanReport:
        funnel_report = await self.scan_universe()
        report = self.build_insolvency_report(funnel_report)
        store = self._store_factory(self.config.alerts.leaderboard_file)
        self._guard(report, 'persistence', lambda: store.save(report))
        self._log_leaderboard('BANKRUPTCY LEADERBOARD (ranked by VIS)', report.leaderboard)
        return report

    async def run_dilution_leaderboard(self, days: Optional[int] = None) -> ScanReport:
        days = days or self.config.funnel.filing_lookback_days
        funnel_report = await self.scan_atm_filings(days)
        report = self._new_report(days)
        entries, skipped = self._ranker(self.config.alerts.dilution_min_score).rank(
            [s for s in funnel_report.survivors if s.assessment],
            candidate_fn=lambda s: s.candidate,
            score_fn=lambda s: s.assessment.dilution_severity.total_score,
            reason_fn=lambda s: dilution_reason(s.metrics),
            metrics_fn=dilution_entry_metrics,
        )
        return self._finish_leaderboard(report, funnel_report, entries, skipped,
                                        self.config.alerts.dilution_leaderboard_file,
                                        'DILUTION LEADERBOARD (ranked by severity)')

    async def run_shelf_leaderboard(self, days: Optional[int] = None) -> ScanReport:
        days = days or self.config.funnel.filing_lookback_days
        funnel_report = await self.scan_shelf_filings(days)
        report = self._new_report(days)
        scored = [(s, self.shelf_engine.score(s.metrics)) for s in funnel_report.survivors if s.metrics]
        entries, skipped = self._ranker(self.config.alerts.shelf_min_score).rank(
            scored,
            candidate_fn=lambda row: row[0].candidate,
            score_fn=lambda row: row[1].total_score,
            reason_fn=lambda row: shelf_reason(row[0].metrics),
            metrics_fn=lambda row: shelf_entry_metrics(*row),
        )
        return self._finish_leaderboard(report, funnel_report, entries, skipped,
                                        self.config.alerts.shelf_leaderboard_file,
                                        'SHELF DILUTION LEADERBOARD (ranked by SDR)')

    async def run_insider_leaderboard(self) -> ScanReport:
        """Insiders selling into strength; only names the engine qualifies are ranked."""
        funnel_report = await self.scan_insider_sellers()
        report = self._new_report(self.config.funnel.insider_lookback_days)
        scored = [(s, self.insider_engine.score(s.metrics)) for s in funnel_report.survivors if s.metrics]
        entries, skipped = self._ranker(self.config.alerts.insider_min_score).rank(
            [row for row in scored if row[1].triggered],
            candidate_fn=lambda row: row[0].candidate,
            score_fn=lambda row: row[1].total_score,
            reason_fn=lambda row: insider_reason(row[0].metrics),
            metrics_fn=lambda row: insider_entry_metrics(*row),
        )
        return self._finish_leaderboard(report, funnel_report, entries, skipped,
                                        self.config.alerts.insider_leaderboard_file,
                                        'INSIDER SELLING LEADERBOARD (ranked by IDS)')

    def _finish_leaderboard(self, report: ScanReport, funnel_report: FunnelReport,
                            entries: List[LeaderboardEntry], skipped: List[SkippedCandidate],
                            path: Any, title: str) -> ScanReport:
        report.leaderboard = entries
        report.skipped_cooldown = [s.key for s in skipped]
        report.pipeline = {**funnel_report.counts(), 'qualified': len(entries)}
        for stage in funnel_report.stages:
            for symbol, error in stage.failures:
                report.errors.append({'section': stage.name, 'symbol': symbol, 'error': error})
        store = self._store_factory(path)
        self._guard(report, 'persistence', lambda: store.save(report))
        self._log_leaderboard(title, report.leaderboard)
        return report

    async def run_alert(self, force: bool = False) -> ScanReport:
        """Publish the top alert-eligible candidate; mark it alerted only on success."""
        funnel_report = await self.scan_universe()
        # Cooldown is applied by the ledger walk below, not by the ranker
        report = self.build_insolvency_report(funnel_report, apply_cooldown=False)
        analyzed = {s.symbol: s for s in funnel_report.survivors}

        eligible = [e for e in report.leaderboard if analyzed[e.symbol].assessment.index.alert_eligible]
        selection = self.ledger.select_next(eligible, force=force)
        report.skipped_cooldown.extend(s.key for s in selection.skipped)
        if selection.selected is None:
            logger.info("No alert-eligible candidate", extra={'ranked': len(report.leaderboard)})
            return report

        entry: LeaderboardEntry = selection.selected
        payload = self.alert_payload(entry, analyzed[entry.symbol])
        text = self._guard(report, 'content', lambda: self.content_generator.generate(payload))
        if text is None:
            return report
        published = self._guard(report, 'publish', lambda: self.publisher.publish(text, payload))
        if published:
            self.ledger.mark_alerted(entry.symbol)
            report.published = True
            logger.info("Published alert", extra={'symbol': entry.symbol, 'forced': selection.forced})
        else:
            logger.info("Alert not published", extra={'symbol': entry.symbol})
        return report

    @staticmethod
    def alert_payload(entry: LeaderboardEntry, item: EnrichedCandidate) -> Dict[str, Any]:
        assessment = item.assessment
        return {
            **entry.to_dict(),
            'tier': assessment.index.tier.label,
            'outcome_summary': assessment.outcome_summary,
            'assessment': assessment.to_dict(),
        }

    @staticmethod
    def _log_leaderboard(title: str, entries: List[LeaderboardEntry]) -> None:
        logger.info(title)
        for e in entries:
            logger.info("#%d $%-6s %3.0f -> %s", e.rank, e.symbol, e.score, e.reason_summary)
