"""
Staged filter funnel.

Each stage enriches the candidates that survived the previous stage with the
cheapest data that answers its own predicate, then filters on it. Stages are
ordered cheapest first so full analysis only runs on the small remainder.

A fetch failure for one candidate drops that candidate (recorded on the
stage's report); it never aborts the run.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from distress_radar.core.types import Candidate, EnrichedCandidate, FunnelReport, StageReport

logger = logging.getLogger(__name__)


class FunnelStage:
    """Base stage: override enrich() for fetching and keep() for the predicate."""
    name: str = "stage"

    def __init__(self, delay: float = 0.0, max_input: Optional[int] = None):
        self.delay = delay
        self.max_input = max_input

    def prioritize(self, candidates: List[EnrichedCandidate]) -> List[EnrichedCandidate]:
        """Order and cap the stage input. Default keeps incoming order."""
        if self.max_input is not None:
            return candidates[:self.max_input]
        return list(candidates)

    async def enrich(self, item: EnrichedCandidate) -> EnrichedCandidate:
        return item

    def keep(self, item: EnrichedCandidate) -> bool:
        return True


class StagedFilterFunnel:

    def __init__(self, stages: Sequence[FunnelStage],
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if not stages:
            raise ValueError('funnel needs at least one stage')
        self.stages = list(stages)
        self._sleep = sleep

    async def run_stage(self, stage: FunnelStage,
                        items: List[EnrichedCandidate]) -> Tuple[List[EnrichedCandidate], StageReport]:
        report = StageReport(name=stage.name, input_count=len(items), output_count=0)
        survivors: List[EnrichedCandidate] = []
        for i, item in enumerate(stage.prioritize(items)):
            if i and stage.delay:
                await self._sleep(stage.delay)
            try:
                enriched = await stage.enrich(item)
            except Exception as e:
                logger.warning("Excluded candidate after fetch failure: %s", e,
                               extra={'symbol': item.symbol, 'stage': stage.name})
                report.failures.append((item.symbol, str(e)))
                continue
            if stage.keep(enriched):
                survivors.append(enriched)
        report.output_count = len(survivors)
        logger.info("Stage %s: %d -> %d (%d failures)", stage.name, report.input_count,
                    report.output_count, len(report.failures))
        return survivors, report

    async def run(self, candidates: Sequence[Candidate]) -> FunnelReport:
        report = FunnelReport(universe_count=len(candidates))
        items = [EnrichedCandidate(candidate=c) for c in candidates]
        for stage in self.stages:
            items, stage_report = await self.run_stage(stage, items)
            report.stages.append(stage_report)
        report.survivors = items
        return report
