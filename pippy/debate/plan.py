"""
Trading plan generation: aggregate every source, then debate a plan.

The AI step is mandatory. If neither backend answers, AllSourcesUnavailable
propagates to the caller; there is no data-only fallback plan.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..aggregation.aggregator import AggregationOptions, DataSourceAggregator
from ..aggregation.formatter import ContextFormatter
from .orchestrator import DebateMode, DebateOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class TradingPlan:
    """A generated plan and the provenance of its inputs."""
    symbol: str
    plan: str
    mode: DebateMode
    data_sources: Dict[str, str]
    sources_used: List[str] = field(default_factory=list)
    data_quality: str = ""

    @property
    def degraded(self) -> bool:
        return self.mode != DebateMode.SYNTHESIZED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'plan': self.plan,
            'degraded': self.degraded,
            'mode': self.mode.value,
            'sourcesUsed': self.sources_used,
            'dataSources': self.data_sources,
            'dataQuality': self.data_quality,
        }


class TradingPlanGenerator:
    """aggregate -> format -> debate."""

    def __init__(self, aggregator: DataSourceAggregator, orchestrator: DebateOrchestrator,
                 formatter: ContextFormatter = None):
        self.aggregator = aggregator
        self.orchestrator = orchestrator
        self.formatter = formatter or orchestrator.formatter

    async def generate(self, symbol: str, timeframe: str = None) -> TradingPlan:
        """
        Build a plan for symbol.

        Raises:
            AllSourcesUnavailable: no AI backend could produce the plan
        """
        symbol = symbol.strip().upper()
        context = await self.aggregator.aggregate(symbol, AggregationOptions(timeframe=timeframe))

        query = self.formatter.plan_query(symbol)
        prompt = self.formatter.perspective_prompt(query, self.formatter.format_context(context))
        outcome = await self.orchestrator.debate(query, prompt)
        outcome.context = context

        data_quality = self.formatter.data_quality_line(context)
        logger.info(f"Plan for {symbol}: {outcome.mode.value}, {data_quality}")

        plan_text = outcome.reply
        if not context.complete:
            plan_text = f"{plan_text}\n_{data_quality}._"

        return TradingPlan(
            symbol=symbol,
            plan=plan_text,
            mode=outcome.mode,
            data_sources=context.statuses(),
            sources_used=outcome.sources_used,
            data_quality=data_quality,
        )
