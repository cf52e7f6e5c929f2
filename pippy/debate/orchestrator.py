"""
Dual-Model Debate Orchestrator

Asks two independent generative backends the same question concurrently and
reconciles their answers. Outcomes:

- both answer          -> primary synthesizes both          (SYNTHESIZED)
- exactly one answers  -> survivor polishes its own answer  (DEGRADED)
- none answers         -> AllSourcesUnavailable
- synthesis/polish call fails -> first surviving perspective verbatim (UNSYNTHESIZED)

A labeled lower-quality answer is always preferred over no answer, unless
no backend produced anything at all.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import config
from ..aggregation.aggregator import AggregatedContext, AggregationOptions, DataSourceAggregator
from ..aggregation.formatter import ContextFormatter
from ..llm.llm_service import GenerativeBackend
from ..resilience.errors import AllSourcesUnavailable, ProviderError, TransportError
from .classifier import KeywordClassifier, QueryClassifier

logger = logging.getLogger(__name__)


class DebateMode(Enum):
    SYNTHESIZED = "synthesized"
    DEGRADED = "degraded"
    UNSYNTHESIZED = "unsynthesized"


@dataclass
class DebatePerspective:
    """One backend's answer (or failure) for one query."""
    origin: str
    text: str
    succeeded: bool
    error: Optional[str] = None
    latency_ms: int = 0


@dataclass
class DebateOutcome:
    """
    Final answer plus how it was produced.

    answer is the model text only; notice is the user-visible label
    (sources, degraded or unsynthesized). reply joins the two.
    """
    answer: str
    mode: DebateMode
    perspectives: List[DebatePerspective]
    sources_used: List[str]
    notice: str = ""
    single_source: bool = False
    context: Optional[AggregatedContext] = None
    elapsed_ms: int = 0

    @property
    def degraded(self) -> bool:
        return self.mode != DebateMode.SYNTHESIZED

    @property
    def reply(self) -> str:
        return f"{self.answer}\n\n{self.notice}" if self.notice else self.answer

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'reply': self.reply,
            'degraded': self.degraded,
            'mode': self.mode.value,
            'sourcesUsed': self.sources_used,
        }
        if self.context is not None:
            data['dataSources'] = self.context.statuses()
        return data


class DebateOrchestrator:
    """
    Fan-out to two backends, fan-in with wait-for-all, then synthesize.

    Each backend call is bounded by call_deadline seconds; a timeout counts
    as a failed branch like any other transport error.
    """

    def __init__(
        self,
        primary: GenerativeBackend,
        secondary: GenerativeBackend,
        formatter: Optional[ContextFormatter] = None,
        aggregator: Optional[DataSourceAggregator] = None,
        classifier: Optional[QueryClassifier] = None,
        call_deadline: float = config.LLM_CALL_DEADLINE_SECONDS,
        default_symbol: str = config.DEFAULT_PAIR,
    ):
        self.primary = primary
        self.secondary = secondary
        self.formatter = formatter or ContextFormatter()
        self.aggregator = aggregator
        self.classifier = classifier or KeywordClassifier()
        self.call_deadline = call_deadline
        self.default_symbol = default_symbol

    @property
    def backends(self) -> List[GenerativeBackend]:
        return [self.primary, self.secondary]

    async def _call(self, backend: GenerativeBackend, prompt: str, system: str) -> str:
        try:
            return await asyncio.wait_for(backend.generate(prompt, system), timeout=self.call_deadline)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{backend.name} timed out after {self.call_deadline:.0f}s", provider=backend.name,
            ) from e

    async def _consult(self, backend: GenerativeBackend, prompt: str, system: str) -> DebatePerspective:
        """Get one perspective. Never raises: failures become succeeded=False."""
        start = time.time()
        try:
            text = await self._call(backend, prompt, system)
        except Exception as e:
            reason = e.reason() if isinstance(e, ProviderError) else f"{type(e).__name__}: {e}"
            logger.warning(f"Perspective from {backend.name} failed: {reason}")
            return DebatePerspective(origin=backend.name, text="", succeeded=False, error=reason,
                                     latency_ms=int((time.time() - start) * 1000))

        if not text or not text.strip():
            return DebatePerspective(origin=backend.name, text="", succeeded=False, error="empty response",
                                     latency_ms=int((time.time() - start) * 1000))
        return DebatePerspective(origin=backend.name, text=text.strip(), succeeded=True,
                                 latency_ms=int((time.time() - start) * 1000))

    def _backend_named(self, name: str) -> GenerativeBackend:
        for backend in self.backends:
            if backend.name == name:
                return backend
        return self.primary

    async def debate(self, query: str, prompt: str) -> DebateOutcome:
        """
        Run the fan-out and the four-branch reconciliation for an enriched prompt.

        Raises:
            AllSourcesUnavailable: neither backend produced a perspective
        """
        start_time = time.time()
        perspectives = list(await asyncio.gather(
            self._consult(self.primary, prompt, self.formatter.perspective_system(f"AI1 ({self.primary.name})")),
            self._consult(self.secondary, prompt, self.formatter.perspective_system(f"AI2 ({self.secondary.name})")),
        ))
        succeeded = [p for p in perspectives if p.succeeded]
        logger.info(f"Debate fan-out: {len(succeeded)}/{len(perspectives)} perspectives succeeded")

        if not succeeded:
            failures = {p.origin: p.error or "unknown" for p in perspectives}
            raise AllSourcesUnavailable(
                "No AI backend produced a response: "
                + "; ".join(f"{k}: {v}" for k, v in failures.items()),
                failures=failures,
            )

        sources = [p.origin for p in succeeded]
        if len(succeeded) == len(perspectives):
            mode = DebateMode.SYNTHESIZED
            finisher = self.primary
            final_prompt = self.formatter.synthesis_prompt(query, succeeded)
            final_system = self.formatter.synthesis_system()
            notice = self.formatter.sources_note(sources)
        else:
            mode = DebateMode.DEGRADED
            finisher = self._backend_named(succeeded[0].origin)
            final_prompt = self.formatter.polish_prompt(query, succeeded[0])
            final_system = self.formatter.polish_system()
            notice = self.formatter.degraded_note(sources, len(perspectives))

        try:
            answer = await self._call(finisher, final_prompt, final_system)
            if not answer or not answer.strip():
                raise ProviderError(f"{finisher.name} returned an empty final answer", provider=finisher.name)
            answer = answer.strip()
        except Exception as e:
            logger.warning(f"Final {mode.value} pass on {finisher.name} failed, returning raw perspective: {e}")
            fallback = succeeded[0]
            answer = fallback.text
            if mode == DebateMode.DEGRADED:
                notice = f"{notice}\n{self.formatter.unsynthesized_note(fallback.origin)}"
            else:
                notice = self.formatter.unsynthesized_note(fallback.origin)
            mode = DebateMode.UNSYNTHESIZED

        return DebateOutcome(
            answer=answer,
            mode=mode,
            perspectives=perspectives,
            sources_used=sources,
            notice=notice,
            single_source=len(succeeded) == 1,
            elapsed_ms=int((time.time() - start_time) * 1000),
        )

    async def gather_context(self, query: str, symbol: str) -> Optional[AggregatedContext]:
        """Aggregate live data when the query is about market data."""
        if self.aggregator is None:
            return None
        categories = self.classifier.classify(query)
        if not categories:
            return None
        logger.info(f"Query matched {sorted(categories)} - enriching with {symbol} context")
        return await self.aggregator.aggregate(symbol, AggregationOptions.for_categories(categories))

    async def answer(self, query: str, context_symbol: Optional[str] = None,
                     history: Optional[Sequence[Dict[str, str]]] = None) -> DebateOutcome:
        """
        Answer a chat message.

        Raises:
            AllSourcesUnavailable: neither backend produced a perspective
        """
        symbol = (context_symbol or self.default_symbol).upper()
        context = await self.gather_context(query, symbol)
        context_text = self.formatter.format_context(context) if context is not None else ""

        prompt = self.formatter.perspective_prompt(query, context_text, history)
        outcome = await self.debate(query, prompt)
        outcome.context = context
        return outcome
