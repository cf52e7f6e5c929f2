"""
Synthesis/Context Formatter

Renders aggregated data and model perspectives into prompt text. Every data
section carries its availability label so the models can state data quality
instead of presenting partial data as complete.
"""

import logging
from typing import Dict, List, Optional, Sequence

import config
from ..data.calendar import EconomicEvent
from ..data.charts import ChartAnalysis
from ..data.news import NewsItem
from ..data.quotes import Quote, QuoteOrigin
from ..resilience.results import SourceResult, Unavailable
from .aggregator import NOT_REQUESTED, AggregatedContext, QuoteBoard

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    "chart_analysis": "CHART ANALYSIS",
    "quotes": "WATCH-LIST QUOTES",
    "news": "NEWS HEADLINES",
    "calendar": "ECONOMIC CALENDAR (High/Medium impact)",
}


def quote_breadth(quotes: Sequence[Quote]) -> Dict[str, object]:
    """Gainers/losers/average change over a set of quotes."""
    if not quotes:
        return {'gainers': 0, 'losers': 0, 'avgChange': 0.0, 'total': 0}
    return {
        'gainers': sum(1 for q in quotes if q.percent_change > 0),
        'losers': sum(1 for q in quotes if q.percent_change < 0),
        'avgChange': round(sum(q.percent_change for q in quotes) / len(quotes), 2),
        'total': len(quotes),
    }


def sort_by_change(quotes: Sequence[Quote]) -> List[Quote]:
    return sorted(quotes, key=lambda q: q.percent_change, reverse=True)


def sector_heatmap(quotes: Sequence[Quote], names: Optional[Dict[str, str]] = None,
                   sectors: Optional[Dict[str, str]] = None) -> Dict[str, List[Dict[str, object]]]:
    """
    Heatmap tiles plus per-sector averages.

    Tiles are ordered by sector, then by percent change within the sector.
    Symbols without a known sector are grouped under "Other".
    """
    names = names or {}
    sectors = sectors if sectors is not None else config.SECTORS

    by_sector: Dict[str, List[Quote]] = {}
    for quote in quotes:
        by_sector.setdefault(sectors.get(quote.symbol, "Other"), []).append(quote)

    tiles = []
    groups = []
    for sector in sorted(by_sector):
        members = sort_by_change(by_sector[sector])
        for q in members:
            tiles.append({
                'id': q.symbol,
                'symbol': q.symbol,
                'name': names.get(q.symbol, q.symbol),
                'sector': sector,
                'price': q.price,
                'change': q.percent_change,
                'origin': q.origin.value,
            })
        groups.append({
            'sector': sector,
            'change': round(sum(q.percent_change for q in members) / len(members), 2),
            'symbols': [q.symbol for q in members],
        })
    return {'sectors': tiles, 'groups': groups}


class ContextFormatter:
    """Builds all prompt text for the chat and plan flows."""

    def __init__(self, system_prompt: str = config.SYSTEM_PROMPT, max_headlines: int = config.NEWS_LIMIT):
        self.system_prompt = system_prompt
        self.max_headlines = max_headlines

    # ------------------------------------------------------------------
    # Data sections
    # ------------------------------------------------------------------

    def format_charts(self, analysis: ChartAnalysis) -> str:
        if analysis.empty:
            return "No charts uploaded for this instrument."
        lines = [f"{analysis.charts_analyzed} chart(s) analyzed ({', '.join(analysis.timeframes)})."]
        if analysis.charts_failed:
            lines.append(f"{analysis.charts_failed} chart(s) could not be analyzed.")
        lines.append(analysis.text)
        return "\n".join(lines)

    def format_quotes(self, board: QuoteBoard) -> str:
        breadth = quote_breadth(board.quotes)
        lines = [
            f"Breadth: {breadth['gainers']} up / {breadth['losers']} down, "
            f"average change {breadth['avgChange']:+.2f}% across {breadth['total']} symbols."
        ]
        for q in sort_by_change(board.quotes):
            flag = " (stale)" if q.origin == QuoteOrigin.STALE else ""
            lines.append(
                f"- {q.symbol}: {q.price:.2f} ({q.change:+.2f}, {q.percent_change:+.2f}%) "
                f"H {q.high:.2f} L {q.low:.2f}{flag}"
            )
        if board.missing:
            lines.append(f"Missing quotes: {', '.join(sorted(board.missing))}")
        return "\n".join(lines)

    def format_news(self, items: Sequence[NewsItem]) -> str:
        if not items:
            return "No recent headlines."
        lines = []
        for item in list(items)[: self.max_headlines]:
            stamp = item.published_at.strftime("%Y-%m-%d %H:%M")
            lines.append(f"- [{stamp}] {item.headline} ({item.source})")
        return "\n".join(lines)

    def format_calendar(self, events: Sequence[EconomicEvent]) -> str:
        if not events:
            return "No high or medium impact events scheduled."
        lines = []
        for e in events:
            numbers = ", ".join(
                f"{label} {value}" for label, value in
                (("actual", e.actual), ("forecast", e.forecast), ("previous", e.previous)) if value
            )
            suffix = f" - {numbers}" if numbers else ""
            lines.append(f"- {e.date} {e.time} {e.country} {e.title} [{e.impact.value}]{suffix}")
        return "\n".join(lines)

    def _render_section(self, name: str, result: SourceResult) -> Optional[str]:
        title = SECTION_TITLES[name]
        if isinstance(result, Unavailable):
            if result.reason == NOT_REQUESTED:
                return None
            return f"## {title} [UNAVAILABLE: {result.reason}]\nNo data - do not speculate about this section."

        renderers = {
            "chart_analysis": self.format_charts,
            "quotes": self.format_quotes,
            "news": self.format_news,
            "calendar": self.format_calendar,
        }
        return f"## {title} [AVAILABLE]\n{renderers[name](result.data)}"

    def data_quality_line(self, context: AggregatedContext) -> str:
        available, requested = context.available_count, context.requested_count
        line = f"DATA QUALITY: {available} of {requested} sources available"
        if available < requested:
            missing = [
                SECTION_TITLES[name].split(" (")[0].lower()
                for name, r in context.requested_sections().items() if not r.ok
            ]
            line += f" (degraded mode - missing: {', '.join(missing)})"
        return line

    def format_context(self, context: AggregatedContext) -> str:
        """Full labeled context document for one instrument."""
        parts = [f"# LIVE MARKET CONTEXT: {context.target}", self.data_quality_line(context)]
        for name, result in context.sections().items():
            rendered = self._render_section(name, result)
            if rendered:
                parts.append(rendered)
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Debate prompts
    # ------------------------------------------------------------------

    def format_history(self, history: Optional[Sequence[Dict[str, str]]]) -> str:
        if not history:
            return ""
        turns = list(history)[-config.CHAT_HISTORY_TURNS:]
        lines = []
        for turn in turns:
            # history comes straight from the request body
            if not isinstance(turn, dict) or not isinstance(turn.get("content"), str):
                continue
            role = "User" if turn.get("role") == "user" else "Pippy"
            content = turn["content"].strip()
            if content:
                lines.append(f"{role}: {content}")
        return "\n".join(lines)

    def perspective_prompt(self, query: str, context_text: str = "",
                           history: Optional[Sequence[Dict[str, str]]] = None) -> str:
        """The single enriched prompt sent to both backends."""
        parts = ["Analyze this trading question and provide your perspective concisely."]
        conversation = self.format_history(history)
        if conversation:
            parts.append(f"Recent conversation:\n{conversation}")
        if context_text:
            parts.append(context_text)
            parts.append("Ground your answer in the data above and say so when a section is unavailable.")
        parts.append(f"User Query: {query}")
        parts.append("Provide a clear, focused analysis, including any alternative viewpoints.")
        return "\n\n".join(parts)

    def perspective_system(self, label: str) -> str:
        return f"{self.system_prompt}\n\nYou are {label} providing an independent perspective. Be concise but thorough."

    def synthesis_prompt(self, query: str, perspectives: Sequence) -> str:
        """Embed every perspective verbatim, labeled by its backend."""
        blocks = [
            f"Perspective {i} ({p.origin}):\n{p.text}"
            for i, p in enumerate(perspectives, start=1)
        ]
        return (
            "Synthesize these AI perspectives into a unified, helpful answer.\n\n"
            f"User Query: {query}\n\n"
            + "\n\n".join(blocks)
            + "\n\nHighlight where they agree, note key disagreements, and give one clear, "
            "actionable final answer."
        )

    def synthesis_system(self) -> str:
        return f"{self.system_prompt}\n\nSynthesize both perspectives into a clear, helpful final answer."

    def polish_prompt(self, query: str, perspective) -> str:
        return (
            "Review and refine this answer for the user.\n\n"
            f"User Query: {query}\n\n"
            f"Draft Answer ({perspective.origin}):\n{perspective.text}\n\n"
            "Keep its substance; make it clear, correct and user-friendly."
        )

    def polish_system(self) -> str:
        return f"{self.system_prompt}\n\nProvide the final refined answer. Make it clear and user-friendly."

    def plan_query(self, symbol: str) -> str:
        return (
            f"Build a trading plan for {symbol} for the coming session.\n"
            "Structure it as: 1) Market bias, 2) Key levels, 3) Entry triggers, "
            "4) Stop and targets, 5) Event risk from the calendar, 6) Data caveats."
        )

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def degraded_note(self, succeeded: Sequence[str], total: int) -> str:
        names = ", ".join(succeeded) if succeeded else "none"
        return f"_Degraded mode: {len(succeeded)} of {total} AI sources responded ({names})._"

    def unsynthesized_note(self, origin: str) -> str:
        return f"_Unsynthesized fallback: raw perspective from {origin}; the synthesis step failed._"

    def sources_note(self, sources: Sequence[str]) -> str:
        return f"_Sources: {', '.join(sources)}._"
