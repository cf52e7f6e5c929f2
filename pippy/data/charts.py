"""
Chart analysis over uploaded chart screenshots.

Uploads themselves are handled elsewhere; this module only lists what was
uploaded for a pair and asks a vision-capable backend to read each image.
Per-chart analyses are cached by chart id (path + mtime), so re-uploading a
chart invalidates its entry and unchanged charts are not re-analyzed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import config
from ..cache.ttl_cache import TTLCache
from ..resilience.errors import ProviderError
from ..resilience.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

CHART_SYSTEM_PROMPT = (
    "You are an expert technical analyst reading a trading chart screenshot. "
    "Be concise and concrete."
)


@dataclass(frozen=True)
class ChartImage:
    """An uploaded chart."""
    chart_id: str
    pair: str
    timeframe: str
    path: str
    mime_type: str
    uploaded_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.chart_id,
            'pair': self.pair,
            'timeframe': self.timeframe,
            'filename': Path(self.path).name,
            'path': self.path,
            'uploadedAt': self.uploaded_at.isoformat(),
        }


@dataclass
class ChartAnalysis:
    """Combined analysis of all charts for a pair. Empty when nothing was uploaded."""
    pair: str
    charts_analyzed: int = 0
    charts_failed: int = 0
    text: str = ""
    timeframes: List[str] = field(default_factory=list)
    stale_charts: int = 0

    @property
    def empty(self) -> bool:
        return self.charts_analyzed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pair': self.pair,
            'chartsAnalyzed': self.charts_analyzed,
            'chartsFailed': self.charts_failed,
            'staleCharts': self.stale_charts,
            'timeframes': self.timeframes,
            'analysis': self.text,
        }


class ChartStore(Protocol):
    def list_charts(self, pair: str, timeframe: Optional[str] = None) -> List[ChartImage]:
        ...

    def read(self, chart: ChartImage) -> bytes:
        ...


class LocalChartStore:
    """Reads charts laid out as <root>/<pair>/<timeframe>/<file>."""

    def __init__(self, root: str = config.CHART_UPLOAD_DIR):
        self.root = Path(root)

    def list_charts(self, pair: str, timeframe: Optional[str] = None) -> List[ChartImage]:
        pair_dir = self.root / pair.upper()
        if not pair_dir.is_dir():
            return []

        timeframe_dirs = [pair_dir / timeframe] if timeframe else sorted(p for p in pair_dir.iterdir() if p.is_dir())
        charts = []
        for tf_dir in timeframe_dirs:
            if not tf_dir.is_dir():
                continue
            for path in sorted(tf_dir.iterdir()):
                mime_type = config.CHART_EXTENSIONS.get(path.suffix.lower())
                if not mime_type or not path.is_file():
                    continue
                mtime = path.stat().st_mtime
                charts.append(ChartImage(
                    chart_id=f"{path}:{int(mtime)}",
                    pair=pair.upper(),
                    timeframe=tf_dir.name,
                    path=str(path),
                    mime_type=mime_type,
                    uploaded_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
                ))
        return charts

    def read(self, chart: ChartImage) -> bytes:
        return Path(chart.path).read_bytes()


def group_by_timeframe(charts: List[ChartImage], timeframes: Optional[List[str]] = None) -> Dict[str, List[ChartImage]]:
    """Charts keyed by timeframe; every known timeframe is present, newest upload first."""
    grouped: Dict[str, List[ChartImage]] = {tf: [] for tf in (timeframes or config.TIMEFRAMES)}
    for chart in charts:
        grouped.setdefault(chart.timeframe, []).append(chart)
    for items in grouped.values():
        items.sort(key=lambda c: c.uploaded_at, reverse=True)
    return grouped


class VisionBackend(Protocol):
    name: str

    async def generate_with_image(self, prompt: str, system: str, image_bytes: bytes, mime_type: str) -> str:
        ...


class ChartAnalyzer:
    """
    Analyze uploaded charts with a vision backend, through the TTL cache.

    A chart whose refresh fails falls back to its last cached analysis.
    The call fails only if no chart produced any analysis at all.
    """

    def __init__(
        self,
        store: ChartStore,
        backend: VisionBackend,
        cache: Optional[TTLCache] = None,
        policy: Optional[RetryPolicy] = None,
        ttl_seconds: float = config.CHART_CACHE_TTL_SECONDS,
        sleep=asyncio.sleep,
    ):
        self.store = store
        self.backend = backend
        self.cache = cache if cache is not None else TTLCache(name="charts")
        self.policy = policy or RetryPolicy(
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            attempt_timeout=config.LLM_CALL_DEADLINE_SECONDS,
        )
        self.ttl_seconds = ttl_seconds
        self.sleep = sleep

    def _prompt(self, chart: ChartImage) -> str:
        return (
            f"Analyze this {chart.pair} {chart.timeframe} chart.\n"
            "Report: 1) trend direction, 2) key support and resistance levels, "
            "3) notable patterns, 4) a short directional bias. Keep it under 120 words."
        )

    async def _analyze_one(self, chart: ChartImage) -> tuple:
        """Return (text, stale) for one chart; raises if nothing is available."""
        entry = self.cache.get_fresh(chart.chart_id, self.ttl_seconds)
        if entry is not None:
            return entry.value, False

        async def attempt() -> str:
            image_bytes = await asyncio.to_thread(self.store.read, chart)
            return await self.backend.generate_with_image(
                self._prompt(chart), CHART_SYSTEM_PROMPT, image_bytes, chart.mime_type,
            )

        try:
            text = await with_retry(attempt, self.policy, name=f"chart {chart.chart_id}", sleep=self.sleep)
        except (ProviderError, OSError) as e:
            stale = self.cache.get(chart.chart_id)
            if stale is not None:
                logger.warning(f"Using stale analysis for {chart.path}: {e}")
                return stale.value, True
            raise

        self.cache.put(chart.chart_id, text)
        return text, False

    async def analyze(self, pair: str, timeframe: Optional[str] = None) -> ChartAnalysis:
        """
        Analyze every uploaded chart for pair (optionally one timeframe).

        Returns an empty ChartAnalysis when no charts were uploaded.

        Raises:
            ProviderError / OSError: every chart failed and none was cached
        """
        charts = await asyncio.to_thread(self.store.list_charts, pair, timeframe)
        if not charts:
            logger.info(f"No charts uploaded for {pair}")
            return ChartAnalysis(pair=pair.upper())

        outcomes = await asyncio.gather(*(self._analyze_one(c) for c in charts), return_exceptions=True)

        sections = []
        timeframes = []
        failures = []
        stale_count = 0
        for chart, outcome in zip(charts, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Chart analysis failed for {chart.path}: {outcome}")
                failures.append(outcome)
                continue
            text, stale = outcome
            stale_count += int(stale)
            label = f"[{chart.timeframe}]" + (" (cached, may be outdated)" if stale else "")
            sections.append(f"{label} {text}")
            if chart.timeframe not in timeframes:
                timeframes.append(chart.timeframe)

        if not sections:
            raise failures[0]

        return ChartAnalysis(
            pair=pair.upper(),
            charts_analyzed=len(sections),
            charts_failed=len(failures),
            text="\n".join(sections),
            timeframes=timeframes,
            stale_charts=stale_count,
        )
