"""
Query classification: decide whether a chat message needs live market data.

The keyword matcher is a heuristic. It sits behind the QueryClassifier
protocol so a smarter classifier can replace it without touching the
orchestrator.
"""

import re
from typing import Dict, Iterable, Protocol, Set

import config


class QueryClassifier(Protocol):
    def classify(self, query: str) -> Set[str]:
        """Return the data categories the query is about (may be empty)."""
        ...


class KeywordClassifier:
    """Category match on whole words / phrases from a keyword table."""

    def __init__(self, keywords: Dict[str, Iterable[str]] = None):
        table = keywords if keywords is not None else config.QUERY_KEYWORDS
        self._patterns = {
            category: re.compile(
                r"\b(" + "|".join(re.escape(k.lower()) for k in words) + r")\b"
            )
            for category, words in table.items() if words
        }

    @property
    def categories(self) -> Set[str]:
        return set(self._patterns)

    def classify(self, query: str) -> Set[str]:
        text = (query or "").lower()
        return {category for category, pattern in self._patterns.items() if pattern.search(text)}

    def needs_context(self, query: str) -> bool:
        return bool(self.classify(query))
