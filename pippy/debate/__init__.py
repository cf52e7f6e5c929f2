"""Dual-model debate, query classification and plan generation."""
from .classifier import KeywordClassifier, QueryClassifier
from .orchestrator import DebateMode, DebateOrchestrator, DebateOutcome, DebatePerspective
from .plan import TradingPlan, TradingPlanGenerator

__all__ = [
    'KeywordClassifier',
    'QueryClassifier',
    'DebateMode',
    'DebateOrchestrator',
    'DebateOutcome',
    'DebatePerspective',
    'TradingPlan',
    'TradingPlanGenerator',
]
