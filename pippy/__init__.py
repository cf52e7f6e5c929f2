"""
Agent Pippy - resilient multi-source market aggregation and dual-model synthesis.
"""

__version__ = "0.1.0"
