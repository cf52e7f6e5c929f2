"""
LLM Module - generative backends used by the debate orchestrator.

Providers:
- Gemini (primary, image + text)
- Groq (secondary)
- OpenAI / Anthropic (selectable via PRIMARY_PROVIDER / SECONDARY_PROVIDER)
"""
from .llm_service import LLMService, LLMResponse, GenerativeBackend, build_backend, classify_error

__all__ = [
    'LLMService',
    'LLMResponse',
    'GenerativeBackend',
    'build_backend',
    'classify_error',
]
