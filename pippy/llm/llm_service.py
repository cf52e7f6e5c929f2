"""
LLM Service - Abstraction layer for generative backend calls.

Supports multiple providers behind one interface:
- Google Gemini (primary, supports image + text for chart analysis)
- Groq (secondary, via its OpenAI-compatible endpoint)
- OpenAI
- Anthropic

Failures are raised as TransportError / RateLimited / InvalidPayload so the
debate orchestrator can tell a dead backend from an empty answer.
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import config
from ..resilience.errors import InvalidPayload, ProviderError, RateLimited, TransportError

logger = logging.getLogger(__name__)

# Try to import Google Generative AI
try:
    import google.generativeai as genai
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    genai = None


@dataclass
class LLMResponse:
    """Response from LLM call."""
    content: str
    model: str
    provider: str
    tokens_used: int
    latency_ms: int


class GenerativeBackend(Protocol):
    """What the orchestrator needs from a backend."""
    name: str

    def is_available(self) -> bool:
        ...

    async def generate(self, prompt: str, system: str) -> str:
        ...


def classify_error(provider: str, error: Exception) -> ProviderError:
    """Map an SDK exception onto the provider error taxonomy."""
    if isinstance(error, ProviderError):
        return error
    status = getattr(error, 'status_code', None) or getattr(error, 'code', None)
    kind = type(error).__name__
    if status == 429 or 'RateLimit' in kind or 'ResourceExhausted' in kind:
        return RateLimited(f"{provider} rate limited: {error}", provider=provider)
    if isinstance(status, int):
        return TransportError(f"{provider} error {status}: {error}", status_code=status, provider=provider)
    return TransportError(f"{provider} call failed: {kind}: {error}", provider=provider)


class LLMService:
    """
    One generative backend.

    call() is blocking (SDK clients are synchronous); generate() and
    generate_with_image() run it in a worker thread for the event loop.
    """

    def __init__(
        self,
        provider: str = "gemini",  # 'gemini', 'groq', 'openai' or 'anthropic'
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = config.LLM_TEMPERATURE,
        max_tokens: int = config.LLM_MAX_TOKENS,
        client: Any = None,
    ):
        """
        Args:
            provider: Backend family
            model: Model name (defaults from config.DEFAULT_MODELS)
            api_key: API key (defaults to the provider's env var)
            temperature: Sampling temperature
            max_tokens: Max response tokens
            client: Pre-built SDK client (tests inject fakes here)
        """
        self.provider = provider
        self.name = provider
        self.model = model or config.DEFAULT_MODELS.get(provider, "")
        self.api_key = api_key or os.environ.get(config.PROVIDER_KEYS.get(provider, ""), "")
        if provider == "gemini" and not self.api_key:
            self.api_key = os.environ.get('GOOGLE_API_KEY', "")
        self.temperature = temperature
        self.max_tokens = max_tokens

        # Track usage
        self.calls = 0
        self.failures = 0
        self.total_latency_ms = 0

        self._client = client
        if self._client is None and self.api_key:
            self._init_client()

    def _init_client(self):
        """Initialize the API client."""
        if self.provider == "gemini":
            if GEMINI_AVAILABLE and genai:
                genai.configure(api_key=self.api_key)
                self._client = genai
                logger.info(f"Gemini client initialized with model: {self.model}")
            else:
                logger.warning("google-generativeai package not installed. Run: pip install google-generativeai")
        elif self.provider in ("groq", "openai"):
            try:
                import openai
            except ImportError:
                logger.warning("openai package not installed")
                return
            base_url = config.GROQ_BASE_URL if self.provider == "groq" else None
            self._client = openai.OpenAI(api_key=self.api_key, base_url=base_url)
            logger.info(f"{self.provider} client initialized with model: {self.model}")
        elif self.provider == "anthropic":
            try:
                import anthropic
            except ImportError:
                logger.warning("anthropic package not installed")
                return
            self._client = anthropic.Anthropic(api_key=self.api_key)
            logger.info("Anthropic client initialized")
        else:
            logger.error(f"Unknown provider: {self.provider}")

    @property
    def supports_images(self) -> bool:
        return self.provider == "gemini"

    def is_available(self) -> bool:
        """Check if LLM service is available."""
        return self._client is not None

    def _call_gemini(self, prompt: str, system: str, image: Optional[Dict[str, Any]]) -> tuple:
        model = self._client.GenerativeModel(self.model, system_instruction=system)
        contents: Any = [prompt, image] if image else prompt
        response = model.generate_content(
            contents,
            generation_config={
                "temperature": self.temperature,
                "max_output_tokens": self.max_tokens,
            },
        )

        if not response.candidates:
            raise InvalidPayload("Gemini returned no candidates", provider=self.provider)

        candidate = response.candidates[0]
        content = None
        if hasattr(candidate, 'content') and hasattr(candidate.content, 'parts'):
            parts = candidate.content.parts
            if parts:
                content = "".join(part.text for part in parts if hasattr(part, 'text'))
        if not content:
            content = response.text

        # Gemini doesn't always provide token counts
        tokens = len(prompt.split()) + len((content or "").split())
        return content, tokens

    def _call_openai_compatible(self, prompt: str, system: str) -> tuple:
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = response.choices[0].message.content if response.choices else None
        usage = getattr(response, 'usage', None)
        return content, getattr(usage, 'total_tokens', 0) if usage else 0

    def _call_anthropic(self, prompt: str, system: str) -> tuple:
        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
            system=system,
        )
        content = response.content[0].text if response.content else None
        return content, response.usage.input_tokens + response.usage.output_tokens

    def call(self, prompt: str, system: str = config.SYSTEM_PROMPT,
             image: Optional[Dict[str, Any]] = None) -> LLMResponse:
        """
        Call the backend once.

        Args:
            prompt: User prompt
            system: System instruction
            image: Optional {"mime_type": ..., "data": bytes} (Gemini only)

        Raises:
            TransportError / RateLimited: backend unreachable or refusing
            InvalidPayload: backend answered with no text
        """
        if not self._client:
            raise TransportError(
                f"{self.provider} client not initialized (missing API key?)", provider=self.provider,
            )
        if image is not None and not self.supports_images:
            raise InvalidPayload(f"{self.provider} does not accept image input", provider=self.provider)

        start_time = time.time()
        self.calls += 1
        try:
            if self.provider == "gemini":
                content, tokens = self._call_gemini(prompt, system, image)
            elif self.provider in ("groq", "openai"):
                content, tokens = self._call_openai_compatible(prompt, system)
            elif self.provider == "anthropic":
                content, tokens = self._call_anthropic(prompt, system)
            else:
                raise TransportError(f"Unknown provider: {self.provider}", provider=self.provider)
        except Exception as e:
            self.failures += 1
            error = classify_error(self.provider, e)
            logger.warning(f"LLM call failed ({self.provider}): {error}")
            raise error from e

        if not content or not content.strip():
            self.failures += 1
            raise InvalidPayload(f"{self.provider} returned empty content", provider=self.provider)

        latency_ms = int((time.time() - start_time) * 1000)
        self.total_latency_ms += latency_ms
        logger.info(f"LLM call ({self.provider}/{self.model}): {tokens} tokens, {latency_ms}ms")

        return LLMResponse(
            content=content.strip(),
            model=self.model,
            provider=self.provider,
            tokens_used=tokens,
            latency_ms=latency_ms,
        )

    async def generate(self, prompt: str, system: str = config.SYSTEM_PROMPT) -> str:
        response = await asyncio.to_thread(self.call, prompt, system)
        return response.content

    async def generate_with_image(self, prompt: str, system: str, image_bytes: bytes, mime_type: str) -> str:
        image = {"mime_type": mime_type, "data": image_bytes}
        response = await asyncio.to_thread(self.call, prompt, system, image)
        return response.content

    def get_stats(self) -> Dict:
        """Get usage statistics."""
        return {
            'provider': self.provider,
            'model': self.model,
            'is_available': self.is_available(),
            'calls': self.calls,
            'failures': self.failures,
            'avg_latency_ms': self.total_latency_ms / max(1, self.calls - self.failures),
        }


def build_backend(provider: str) -> LLMService:
    """Create the backend configured for provider from env/config."""
    return LLMService(provider=provider)
