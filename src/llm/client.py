"""
LLM client abstraction for multiple LLM providers.

Provides an async ``complete(provider_id, model_id, messages, options)``
interface with:
- Structured logging of requests/responses
- Bounded per-request timeout
- Configurable retry with exponential backoff on timeout/rate-limit
- Usage tracking (tokens)

Providers are registered in a capability-keyed registry: each provider id
maps to a ProviderSpec holding its request adapter (request building and
response-field extraction), base URL, default model and API key. New
providers are added by registering a spec, not by branching here.

Supported providers:
- openai: GPT models (chat completions)
- anthropic: Claude models (Messages API)
- deepseek: DeepSeek models (OpenAI-compatible)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import (
    LLMRateLimitError,
    LLMTimeoutError,
    ProviderError,
    UnknownProviderError,
)

log = structlog.get_logger(__name__)


Message = Dict[str, str]


# =============================================================================
# Response and Options
# =============================================================================


@dataclass
class CompletionOptions:
    """Sampling and transport options for one completion."""

    temperature: float = 0.7
    max_tokens: int = 1000
    timeout: Optional[float] = None  # seconds; provider default if None


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


# =============================================================================
# Request Adapters
# =============================================================================


class ProviderAdapter(ABC):
    """Translates between role/content messages and one provider wire format."""

    @abstractmethod
    def build_request(
        self,
        base_url: str,
        api_key: str,
        model: str,
        messages: List[Message],
        options: CompletionOptions,
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json payload)."""
        pass

    @abstractmethod
    def extract_text(self, data: Dict[str, Any]) -> str:
        """Pull the reply text out of a response body."""
        pass

    @abstractmethod
    def extract_usage(self, data: Dict[str, Any]) -> Dict[str, int]:
        pass


class OpenAICompatibleAdapter(ProviderAdapter):
    """
    Chat completions format.

    Used by providers that follow the OpenAI API format:
    - OpenAI: https://api.openai.com/v1
    - DeepSeek: https://api.deepseek.com
    """

    def build_request(self, base_url, api_key, model, messages, options):
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        return f"{base_url}/chat/completions", headers, payload

    def extract_text(self, data):
        if data.get("choices"):
            return data["choices"][0].get("message", {}).get("content") or ""
        return ""

    def extract_usage(self, data):
        return {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }


class AnthropicAdapter(ProviderAdapter):
    """Anthropic Messages API format.

    System messages are lifted into the ``system`` field. The remaining
    turns are merged so roles alternate, and a placeholder user turn is
    inserted when the conversation would otherwise not open with the user.
    """

    api_version = "2023-06-01"
    opening_placeholder = "(The client has joined the session.)"

    def build_request(self, base_url, api_key, model, messages, options):
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        turns: List[Message] = []
        for message in messages:
            if message["role"] == "system":
                continue
            if turns and turns[-1]["role"] == message["role"]:
                turns[-1] = {
                    "role": message["role"],
                    "content": f"{turns[-1]['content']}\n\n{message['content']}",
                }
            else:
                turns.append({"role": message["role"], "content": message["content"]})

        if not turns or turns[0]["role"] != "user":
            turns.insert(0, {"role": "user", "content": self.opening_placeholder})

        headers = {
            "x-api-key": api_key,
            "content-type": "application/json",
            "anthropic-version": self.api_version,
        }
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens,
            "messages": turns,
            "temperature": options.temperature,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)

        return f"{base_url}/messages", headers, payload

    def extract_text(self, data):
        if data.get("content"):
            return data["content"][0].get("text", "")
        return ""

    def extract_usage(self, data):
        return {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }


# =============================================================================
# Provider Registry
# =============================================================================


@dataclass
class ProviderSpec:
    """Everything needed to call one provider."""

    name: str
    adapter: ProviderAdapter
    base_url: str
    default_model: str
    api_key: Optional[str] = None


class LLMProviderRegistry:
    """Maps provider ids to specs and performs completions against them."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        """
        Initialize an empty registry.

        Args:
            timeout: Default request timeout in seconds (settings.llm_timeout)
            max_retries: Retries after timeout/rate-limit (settings.llm_max_retries)
            retry_base_delay: Backoff base in seconds (settings.llm_retry_base_delay)
        """
        self._providers: Dict[str, ProviderSpec] = {}
        self.timeout = timeout if timeout is not None else settings.llm_timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.llm_max_retries
        )
        self.retry_base_delay = (
            retry_base_delay
            if retry_base_delay is not None
            else settings.llm_retry_base_delay
        )

    def register(self, spec: ProviderSpec) -> None:
        self._providers[spec.name.lower()] = spec
        log.info(
            "llm_provider_registered",
            provider=spec.name,
            default_model=spec.default_model,
            configured=bool(spec.api_key),
        )

    def get(self, provider_id: str) -> ProviderSpec:
        spec = self._providers.get(provider_id.lower())
        if spec is None:
            raise UnknownProviderError(
                f"Unknown LLM provider '{provider_id}'. "
                f"Registered providers: {', '.join(sorted(self._providers))}",
                provider=provider_id,
            )
        return spec

    def has(self, provider_id: Optional[str]) -> bool:
        return bool(provider_id) and provider_id.lower() in self._providers

    @property
    def provider_ids(self) -> List[str]:
        return sorted(self._providers)

    async def complete(
        self,
        provider_id: str,
        model_id: Optional[str],
        messages: List[Message],
        options: Optional[CompletionOptions] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the given provider.

        Args:
            provider_id: Registered provider id (e.g. "openai")
            model_id: Model id; provider default if None
            messages: Role/content messages, system prompt first
            options: Sampling/timeout options

        Returns:
            LLMResponse with content and usage stats

        Raises:
            UnknownProviderError: If provider is not registered
            LLMTimeoutError: After all attempts timed out
            LLMRateLimitError: After all attempts were rate limited
            ProviderError: On missing API key, other HTTP/transport errors,
                or an empty/unparseable response
        """
        spec = self.get(provider_id)
        options = options or CompletionOptions()
        model = model_id or spec.default_model
        timeout = options.timeout if options.timeout is not None else self.timeout

        if not spec.api_key:
            raise ProviderError(
                f"API key for provider '{spec.name}' is not configured",
                provider=spec.name,
            )

        url, headers, payload = spec.adapter.build_request(
            spec.base_url, spec.api_key, model, messages, options
        )

        for attempt in range(self.max_retries + 1):
            start = time.perf_counter()

            log.debug(
                "llm_call_start",
                provider=spec.name,
                model=model,
                message_count=len(messages),
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                attempt=attempt + 1,
                max_retries=self.max_retries,
            )

            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(url, headers=headers, json=payload)
                    response.raise_for_status()
                    data = response.json()

            except httpx.TimeoutException as e:
                log.warning(
                    "llm_timeout",
                    provider=spec.name,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    timeout_seconds=timeout,
                )
                if attempt < self.max_retries:
                    await self._backoff(attempt, reason="timeout")
                    continue
                raise LLMTimeoutError(
                    f"LLM call timed out after {attempt + 1} attempt(s) "
                    f"(timeout={timeout}s)",
                    provider=spec.name,
                ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code == 429:
                    log.warning(
                        "llm_rate_limit",
                        provider=spec.name,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                    )
                    if attempt < self.max_retries:
                        await self._backoff(attempt, reason="rate_limit")
                        continue
                    raise LLMRateLimitError(
                        f"Rate limit exceeded after {attempt + 1} attempt(s)",
                        provider=spec.name,
                    ) from e

                log.error(
                    "llm_http_error",
                    provider=spec.name,
                    status_code=status_code,
                )
                raise ProviderError(
                    f"{spec.name} returned HTTP {status_code}", provider=spec.name
                ) from e

            except (httpx.HTTPError, ValueError) as e:
                # Transport failures and non-JSON bodies
                log.error(
                    "llm_transport_error",
                    provider=spec.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise ProviderError(
                    f"{spec.name} request failed: {type(e).__name__}",
                    provider=spec.name,
                ) from e

            latency_ms = (time.perf_counter() - start) * 1000
            try:
                content = spec.adapter.extract_text(data)
                usage = spec.adapter.extract_usage(data)
                response_model = data.get("model", model)
            except (AttributeError, KeyError, IndexError, TypeError) as e:
                log.error(
                    "llm_unexpected_response",
                    provider=spec.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise ProviderError(
                    f"{spec.name} returned an unexpected response shape",
                    provider=spec.name,
                ) from e

            if not isinstance(content, str):
                raise ProviderError(
                    f"{spec.name} returned an unexpected response shape",
                    provider=spec.name,
                )
            if not content:
                raise ProviderError(
                    f"{spec.name} returned an empty response", provider=spec.name
                )

            log.info(
                "llm_call_complete",
                provider=spec.name,
                model=model,
                latency_ms=round(latency_ms, 2),
                input_tokens=usage["input_tokens"],
                output_tokens=usage["output_tokens"],
                attempt=attempt + 1,
            )

            return LLMResponse(
                content=content,
                model=response_model,
                usage=usage,
                latency_ms=latency_ms,
                raw_response=data,
            )

        # Unreachable: loop either returns LLMResponse or raises an exception
        assert False, "unreachable"

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.retry_base_delay * (2**attempt)
        log.info(
            "llm_retry_scheduled",
            reason=reason,
            delay_seconds=delay,
            next_attempt=attempt + 2,
        )
        await asyncio.sleep(delay)


# =============================================================================
# Default Registry
# =============================================================================


DEFAULT_PROVIDERS: Dict[str, Dict[str, str]] = {
    "openai": dict(base_url="https://api.openai.com/v1", default_model="gpt-4o"),
    "anthropic": dict(
        base_url="https://api.anthropic.com/v1",
        default_model="claude-sonnet-4-5-20250929",
    ),
    "deepseek": dict(base_url="https://api.deepseek.com", default_model="deepseek-chat"),
}


def build_default_registry() -> LLMProviderRegistry:
    """
    Registry with the built-in providers and API keys from settings.

    Providers without a configured key are still registered; calling them
    fails with ProviderError, which the orchestrator degrades gracefully.
    """
    registry = LLMProviderRegistry()
    registry.register(
        ProviderSpec(
            name="openai",
            adapter=OpenAICompatibleAdapter(),
            api_key=settings.openai_api_key,
            **DEFAULT_PROVIDERS["openai"],
        )
    )
    registry.register(
        ProviderSpec(
            name="anthropic",
            adapter=AnthropicAdapter(),
            api_key=settings.anthropic_api_key,
            **DEFAULT_PROVIDERS["anthropic"],
        )
    )
    registry.register(
        ProviderSpec(
            name="deepseek",
            adapter=OpenAICompatibleAdapter(),
            api_key=settings.deepseek_api_key,
            **DEFAULT_PROVIDERS["deepseek"],
        )
    )
    return registry
