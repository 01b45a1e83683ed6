"""OpenAI-compatible LLM client with an explicit model capability table."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

from degen_research.config import settings
from degen_research.errors import ConfigurationError, EmptyContentError
from degen_research.services import logger as log_service

ModelClass = Literal["reasoning", "fast"]
TokenParam = Literal["max_tokens", "max_completion_tokens"]


@dataclass(frozen=True)
class ModelCapability:
    model_class: ModelClass
    token_param: TokenParam = "max_tokens"
    supports_temperature: bool = True


MODEL_CAPABILITIES: dict[str, ModelCapability] = {
    "o4-mini-2025-04-16": ModelCapability("reasoning", "max_completion_tokens", False),
    "o4-mini": ModelCapability("reasoning", "max_completion_tokens", False),
    "o3-mini": ModelCapability("reasoning", "max_completion_tokens", False),
    "o3": ModelCapability("reasoning", "max_completion_tokens", False),
    "gpt-5": ModelCapability("reasoning", "max_completion_tokens", False),
    "gpt-5-mini": ModelCapability("reasoning", "max_completion_tokens", False),
    "gpt-4.1-2025-04-14": ModelCapability("fast"),
    "gpt-4.1": ModelCapability("fast"),
    "gpt-4.1-mini-2025-04-14": ModelCapability("fast"),
    "gpt-4.1-mini": ModelCapability("fast"),
    "gpt-4o": ModelCapability("fast"),
    "gpt-4o-mini": ModelCapability("fast"),
}

DEFAULT_CAPABILITY = ModelCapability("fast")

MODEL_ERROR_CODES = {"model_not_found", "unsupported_model", "invalid_model"}
MODEL_ERROR_MARKERS = (
    "model not found",
    "does not exist",
    "unsupported model",
    "unknown model",
    "invalid model",
    "not supported with this model",
    "model_not_found",
)


def capability_for(model: str) -> ModelCapability:
    return MODEL_CAPABILITIES.get(model, DEFAULT_CAPABILITY)


def is_model_error(exc: BaseException) -> bool:
    """True when the provider rejected the model itself rather than the request."""
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.lower() in MODEL_ERROR_CODES:
        return True
    if getattr(exc, "status_code", None) == 404:
        return True
    message = str(exc).lower()
    return "model" in message and any(marker in message for marker in MODEL_ERROR_MARKERS)


@dataclass
class Completion:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMClient:
    """Single-prompt completion wrapper around ``AsyncOpenAI``.

    A model-related failure is retried once on ``fallback_model``; every other
    error propagates to the caller's retry wrapper.
    """

    def __init__(self, openai_client: Any, *, fallback_model: str | None = None):
        self._client = openai_client
        self.fallback_model = settings.fallback_model if fallback_model is None else fallback_model

    def _request_kwargs(
        self, model: str, max_tokens: int, temperature: float, prompt: str
    ) -> dict[str, Any]:
        capability = capability_for(model)
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            capability.token_param: max_tokens,
        }
        if capability.supports_temperature:
            kwargs["temperature"] = temperature
        return kwargs

    async def _create(
        self, model: str, max_tokens: int, temperature: float, prompt: str, caller: str
    ) -> Completion:
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(model, max_tokens, temperature, prompt)
            )
        except Exception as exc:
            log_service.log_llm_call(
                model=model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="failed",
                error=str(exc),
            )
            raise

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        usage = getattr(response, "usage", None)
        completion = Completion(
            content=content.strip() if isinstance(content, str) else "",
            model=model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        log_service.log_llm_call(
            model=model,
            caller=caller,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            duration_ms=elapsed_ms,
        )
        if not completion.content:
            raise EmptyContentError(f"{caller}: {model} returned no content")
        return completion

    async def complete(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        prompt: str,
        *,
        caller: str = "llm",
    ) -> Completion:
        try:
            return await self._create(model, max_tokens, temperature, prompt, caller)
        except Exception as exc:
            fallback = self.fallback_model
            if not fallback or fallback == model or not is_model_error(exc):
                raise
            logger.warning(f"{caller}: model {model} rejected ({exc}), falling back to {fallback}")
            return await self._create(fallback, max_tokens, temperature, prompt, caller)


def get_client() -> LLMClient:
    """Build the LLM client from settings."""
    from openai import AsyncOpenAI

    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    kwargs: dict[str, Any] = {"api_key": settings.openai_api_key}
    if settings.openai_base_url.strip():
        kwargs["base_url"] = settings.openai_base_url.strip()
    return LLMClient(AsyncOpenAI(**kwargs))
