"""LLM provider factory for structured generation.

Usage:
    from studygen.services.llm_service.llm import get_llm_structured

    llm = get_llm_structured()
    response = await llm.ainvoke("Return {\"ok\": true}")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
import requests
from langchain_core.language_models.llms import LLM
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_nvidia_ai_endpoints import ChatNVIDIA
from langchain_ollama import ChatOllama

from studygen.core.config import settings
from studygen.services.llm_service.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

# ── Provider registry ─────────────────────────────────────────

_PROVIDERS: Dict[str, Any] = {}

# ── LLM instance cache (keyed on frozen kwargs) ───────────────
_llm_cache: Dict[tuple, Any] = {}
_LLM_CACHE_MAX = 16

# Completion endpoint statuses treated as transient
_UNAVAILABLE_CODES = {429, 500, 502, 503, 504}


def _register_providers():
    """Build the provider map lazily (called once on first ``get_llm_structured``)."""
    if _PROVIDERS:
        return

    _PROVIDERS["GOOGLE"] = _build_google
    _PROVIDERS["OLLAMA"] = _build_ollama
    _PROVIDERS["NVIDIA"] = _build_nvidia
    _PROVIDERS["HTTP"] = _build_http


# ── Builder functions ─────────────────────────────────────────


def _common_kwargs(
    temperature: float,
    top_p: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> dict:
    """Shared kwargs for all chat providers."""
    kwargs = {
        "temperature": temperature,
        "timeout": settings.LLM_TIMEOUT,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if top_p is not None:
        kwargs["top_p"] = top_p
    return kwargs


def _build_google(temperature: float, top_p: float = None, max_tokens: int = None, top_k: int = None):
    kw = _common_kwargs(temperature, top_p, max_tokens)
    kw.update(
        model=settings.GOOGLE_MODEL,
        google_api_key=settings.GOOGLE_API_KEY,
        # Retries are owned by the stage runner
        max_retries=0,
    )
    if top_k is not None:
        kw["top_k"] = top_k
    return ChatGoogleGenerativeAI(**kw)


def _build_ollama(temperature: float, top_p: float = None, max_tokens: int = None, top_k: int = None):
    kw = _common_kwargs(temperature, top_p, None)
    kw["model"] = settings.OLLAMA_MODEL
    if max_tokens:
        kw["num_predict"] = max_tokens
    if top_k is not None:
        kw["top_k"] = top_k
    return ChatOllama(**kw)


def _build_nvidia(temperature: float, top_p: float = None, max_tokens: int = None, top_k: int = None):
    kw = _common_kwargs(temperature, top_p, max_tokens)
    kw.update(
        model=settings.NVIDIA_MODEL,
        api_key=settings.NVIDIA_API_KEY,
    )
    return ChatNVIDIA(**kw)


def _build_http(temperature: float, top_p: float = None, max_tokens: int = None, top_k: int = None):
    return HTTPCompletionLM(
        temperature=temperature,
        max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
    )


# ── Public API ────────────────────────────────────────────────


def get_llm_structured(
    temperature: Optional[float] = None,
    top_p: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
):
    """Return a LLM instance for structured output.

    Args:
        temperature: Generation temperature (default: LLM_TEMPERATURE_STRUCTURED)
        top_p: Nucleus sampling parameter (default: LLM_TOP_P_STRUCTURED)
        max_tokens: Max tokens to generate (default: LLM_MAX_TOKENS)
        provider: Ignore global config and use a specific provider.

    Returns:
        LLM instance exposing ``ainvoke``.
    """
    _register_providers()

    temp = temperature if temperature is not None else settings.LLM_TEMPERATURE_STRUCTURED
    p = top_p if top_p is not None else settings.LLM_TOP_P_STRUCTURED
    tokens = max_tokens if max_tokens is not None else settings.LLM_MAX_TOKENS

    active_provider = (provider or settings.LLM_PROVIDER).upper()
    top_k = settings.LLM_TOP_K if active_provider in ("GOOGLE", "OLLAMA") else None

    builder = _PROVIDERS.get(active_provider)
    if builder is None:
        raise ValueError(f"Unknown LLM provider {active_provider!r}")

    cache_key = ("structured", active_provider, temp, p, tokens, top_k)
    cached = _llm_cache.get(cache_key)
    if cached is not None:
        return cached

    instance = builder(temperature=temp, top_p=p, max_tokens=tokens, top_k=top_k)
    if len(_llm_cache) >= _LLM_CACHE_MAX:
        _llm_cache.pop(next(iter(_llm_cache)))
    _llm_cache[cache_key] = instance
    logger.debug("Built %s LLM (temperature=%s, max_tokens=%s)", active_provider, temp, tokens)
    return instance


# ── Plain REST completion endpoint ────────────────────────────


class HTTPCompletionLM(LLM):
    """LangChain wrapper for a plain REST completion endpoint.

    Sends ``{"message", "model", "temperature", "max_tokens"}`` and reads
    ``data.response`` from the JSON reply.  Transient failures are raised as
    :class:`ServiceUnavailable` without retrying.
    """

    api_url: str = settings.COMPLETION_API_URL
    model_name: str = settings.COMPLETION_API_MODEL
    temperature: float = 0.1
    max_tokens: int = 4000

    @property
    def _llm_type(self) -> str:
        return "http_completion"

    def _build_payload(self, prompt: str) -> dict:
        return {
            "message": prompt,
            "model": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _check_status(self, status_code: int) -> None:
        if status_code in _UNAVAILABLE_CODES:
            raise ServiceUnavailable(f"completion endpoint returned HTTP {status_code}")

    def _call(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        try:
            resp = requests.post(
                self.api_url,
                json=self._build_payload(prompt),
                headers={"Content-Type": "application/json"},
                timeout=settings.LLM_TIMEOUT,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
            raise ServiceUnavailable(f"completion endpoint unreachable: {exc}") from exc

        self._check_status(resp.status_code)
        resp.raise_for_status()
        return resp.json()["data"]["response"]

    async def _acall(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        try:
            async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT) as client:
                resp = await client.post(
                    self.api_url,
                    json=self._build_payload(prompt),
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ServiceUnavailable(f"completion endpoint unreachable: {exc}") from exc

        self._check_status(resp.status_code)
        resp.raise_for_status()
        return resp.json()["data"]["response"]
