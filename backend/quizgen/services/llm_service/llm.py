"""LLM provider factory with timeout and token limits.

Usage:
    from quizgen.services.llm_service.llm import get_llm

    llm = get_llm(temperature=0.7)
    response = llm.invoke([("system", "..."), ("human", "...")])
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
import requests
from langchain_core.language_models.llms import LLM
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_nvidia_ai_endpoints import ChatNVIDIA
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from quizgen.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "OPENAI"

# ── Provider registry ─────────────────────────────────────────

_PROVIDERS: Dict[str, Callable[..., Any]] = {}

# ── LLM instance cache (keyed on frozen kwargs) ───────────────
_llm_cache: Dict[tuple, Any] = {}
_LLM_CACHE_MAX = 16


def _register_providers():
    """Build the provider map lazily (called once on first ``get_llm``)."""
    if _PROVIDERS:
        return

    _PROVIDERS["OPENAI"] = _build_openai
    _PROVIDERS["OLLAMA"] = _build_ollama
    _PROVIDERS["GOOGLE"] = _build_google
    _PROVIDERS["NVIDIA"] = _build_nvidia
    _PROVIDERS["MYOPENLM"] = _build_openlm


# ── Builder functions ─────────────────────────────────────────


def _common_kwargs(temperature: float, timeout: float, max_tokens: Optional[int] = None) -> dict:
    """Shared kwargs for all providers."""
    kwargs = {
        "temperature": temperature,
        "timeout": timeout,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    return kwargs


def _build_openai(model: Optional[str], temperature: float, timeout: float, max_tokens: Optional[int] = None):
    """Build OpenAI chat client; ``n=1`` so exactly one choice comes back."""
    kw = _common_kwargs(temperature, timeout, max_tokens)
    kw.update(
        model=model or settings.OPENAI_MODEL,
        api_key=settings.OPENAI_API_KEY or None,
        n=1,
        max_retries=0,  # retries are owned by the structured extractor
    )
    if settings.OPENAI_BASE_URL:
        kw["base_url"] = settings.OPENAI_BASE_URL
    return ChatOpenAI(**kw)


def _build_ollama(model: Optional[str], temperature: float, timeout: float, max_tokens: Optional[int] = None):
    """Build Ollama client. Ollama calls the token limit ``num_predict``."""
    # The ollama httpx client has no retry layer of its own
    kw = {"temperature": temperature, "model": model or settings.OLLAMA_MODEL}
    if max_tokens:
        kw["num_predict"] = max_tokens
    kw["client_kwargs"] = {"timeout": timeout}
    return ChatOllama(**kw)


def _build_google(model: Optional[str], temperature: float, timeout: float, max_tokens: Optional[int] = None):
    """Build Google Gemini client."""
    kw = _common_kwargs(temperature, timeout, max_tokens)
    kw.update(
        model=model or settings.GOOGLE_MODEL,
        google_api_key=settings.GOOGLE_API_KEY,
        max_retries=0,
    )
    return ChatGoogleGenerativeAI(**kw)


def _build_nvidia(model: Optional[str], temperature: float, timeout: float, max_tokens: Optional[int] = None):
    """Build NVIDIA client with 'thinking' output disabled."""
    # Plain requests.Session underneath; errors are not retried client-side
    kw = {"temperature": temperature}
    if max_tokens:
        kw["max_tokens"] = max_tokens
    kw.update(
        model=model or settings.NVIDIA_MODEL,
        api_key=settings.NVIDIA_API_KEY,
        model_kwargs={"chat_template_kwargs": {"thinking": False}},
    )
    return ChatNVIDIA(**kw)


def _build_openlm(model: Optional[str], temperature: float, timeout: float, max_tokens: Optional[int] = None):
    """Build custom OpenLM client."""
    return MyOpenLM(
        model_name=model or settings.MYOPENLM_MODEL,
        temperature=temperature,
        max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
        timeout=timeout,
    )


# ── Public API ────────────────────────────────────────────────


def get_llm(
    temperature: float,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
):
    """Return a LangChain chat model (or LLM) instance.

    Instances are cached on every build parameter, so repeated calls with the
    same settings share one client.

    Args:
        temperature: Generation temperature.
        model: Model identifier (default: the provider's model from settings).
        timeout: Per-request timeout in seconds (default: LLM_TIMEOUT).
        max_tokens: Max tokens to generate (default: LLM_MAX_TOKENS).
        provider: Override the global LLM_PROVIDER.
    """
    _register_providers()

    t = timeout if timeout is not None else settings.LLM_TIMEOUT
    tokens = max_tokens if max_tokens is not None else settings.LLM_MAX_TOKENS

    active_provider = (provider or settings.LLM_PROVIDER).upper()
    builder = _PROVIDERS.get(active_provider)
    if builder is None:
        logger.warning(f"Unknown LLM provider '{active_provider}', falling back to {DEFAULT_PROVIDER}")
        active_provider = DEFAULT_PROVIDER
        builder = _PROVIDERS[DEFAULT_PROVIDER]

    cache_key = (active_provider, model, temperature, t, tokens)
    cached = _llm_cache.get(cache_key)
    if cached is not None:
        return cached

    instance = builder(model=model, temperature=temperature, timeout=t, max_tokens=tokens)
    if len(_llm_cache) >= _LLM_CACHE_MAX:
        _llm_cache.pop(next(iter(_llm_cache)))
    _llm_cache[cache_key] = instance
    return instance


def clear_llm_cache() -> None:
    _llm_cache.clear()


# ── Custom OpenLM wrapper ─────────────────────────────────────


class MyOpenLM(LLM):
    """LangChain wrapper for a MyOpenLM-style REST chat endpoint.

    One HTTP request per call; failures raise and are retried (if at all) by
    the caller.
    """

    api_url: str = settings.MYOPENLM_API_URL
    model_name: str = settings.MYOPENLM_MODEL
    temperature: float = 1.0
    max_tokens: int = 1000
    timeout: float = 120

    @property
    def _llm_type(self) -> str:
        return "my_lm"

    def _build_payload(self, prompt: str) -> dict:
        return {
            "message": prompt,
            "model": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    def _call(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        resp = requests.post(
            self.api_url,
            json=self._build_payload(prompt),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()["data"]["response"]

    async def _acall(
        self, prompt: str, stop: Optional[List[str]] = None, *args: Any, **kwargs: Any
    ) -> str:
        """Async version using httpx for non-blocking IO."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                self.api_url,
                json=self._build_payload(prompt),
                headers={"Content-Type": "application/json"},
            )
        resp.raise_for_status()
        return resp.json()["data"]["response"]
