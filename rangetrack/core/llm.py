"""
RangeTrack — LLM Provider Abstraction.

Two entry points:
- `complete_local()` posts to the local Ollama endpoint over httpx.
- `complete()` routes to the configured cloud provider, selected via the
  LLM_PROVIDER env var. Supports: openrouter (default), openai, anthropic,
  gemini, cohere.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

_ProviderFn = Callable[[str, str, str, str, int], Awaitable[str]]

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
LOCAL_TEMPERATURE = 0.7


class LLMUnavailableError(RuntimeError):
    """Raised when no cloud provider is configured."""


# ---------------------------------------------------------------------------
# Local model (Ollama)
# ---------------------------------------------------------------------------


async def complete_local(system: str, user_message: str, max_tokens: int = 500) -> str:
    """Ask the local Ollama model. Raises httpx errors on failure."""
    from rangetrack.config import settings

    payload = {
        "model": settings.OLLAMA_MODEL,
        "prompt": f"{system}\n\nUser: {user_message}\nFarmAI:",
        "stream": False,
        "options": {"temperature": LOCAL_TEMPERATURE, "num_predict": max_tokens},
    }
    url = f"{settings.OLLAMA_URL.rstrip('/')}/api/generate"

    async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS) as client:
        resp = await client.post(url, json=payload)
        resp.raise_for_status()
        data = resp.json()

    text = (data.get("response") or "").strip()
    if not text:
        raise ValueError("Local model returned an empty response")
    return text


# ---------------------------------------------------------------------------
# Cloud provider implementations
# ---------------------------------------------------------------------------


async def _complete_openrouter(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key, base_url=OPENROUTER_BASE_URL)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=LOCAL_TEMPERATURE,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model_name=model, system_instruction=system)
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )
    return response.text


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "openrouter": (_complete_openrouter, "meta-llama/llama-3.1-8b-instruct:free"),
    "openai":     (_complete_openai,     "gpt-4o-mini"),
    "anthropic":  (_complete_anthropic,  "claude-haiku-4-5-20251001"),
    "gemini":     (_complete_gemini,     "gemini-2.0-flash"),
    "cohere":     (_complete_cohere,     "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from rangetrack.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, settings.LLM_API_KEY


def cloud_enabled() -> bool:
    from rangetrack.config import settings

    return bool(settings.LLM_API_KEY)


# Lazy singleton, populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(system: str, user_message: str, max_tokens: int = 500) -> str:
    """Send a prompt to the configured cloud provider and return the text.

    Raises LLMUnavailableError when no API key is set, and provider errors
    as-is. Callers decide what to fall back to.
    """
    global _provider_fn, _model, _api_key

    if not cloud_enabled():
        raise LLMUnavailableError("No cloud LLM configured (LLM_API_KEY is empty)")

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return await _provider_fn(_api_key, _model, system, user_message, max_tokens)
