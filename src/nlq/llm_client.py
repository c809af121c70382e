"""
LLM client abstraction -- provider-agnostic wrapper.

Supported providers:
  mock      -- echo back the prompt (for tests / offline dev)
  openai    -- OpenAI Chat Completions (settings.openai_model)
  anthropic -- Anthropic Messages (settings.anthropic_model)
  gemini    -- Google Generative AI (settings.gemini_model, gemini-1.5-flash default)

Configuration is read from Settings (env / .env).  SDKs are imported lazily
so only the provider in use has to be installed.
"""
from __future__ import annotations

from typing import Any

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_SYSTEM_PROMPT = "You are a precise assistant for a clinic database. Answer with exactly what is asked."
_MAX_TOKENS = 512


def _require_key(value: str, name: str) -> str:
    if not value:
        raise RuntimeError(
            f"{name.lower()} is not set.  "
            f"Set {name.upper()} in your .env file or environment."
        )
    return value


def _call_mock(prompt: str) -> str:
    logger.info("LLM mock mode -- returning echo")
    return f"[MOCK] {prompt[:200]}"


def _call_openai(prompt: str) -> str:
    """Call the OpenAI Chat Completions API."""
    settings = get_settings()
    api_key = _require_key(settings.openai_api_key, "openai_api_key")

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=settings.openai_model,
        messages=[
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        temperature=0.0,
        max_tokens=_MAX_TOKENS,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str) -> str:
    """Call the Anthropic Messages API."""
    settings = get_settings()
    api_key = _require_key(settings.anthropic_api_key, "anthropic_api_key")

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key)
    response = client.messages.create(
        model=settings.anthropic_model,
        max_tokens=_MAX_TOKENS,
        system=_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


def _call_gemini(prompt: str) -> str:
    """Call Google's Generative AI API."""
    settings = get_settings()
    api_key = _require_key(settings.gemini_api_key, "gemini_api_key")

    try:
        import google.generativeai as genai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'google-generativeai' package is not installed.  "
            "Run: pip install google-generativeai"
        ) from exc

    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(settings.gemini_model)
    response = model.generate_content(
        prompt,
        generation_config={"temperature": 0.0, "max_output_tokens": _MAX_TOKENS},
    )
    text = response.text or ""
    logger.info("Gemini response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
    "gemini": _call_gemini,
}


def call_llm(prompt: str, provider: str | None = None) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The full prompt text.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic, gemini.
    """
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d", provider, len(prompt))
    return fn(prompt)
