# FILE: app/providers/registry.py
"""
Provider Registry

- One entry per supported vendor: id, display name, API key env var,
  base URL (OpenAI-compatible vendors) and adapter class.
- create_adapter(provider_id, settings) builds a ProviderAdapter with the
  configured model chains, retry policy and timeouts.

Supported (if keys set):
- Gemini (google.generativeai)
- Groq, Cerebras, OpenAI (AsyncOpenAI, Chat Completions)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from config.settings import PROVIDER_KEY_ENV, Settings
from app.llm.retry import RetryPolicy
from app.metrics.tracker import BotMetrics
from app.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: str
    display_name: str
    env_key_name: str
    base_url: Optional[str] = None


PROVIDERS: Dict[str, ProviderConfig] = {
    "gemini": ProviderConfig("gemini", "Google (Gemini)", PROVIDER_KEY_ENV["gemini"]),
    "groq": ProviderConfig("groq", "Groq", PROVIDER_KEY_ENV["groq"], "https://api.groq.com/openai/v1"),
    "cerebras": ProviderConfig("cerebras", "Cerebras", PROVIDER_KEY_ENV["cerebras"], "https://api.cerebras.ai/v1"),
    "openai": ProviderConfig("openai", "OpenAI", PROVIDER_KEY_ENV["openai"]),
}


def is_provider_available(provider_id: str, settings: Settings) -> bool:
    """Known provider with a non-empty API key."""
    if provider_id not in PROVIDERS:
        return False
    return bool(settings.api_key(provider_id))


def create_adapter(
    provider_id: str,
    settings: Settings,
    metrics: Optional[BotMetrics] = None,
) -> Optional[ProviderAdapter]:
    """Build an adapter, or None if the provider is unknown or has no key."""
    cfg = PROVIDERS.get(provider_id)
    if cfg is None:
        logger.warning(f"[registry] unknown provider: {provider_id!r}")
        return None

    api_key = settings.api_key(provider_id)
    if not api_key:
        logger.info(f"[registry] {cfg.display_name} skipped: {cfg.env_key_name} not set")
        return None

    chains = settings.chains_for(provider_id)
    common = dict(
        retry_policy=RetryPolicy.from_settings(settings),
        timeout=settings.llm_timeout,
        min_attempt_budget=settings.llm_min_attempt_budget,
        metrics=metrics,
    )

    if provider_id == "gemini":
        from app.providers.gemini import GeminiAdapter

        adapter: ProviderAdapter = GeminiAdapter(api_key, chains.intent, chains.expander, **common)
    else:
        from app.providers.openai_compat import OpenAICompatibleAdapter

        adapter = OpenAICompatibleAdapter(
            api_key,
            chains.intent,
            chains.expander,
            provider_id=provider_id,
            base_url=cfg.base_url,
            **common,
        )

    logger.info(
        f"[registry] {cfg.display_name} ready "
        f"(intent={list(chains.intent)}, expander={list(chains.expander)})"
    )
    return adapter


__all__ = [
    "ProviderConfig",
    "PROVIDERS",
    "is_provider_available",
    "create_adapter",
]
