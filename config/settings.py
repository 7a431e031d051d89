# FILE: config/settings.py
"""Runtime settings for the LINE bot core - read once from the environment.

main.py calls load_dotenv() before importing anything, so a local .env file
feeds the same os.getenv() lookups as real environment variables.

Malformed numbers never crash startup: the default is used and a warning is
logged.

Groups:
  - LLM providers: keys, primary/fallback order, per-operation model chains
  - Rate limits: webhook (user) limiter and LLM limiter
  - Retry: full-jitter backoff parameters
  - Timeouts: vendor call timeout, per-attempt budget floor, webhook deadline
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# =============================================================================
# Provider identity and default model chains
# =============================================================================

PROVIDER_KEY_ENV: Dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "groq": "GROQ_API_KEY",
    "cerebras": "CEREBRAS_API_KEY",
    "openai": "OPENAI_API_KEY",
}

# (intent models, expander models), first entry tried first
DEFAULT_MODEL_CHAINS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "gemini": (
        ("gemini-2.5-flash", "gemini-2.5-flash-lite"),
        ("gemini-2.5-flash-lite", "gemini-2.0-flash-lite"),
    ),
    "groq": (
        ("meta-llama/llama-4-maverick-17b-128e-instruct", "llama-3.3-70b-versatile"),
        ("meta-llama/llama-4-scout-17b-16e-instruct", "llama-3.1-8b-instant"),
    ),
    "cerebras": (
        ("llama-3.3-70b", "llama3.1-8b"),
        ("llama3.1-8b",),
    ),
    "openai": (
        ("gpt-4.1-mini", "gpt-4.1-nano"),
        ("gpt-4.1-nano",),
    ),
}


# =============================================================================
# Env helpers
# =============================================================================

def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[settings] {name}={raw!r} is not an integer; using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"[settings] {name}={raw!r} is not a number; using {default}")
        return default


def parse_model_list(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated model chain, dropping blanks and duplicates."""
    if not raw:
        return ()
    seen: List[str] = []
    for part in raw.split(","):
        model = part.strip()
        if model and model not in seen:
            seen.append(model)
    return tuple(seen)


# =============================================================================
# Settings
# =============================================================================

@dataclass(frozen=True)
class ModelChains:
    intent: Tuple[str, ...]
    expander: Tuple[str, ...]


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"

    # LLM
    llm_enabled: bool = True
    primary_provider: str = "gemini"
    fallback_provider: str = "groq"
    api_keys: Dict[str, str] = field(default_factory=dict)
    model_chains: Dict[str, ModelChains] = field(default_factory=dict)

    # LLM limiter
    llm_burst_tokens: int = 60
    llm_refill_per_hour: float = 30.0
    llm_daily_limit: int = 180

    # Webhook limiter
    user_rate_burst: int = 15
    user_rate_refill: float = 0.1  # tokens per second

    # Eviction
    rate_limit_max_keys: int = 10_000
    rate_limit_idle_ttl: float = 3600.0

    # Retry
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_cap_delay: float = 10.0

    # Timeouts (seconds)
    llm_timeout: float = 20.0
    llm_min_attempt_budget: float = 2.0
    webhook_timeout: float = 25.0

    catalog_path: str = "data/catalog.json"

    def api_key(self, provider_id: str) -> str:
        return self.api_keys.get(provider_id, "")

    def chains_for(self, provider_id: str) -> ModelChains:
        chains = self.model_chains.get(provider_id)
        if chains is not None:
            return chains
        intent, expander = DEFAULT_MODEL_CHAINS.get(provider_id, ((), ()))
        return ModelChains(intent=intent, expander=expander)

    def configured_providers(self) -> List[str]:
        """Primary then fallback, skipping blanks and duplicates."""
        out: List[str] = []
        for provider_id in (self.primary_provider, self.fallback_provider):
            if provider_id and provider_id not in out:
                out.append(provider_id)
        return out

    def nlu_enabled(self) -> bool:
        """NLU needs the master switch plus at least one configured provider key."""
        if not self.llm_enabled:
            return False
        return any(self.api_key(p) for p in self.configured_providers())


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    api_keys = {pid: _env_str(env) for pid, env in PROVIDER_KEY_ENV.items()}

    model_chains: Dict[str, ModelChains] = {}
    for pid, (intent_default, expander_default) in DEFAULT_MODEL_CHAINS.items():
        prefix = pid.upper()
        intent = parse_model_list(os.getenv(f"{prefix}_INTENT_MODELS")) or intent_default
        expander = parse_model_list(os.getenv(f"{prefix}_EXPANDER_MODELS")) or expander_default
        model_chains[pid] = ModelChains(intent=intent, expander=expander)

    primary = _env_str("LLM_PRIMARY_PROVIDER", "gemini").lower()
    fallback = _env_str("LLM_FALLBACK_PROVIDER", "groq").lower()
    for name, value in (("LLM_PRIMARY_PROVIDER", primary), ("LLM_FALLBACK_PROVIDER", fallback)):
        if value and value not in PROVIDER_KEY_ENV:
            logger.warning(f"[settings] {name}={value!r} is not a known provider")

    return Settings(
        log_level=_env_str("LOG_LEVEL", "INFO").upper() or "INFO",
        llm_enabled=_env_bool("LLM_ENABLED", True),
        primary_provider=primary,
        fallback_provider=fallback,
        api_keys=api_keys,
        model_chains=model_chains,
        llm_burst_tokens=_env_int("LLM_BURST_TOKENS", 60),
        llm_refill_per_hour=_env_float("LLM_REFILL_PER_HOUR", 30.0),
        llm_daily_limit=_env_int("LLM_DAILY_LIMIT", 180),
        user_rate_burst=_env_int("USER_RATE_BURST", 15),
        user_rate_refill=_env_float("USER_RATE_REFILL", 0.1),
        rate_limit_max_keys=_env_int("RATE_LIMIT_MAX_KEYS", 10_000),
        rate_limit_idle_ttl=_env_float("RATE_LIMIT_IDLE_TTL", 3600.0),
        retry_max_attempts=max(1, _env_int("RETRY_MAX_ATTEMPTS", 3)),
        retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
        retry_cap_delay=_env_float("RETRY_CAP_DELAY", 10.0),
        llm_timeout=_env_float("LLM_TIMEOUT", 20.0),
        llm_min_attempt_budget=_env_float("LLM_MIN_ATTEMPT_BUDGET", 2.0),
        webhook_timeout=_env_float("WEBHOOK_TIMEOUT", 25.0),
        catalog_path=_env_str("CATALOG_PATH", "data/catalog.json"),
    )


__all__ = [
    "PROVIDER_KEY_ENV",
    "DEFAULT_MODEL_CHAINS",
    "ModelChains",
    "Settings",
    "load_settings",
    "parse_model_list",
]
