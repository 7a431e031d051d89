# FILE: config/__init__.py
"""Configuration package for the NTPU LINE bot core.

Contains:
- settings.py: environment-driven Settings (providers, limits, retry, timeouts)
"""

from config.settings import (
    DEFAULT_MODEL_CHAINS,
    PROVIDER_KEY_ENV,
    ModelChains,
    Settings,
    load_settings,
    parse_model_list,
)

__all__ = [
    "DEFAULT_MODEL_CHAINS",
    "PROVIDER_KEY_ENV",
    "ModelChains",
    "Settings",
    "load_settings",
    "parse_model_list",
]
