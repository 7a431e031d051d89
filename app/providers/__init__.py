# FILE: app/providers/__init__.py
"""LLM provider adapters and the registry that builds them."""

from app.providers.base import ProviderAdapter
from app.providers.registry import PROVIDERS, ProviderConfig, create_adapter, is_provider_available

__all__ = [
    "ProviderAdapter",
    "PROVIDERS",
    "ProviderConfig",
    "create_adapter",
    "is_provider_available",
]
