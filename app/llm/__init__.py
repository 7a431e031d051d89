# FILE: app/llm/__init__.py
"""
LLM error handling and retry exports.

The fallback orchestrator lives in app.llm.fallbacks and is imported from
there directly (it depends on the provider adapters).
"""

# ============== ERROR EXPORTS ==============

from app.llm.errors import (
    ErrorClass,
    FallbackAction,
    ProviderError,
    SchemaViolationError,
    classify_error,
    error_type_label,
    fallback_action,
    is_retryable,
    parse_retry_after,
)

# ============== RETRY EXPORTS ==============

from app.llm.retry import (
    RetryPolicy,
    calculate_backoff,
    has_sufficient_budget,
    remaining_budget,
    with_retry,
)

__all__ = [
    # Errors
    "ErrorClass",
    "FallbackAction",
    "ProviderError",
    "SchemaViolationError",
    "classify_error",
    "error_type_label",
    "fallback_action",
    "is_retryable",
    "parse_retry_after",
    # Retry
    "RetryPolicy",
    "calculate_backoff",
    "has_sufficient_budget",
    "remaining_budget",
    "with_retry",
]
