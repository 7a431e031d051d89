# FILE: app/llm/errors.py
"""
Error classification for LLM provider calls.

Every vendor failure is normalized into a ProviderError and classified into
one of three closed classes:

    TRANSIENT  - 429, 408, 409, 5xx, timeouts, connection resets  -> retried
    PERMANENT  - other 4xx, schema violations, quota/billing       -> not retried
    CANCELED   - caller gave up (cancellation, no time budget)     -> not retried

On top of the class, `provider_unusable` marks failures that say the
provider itself can no longer serve us (auth failure, exhausted quota).
Those skip the rest of the model chain but still let the orchestrator
switch to the secondary provider.

Classification order:
1. ProviderError with a status code: status decides
2. asyncio/OS timeout and connection errors: TRANSIENT
3. Message substrings (quota first, then rate limit, 5xx words, timeouts,
   then 4xx words); unknown messages are TRANSIENT
"""
from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Mapping, Optional


class ErrorClass(str, Enum):
    """Closed set of external-call failure classes."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CANCELED = "canceled"


class FallbackAction(str, Enum):
    """What the orchestrator should do with a failure."""
    RETRY = "retry"          # same provider, after backoff
    FALLBACK = "fallback"    # provider unusable, switch provider
    FAIL = "fail"            # give up


# =============================================================================
# MESSAGE SIGNALS
# =============================================================================

_QUOTA_WORDS = ("quota", "daily limit", "monthly limit", "billing")
_RATE_LIMIT_WORDS = ("rate limit", "too many requests", "resource_exhausted", "429")
_SERVER_WORDS = (
    "unavailable", "500", "502", "503", "504",
    "internal server error", "bad gateway", "gateway timeout",
    "overloaded", "capacity",
)
_TIMEOUT_WORDS = ("408", "409", "timeout", "timed out", "deadline", "connection")
_CLIENT_WORDS = (
    "400", "401", "403", "404", "422",
    "invalid", "bad request", "malformed",
    "unauthorized", "unauthenticated", "forbidden", "permission denied",
    "not found", "unprocessable",
)
_AUTH_WORDS = ("401", "403", "unauthorized", "unauthenticated", "forbidden",
               "permission denied", "api key")


def _contains_any(text: str, words) -> bool:
    return any(w in text for w in words)


def classify_status(status_code: int) -> ErrorClass:
    if status_code in (408, 409, 429):
        return ErrorClass.TRANSIENT
    if 500 <= status_code < 600:
        return ErrorClass.TRANSIENT
    if 400 <= status_code < 500:
        return ErrorClass.PERMANENT
    return ErrorClass.TRANSIENT


def _classify_message(message: str) -> ErrorClass:
    text = message.lower()
    if _contains_any(text, _QUOTA_WORDS):
        return ErrorClass.PERMANENT
    if _contains_any(text, _RATE_LIMIT_WORDS):
        return ErrorClass.TRANSIENT
    if _contains_any(text, _SERVER_WORDS):
        return ErrorClass.TRANSIENT
    if _contains_any(text, _TIMEOUT_WORDS):
        return ErrorClass.TRANSIENT
    if _contains_any(text, _CLIENT_WORDS):
        return ErrorClass.PERMANENT
    return ErrorClass.TRANSIENT


def _is_quota_message(message: str) -> bool:
    return _contains_any(message.lower(), _QUOTA_WORDS)


# =============================================================================
# PROVIDER ERROR
# =============================================================================

class ProviderError(Exception):
    """A normalized failure from one LLM provider call."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: str = "",
        model: str = "",
        retry_after: float = 0.0,
        error_class: Optional[ErrorClass] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.model = model
        self.retry_after = max(0.0, float(retry_after or 0.0))
        self.cause = cause
        self.attempts = 0
        self._error_class = error_class

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} (status: {self.status_code})"
        return self.message

    @property
    def error_class(self) -> ErrorClass:
        if self._error_class is not None:
            return self._error_class
        if self.status_code:
            return classify_status(self.status_code)
        return _classify_message(self.message)

    @property
    def is_quota(self) -> bool:
        return _is_quota_message(self.message)

    @property
    def provider_unusable(self) -> bool:
        """Auth failure or exhausted quota: this provider cannot serve any request."""
        if self.error_class == ErrorClass.CANCELED:
            return False
        if self.status_code in (401, 403):
            return True
        if self.is_quota:
            return True
        if not self.status_code and _contains_any(self.message.lower(), _AUTH_WORDS):
            return True
        return False

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        provider: str = "",
        model: str = "",
    ) -> "ProviderError":
        """Wrap any exception, pulling a status code and Retry-After where available."""
        if isinstance(exc, ProviderError):
            if provider and not exc.provider:
                exc.provider = provider
            if model and not exc.model:
                exc.model = model
            return exc

        status = _extract_status(exc)
        headers = _extract_headers(exc)
        forced: Optional[ErrorClass] = None
        if isinstance(exc, asyncio.CancelledError):
            forced = ErrorClass.CANCELED
        elif isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
            forced = ErrorClass.TRANSIENT

        message = str(exc) or exc.__class__.__name__
        return cls(
            message,
            status_code=status,
            provider=provider,
            model=model,
            retry_after=parse_retry_after(headers) if headers else 0.0,
            error_class=forced,
            cause=exc,
        )


class SchemaViolationError(ProviderError):
    """The model answered outside the declared function schema."""

    def __init__(self, message: str, provider: str = "", model: str = ""):
        super().__init__(
            message,
            provider=provider,
            model=model,
            error_class=ErrorClass.PERMANENT,
        )


def _extract_status(exc: BaseException) -> Optional[int]:
    # openai.APIStatusError -> status_code; google.api_core errors -> code
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value < 600:
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and 100 <= value < 600:
        return value
    return None


def _extract_headers(exc: BaseException) -> Optional[Mapping[str, str]]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    try:
        return {str(k).lower(): str(v) for k, v in headers.items()}
    except (AttributeError, TypeError):
        return None


# =============================================================================
# PUBLIC HELPERS
# =============================================================================

def classify_error(exc: Optional[BaseException]) -> ErrorClass:
    """Map any exception to ErrorClass."""
    if exc is None:
        return ErrorClass.PERMANENT
    if isinstance(exc, ProviderError):
        return exc.error_class
    return ProviderError.from_exception(exc).error_class


def fallback_action(exc: Optional[BaseException]) -> FallbackAction:
    if exc is None:
        return FallbackAction.FAIL
    err = ProviderError.from_exception(exc)
    cls = err.error_class
    if cls == ErrorClass.TRANSIENT:
        return FallbackAction.RETRY
    if cls == ErrorClass.PERMANENT and err.provider_unusable:
        return FallbackAction.FALLBACK
    return FallbackAction.FAIL


def is_retryable(exc: Optional[BaseException]) -> bool:
    return classify_error(exc) == ErrorClass.TRANSIENT


def error_type_label(exc: Optional[BaseException]) -> str:
    """Metric label for an error."""
    if exc is None:
        return "transient_error"
    err = ProviderError.from_exception(exc)
    if err.error_class == ErrorClass.CANCELED:
        return "canceled"
    if err.is_quota:
        return "quota_exhausted"

    status = err.status_code
    if status == 429:
        return "rate_limit"
    if status in (401, 403):
        return "auth_error"
    if status is not None and 500 <= status < 600:
        return "server_error"
    if status == 408:
        return "timeout"
    if status is not None and 400 <= status < 500:
        return "invalid_request"

    text = err.message.lower()
    if isinstance(err.cause, (asyncio.TimeoutError, TimeoutError)) or _contains_any(
        text, ("timeout", "timed out", "deadline")
    ):
        return "timeout"
    if _contains_any(text, ("rate limit", "too many requests", "resource_exhausted")):
        return "rate_limit"
    if _contains_any(text, _SERVER_WORDS):
        return "server_error"
    if _contains_any(text, _AUTH_WORDS):
        return "auth_error"
    if err.error_class == ErrorClass.PERMANENT:
        return "invalid_request"
    return "transient_error"


_GO_DURATION = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|ns|h|m|s)")
_GO_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 1e-3, "us": 1e-6, "µs": 1e-6, "ns": 1e-9}


def _parse_go_duration(value: str) -> float:
    value = value.strip()
    if not value:
        return 0.0
    pos = 0
    total = 0.0
    for m in _GO_DURATION.finditer(value):
        if m.start() != pos:
            return 0.0
        total += float(m.group(1)) * _GO_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(value):
        return 0.0
    return total


def parse_retry_after(headers: Optional[Mapping[str, str]], now: Optional[datetime] = None) -> float:
    """
    Server-requested wait in seconds, or 0.

    Checked in order: retry-after-ms, retry-after (seconds or HTTP date),
    x-ratelimit-reset-tokens (duration such as "6m0s").
    """
    if not headers:
        return 0.0
    lowered = {str(k).lower(): str(v).strip() for k, v in headers.items()}

    ms = lowered.get("retry-after-ms")
    if ms:
        try:
            value = int(ms)
            if value > 0:
                return value / 1000.0
        except ValueError:
            pass

    ra = lowered.get("retry-after")
    if ra:
        try:
            value = int(ra)
            if value > 0:
                return float(value)
        except ValueError:
            try:
                when = parsedate_to_datetime(ra)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                current = now or datetime.now(timezone.utc)
                return max(0.0, (when - current).total_seconds())

    reset = lowered.get("x-ratelimit-reset-tokens")
    if reset:
        return _parse_go_duration(reset)

    return 0.0


__all__ = [
    "ErrorClass",
    "FallbackAction",
    "ProviderError",
    "SchemaViolationError",
    "classify_error",
    "classify_status",
    "fallback_action",
    "is_retryable",
    "error_type_label",
    "parse_retry_after",
]
