# FILE: app/providers/base.py
"""
Provider adapter base: one vendor, two ordered model chains.

An adapter is built from (api key, intent models, expander models) and
exposes the two high-level operations the bot needs:

    parse_intent(text)  -> ParseResult   (forced function calling)
    expand_query(text)  -> str           (free text, original tokens kept)

Each operation walks its model chain in order, wrapping every model in
with_retry():

- TRANSIENT exhaustion on a model  -> next model
- PERMANENT / CANCELED             -> stop the whole adapter call
- chain exhausted                  -> raise the last TRANSIENT error

Vendor subclasses implement call() and render_tools(); they must convert
SDK exceptions into ProviderError (with status code) so classification
works.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from app.llm.errors import ErrorClass, ProviderError, error_type_label
from app.llm.retry import RetryPolicy, remaining_budget, with_retry
from app.metrics.tracker import BotMetrics
from app.translation.expander import (
    EXPANDER_MAX_TOKENS,
    EXPANDER_TEMPERATURE,
    ensure_original,
    expansion_messages,
)
from app.translation.intent_parser import DEFAULT_INTENT_REQUEST, IntentRequest, parse_vendor_response
from app.translation.schemas import OperationKind, ParseResult, ToolChoice, VendorResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderAdapter(ABC):
    """Uniform call interface over one LLM vendor with per-operation model chains."""

    provider_id: str = ""

    def __init__(
        self,
        api_key: str,
        intent_models: Sequence[str],
        expander_models: Sequence[str],
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 20.0,
        min_attempt_budget: float = 0.0,
        metrics: Optional[BotMetrics] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.api_key = api_key
        self._models: Dict[OperationKind, tuple] = {
            OperationKind.INTENT: tuple(intent_models),
            OperationKind.EXPANDER: tuple(expander_models),
        }
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.min_attempt_budget = min_attempt_budget
        self._metrics = metrics
        self._sleep = sleep
        self._rng = rng

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.provider_id}>"

    def models_for(self, kind: OperationKind) -> tuple:
        return self._models[kind]

    # =========================================================================
    # VENDOR HOOKS
    # =========================================================================

    @abstractmethod
    def render_tools(self) -> List[Dict[str, Any]]:
        """Function declarations in this vendor's format."""

    @abstractmethod
    async def call(
        self,
        model: str,
        system_prompt: str,
        user_text: str,
        tools: Optional[List[Dict[str, Any]]],
        tool_choice: ToolChoice,
        temperature: float,
        max_tokens: int,
    ) -> VendorResponse:
        """One vendor request. Raises ProviderError on failure."""

    # =========================================================================
    # HIGH-LEVEL OPERATIONS
    # =========================================================================

    async def parse_intent(
        self,
        text: str,
        deadline: Optional[float] = None,
        request: IntentRequest = DEFAULT_INTENT_REQUEST,
    ) -> ParseResult:
        tools = self.render_tools()

        async def attempt(model: str) -> ParseResult:
            response = await self._bounded_call(
                model,
                request.system_prompt,
                text,
                tools,
                request.tool_choice,
                request.temperature,
                request.max_tokens,
                deadline,
            )
            return parse_vendor_response(response, provider=self.provider_id, model=model)

        return await self._run_chain(OperationKind.INTENT, attempt, deadline)

    async def expand_query(self, text: str, deadline: Optional[float] = None) -> str:
        system_prompt, user_text = expansion_messages(text)

        async def attempt(model: str) -> str:
            response = await self._bounded_call(
                model,
                system_prompt,
                user_text,
                None,
                ToolChoice.AUTO,
                EXPANDER_TEMPERATURE,
                EXPANDER_MAX_TOKENS,
                deadline,
            )
            return ensure_original(text, response.text)

        return await self._run_chain(OperationKind.EXPANDER, attempt, deadline)

    # =========================================================================
    # CHAIN / TIMEOUT
    # =========================================================================

    async def _bounded_call(
        self,
        model: str,
        system_prompt: str,
        user_text: str,
        tools: Optional[List[Dict[str, Any]]],
        tool_choice: ToolChoice,
        temperature: float,
        max_tokens: int,
        deadline: Optional[float],
    ) -> VendorResponse:
        timeout = self.timeout
        left = remaining_budget(deadline)
        if left is not None:
            timeout = max(0.0, min(timeout, left))
        try:
            return await asyncio.wait_for(
                self.call(model, system_prompt, user_text, tools, tool_choice, temperature, max_tokens),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"{self.provider_id}/{model} timed out after {timeout:.1f}s",
                provider=self.provider_id,
                model=model,
                error_class=ErrorClass.TRANSIENT,
                cause=exc,
            ) from exc

    async def _run_chain(
        self,
        kind: OperationKind,
        attempt: Callable[[str], Awaitable[T]],
        deadline: Optional[float],
    ) -> T:
        models = self.models_for(kind)
        operation = kind.metric_label
        if not models:
            raise ProviderError(
                f"{self.provider_id}: no models configured for {kind.value}",
                provider=self.provider_id,
                error_class=ErrorClass.PERMANENT,
            )

        last: Optional[ProviderError] = None
        for index, model in enumerate(models):
            started = time.monotonic()
            try:
                result = await with_retry(
                    lambda: attempt(model),
                    self.retry_policy,
                    deadline=deadline,
                    min_budget=self.min_attempt_budget,
                    sleep=self._sleep,
                    rng=self._rng,
                    label=f"{self.provider_id}/{model}",
                )
            except ProviderError as exc:
                err = ProviderError.from_exception(exc, provider=self.provider_id, model=model)
                self._record_error(operation, err)
                last = err
                if err.error_class != ErrorClass.TRANSIENT:
                    logger.warning(
                        f"[{self.provider_id}] {kind.value} failed on {model} "
                        f"({err.error_class.value}): {err}"
                    )
                    raise err
                if index + 1 < len(models):
                    logger.warning(
                        f"[{self.provider_id}] {kind.value} exhausted retries on {model}; "
                        f"trying {models[index + 1]}"
                    )
                continue

            elapsed_ms = int((time.monotonic() - started) * 1000)
            self._record_success(operation)
            logger.debug(f"[{self.provider_id}] {kind.value} ok via {model} in {elapsed_ms}ms")
            return result

        assert last is not None
        raise last

    def _record_success(self, operation: str) -> None:
        if self._metrics is not None:
            self._metrics.record_llm_request(self.provider_id, operation, "success")

    def _record_error(self, operation: str, err: ProviderError) -> None:
        if self._metrics is not None:
            self._metrics.record_llm_request(self.provider_id, operation, "error")
            self._metrics.record_llm_error(self.provider_id, operation, error_type_label(err))


__all__ = ["ProviderAdapter"]
