# FILE: app/providers/openai_compat.py
"""
OpenAI-compatible adapter (AsyncOpenAI).

Serves OpenAI itself plus Groq and Cerebras, which expose the same Chat
Completions API behind a different base_url. Forced function calling uses
tool_choice="required".

SDK-level retries are disabled (max_retries=0): retry and model fallback
are owned by ProviderAdapter so attempts are counted in one place.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from app.llm.errors import ProviderError, SchemaViolationError
from app.providers.base import ProviderAdapter
from app.translation.functions import to_openai_tools
from app.translation.schemas import ToolCall, ToolChoice, VendorResponse

logger = logging.getLogger(__name__)


def extract_completion(resp: Any, provider_id: str, model: str) -> VendorResponse:
    """First tool call (or message text) from a chat completion."""
    choices = getattr(resp, "choices", None) or []
    if not choices:
        return VendorResponse(model=model)

    msg = choices[0].message
    tool_calls = getattr(msg, "tool_calls", None) or []
    if tool_calls:
        fn = tool_calls[0].function
        raw_args = fn.arguments or "{}"
        try:
            args = json.loads(raw_args)
        except json.JSONDecodeError as exc:
            raise SchemaViolationError(
                f"tool call arguments are not valid JSON: {raw_args[:80]!r}",
                provider=provider_id,
                model=model,
            ) from exc
        if not isinstance(args, dict):
            args = {}
        return VendorResponse(tool_call=ToolCall(name=fn.name, arguments=args), model=model)

    return VendorResponse(text=msg.content or "", model=model)


class OpenAICompatibleAdapter(ProviderAdapter):
    """Chat Completions adapter; provider_id and base_url pick the vendor."""

    def __init__(
        self,
        api_key: str,
        *args,
        provider_id: str = "openai",
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        **kwargs,
    ):
        super().__init__(api_key, *args, **kwargs)
        self.provider_id = provider_id
        self.base_url = base_url
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    def render_tools(self) -> List[Dict[str, Any]]:
        return to_openai_tools()

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
        kwargs: Dict[str, Any] = dict(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "required" if tool_choice == ToolChoice.FORCED else "auto"

        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise ProviderError.from_exception(exc, provider=self.provider_id, model=model) from exc

        return extract_completion(resp, self.provider_id, model)


__all__ = ["OpenAICompatibleAdapter", "extract_completion"]
