# FILE: app/providers/gemini.py
"""
Gemini adapter (google.generativeai).

Forced function calling uses tool_config mode ANY, which makes the model
return a function_call part instead of text. google.api_core exceptions
carry the HTTP status in `.code`, which ProviderError.from_exception picks up.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from app.llm.errors import ErrorClass, ProviderError
from app.providers.base import ProviderAdapter
from app.translation.functions import to_gemini_tools
from app.translation.schemas import ToolCall, ToolChoice, VendorResponse

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Convert proto MapComposite / RepeatedComposite values to builtins."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if hasattr(value, "items"):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) or hasattr(value, "__iter__"):
        return [_plain(v) for v in value]
    return str(value)


def extract_response(resp: Any, model: str) -> VendorResponse:
    """Pull the first function_call (or the concatenated text) out of a Gemini response."""
    feedback = getattr(resp, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
    if block_reason:
        raise ProviderError(
            f"prompt blocked by safety filter: {block_reason}",
            provider="gemini",
            model=model,
            error_class=ErrorClass.PERMANENT,
        )

    candidates = getattr(resp, "candidates", None) or []
    if not candidates:
        return VendorResponse(model=model)

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []

    texts: List[str] = []
    for part in parts:
        fc = getattr(part, "function_call", None)
        if fc is not None and getattr(fc, "name", ""):
            args = _plain(getattr(fc, "args", None) or {})
            return VendorResponse(
                tool_call=ToolCall(name=fc.name, arguments=args if isinstance(args, dict) else {}),
                model=model,
            )
        text = getattr(part, "text", "")
        if text:
            texts.append(text)

    return VendorResponse(text="".join(texts), model=model)


class GeminiAdapter(ProviderAdapter):
    provider_id = "gemini"

    def __init__(self, api_key: str, *args, **kwargs):
        super().__init__(api_key, *args, **kwargs)
        if api_key:
            genai.configure(api_key=api_key)

    def render_tools(self) -> List[Dict[str, Any]]:
        return to_gemini_tools()

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
        tool_config = None
        if tools:
            mode = "ANY" if tool_choice == ToolChoice.FORCED else "AUTO"
            tool_config = {"function_calling_config": {"mode": mode}}

        try:
            gm = genai.GenerativeModel(
                model_name=model,
                system_instruction=system_prompt,
                tools=tools or None,
                tool_config=tool_config,
                generation_config=genai.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
            resp = await gm.generate_content_async(user_text)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError.from_exception(exc, provider=self.provider_id, model=model) from exc

        return extract_response(resp, model)


__all__ = ["GeminiAdapter", "extract_response"]
