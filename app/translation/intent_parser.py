# FILE: app/translation/intent_parser.py
"""
Intent parser: forced function-calling request + tool-call validation.

The request side is fixed: INTENT_SYSTEM_PROMPT, all FUNCTION_DECLARATIONS,
ToolChoice.FORCED, low temperature. The response side turns a ToolCall into
a ParseResult:

- no tool call (free text)        -> SchemaViolationError (PERMANENT)
- unknown function name           -> SchemaViolationError (PERMANENT)
- undeclared argument keys        -> dropped
- argument values                 -> str(), stripped; None dropped

Validation of required parameters is NOT done here: an empty required
param reaches the module, which raises MissingParameterError and the
dispatcher answers with help.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.llm.errors import SchemaViolationError
from app.translation.functions import get_function
from app.translation.prompts import INTENT_SYSTEM_PROMPT
from app.translation.schemas import ParseResult, ToolCall, ToolChoice, VendorResponse

logger = logging.getLogger(__name__)

INTENT_TEMPERATURE = 0.1
INTENT_MAX_TOKENS = 512


@dataclass(frozen=True)
class IntentRequest:
    """Everything an adapter needs to issue the NLU call."""
    system_prompt: str = INTENT_SYSTEM_PROMPT
    tool_choice: ToolChoice = ToolChoice.FORCED
    temperature: float = INTENT_TEMPERATURE
    max_tokens: int = INTENT_MAX_TOKENS


DEFAULT_INTENT_REQUEST = IntentRequest()


def _coerce_arguments(raw: Any) -> Dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SchemaViolationError(f"function arguments are not valid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise SchemaViolationError("function arguments must be a JSON object")
        return decoded
    try:
        return dict(raw)
    except (TypeError, ValueError) as exc:
        raise SchemaViolationError(f"unsupported argument payload: {type(raw).__name__}") from exc


def parse_tool_call(tool_call: ToolCall) -> ParseResult:
    """Map a validated tool call to (module, intent, params)."""
    spec = get_function(tool_call.name)
    if spec is None:
        raise SchemaViolationError(f"unknown function from model: {tool_call.name!r}")

    arguments = _coerce_arguments(tool_call.arguments)
    declared = set(spec.param_names)
    params: Dict[str, str] = {}
    for key, value in arguments.items():
        if key not in declared:
            logger.debug(f"[intent] dropping undeclared argument {key!r} for {spec.name}")
            continue
        if value is None:
            continue
        params[key] = str(value).strip()

    return ParseResult(
        module=spec.module,
        intent=spec.intent,
        params=params,
        function_name=spec.name,
    )


def parse_vendor_response(
    response: VendorResponse,
    provider: str = "",
    model: str = "",
) -> ParseResult:
    """Reject free-text answers, then convert the tool call."""
    if response.tool_call is None:
        preview = (response.text or "")[:80]
        raise SchemaViolationError(
            f"model answered without a function call: {preview!r}",
            provider=provider,
            model=model or response.model,
        )
    try:
        return parse_tool_call(response.tool_call)
    except SchemaViolationError as exc:
        exc.provider = exc.provider or provider
        exc.model = exc.model or model or response.model
        raise


def describe(result: Optional[ParseResult]) -> str:
    """Short log form: module.intent(params)."""
    if result is None:
        return "<none>"
    params = ", ".join(f"{k}={v!r}" for k, v in sorted(result.params.items()))
    suffix = f".{result.intent}" if result.intent else ""
    return f"{result.module}{suffix}({params})"


__all__ = [
    "INTENT_TEMPERATURE",
    "INTENT_MAX_TOKENS",
    "IntentRequest",
    "DEFAULT_INTENT_REQUEST",
    "parse_tool_call",
    "parse_vendor_response",
    "describe",
]
