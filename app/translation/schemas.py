# FILE: app/translation/schemas.py
"""
Pydantic models for the NLU layer.

ParseResult is what the intent parser hands to the dispatcher:
module + intent + string params, plus the vendor function name for
telemetry. ToolCall / VendorResponse are the provider-neutral shape of one
LLM response.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# Reserved modules that the dispatcher handles itself
DIRECT_REPLY_MODULE = "direct_reply"
HELP_MODULE = "help"


class OperationKind(str, Enum):
    """Which model chain an adapter call uses."""
    INTENT = "intent"
    EXPANDER = "expander"

    @property
    def metric_label(self) -> str:
        return "nlu" if self is OperationKind.INTENT else "expander"


class ToolChoice(str, Enum):
    """Function-calling mode requested from the vendor."""
    FORCED = "forced"    # must call one of the declared functions
    AUTO = "auto"        # may answer in text


class ToolCall(BaseModel):
    """A single function call chosen by the model."""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class VendorResponse(BaseModel):
    """Provider-neutral result of one model call."""
    tool_call: Optional[ToolCall] = None
    text: str = ""
    model: str = ""


class ParseResult(BaseModel):
    """NLU output: which module/intent to run and with what parameters."""
    module: str
    intent: str = ""
    params: Dict[str, str] = Field(default_factory=dict)
    function_name: str = ""

    @property
    def is_direct_reply(self) -> bool:
        return self.module == DIRECT_REPLY_MODULE

    @property
    def is_help(self) -> bool:
        return self.module == HELP_MODULE

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


__all__ = [
    "DIRECT_REPLY_MODULE",
    "HELP_MODULE",
    "OperationKind",
    "ToolChoice",
    "ToolCall",
    "VendorResponse",
    "ParseResult",
]
