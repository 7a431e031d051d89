# FILE: app/translation/__init__.py
"""
NLU Translation Layer

Turns free-form user text into a closed (module, intent, params) triple via
forced function calling, and expands short course queries for BM25 search.

Usage:
    from app.translation import ParseResult, parse_tool_call, should_expand

Key Invariants:
- The function table is closed; unknown function names are schema violations.
- A free-text answer where a function call was required is a schema violation.
- Expansion never drops the original query tokens.
"""

from app.translation.schemas import (
    DIRECT_REPLY_MODULE,
    HELP_MODULE,
    OperationKind,
    ParseResult,
    ToolCall,
    ToolChoice,
    VendorResponse,
)
from app.translation.functions import (
    FUNCTION_DECLARATIONS,
    INTENT_MODULE_MAP,
    FunctionSpec,
    ParamSpec,
    get_function,
    to_gemini_tools,
    to_openai_tools,
)
from app.translation.intent_parser import (
    DEFAULT_INTENT_REQUEST,
    IntentRequest,
    parse_tool_call,
    parse_vendor_response,
)
from app.translation.expander import (
    contains_abbreviation,
    ensure_original,
    should_expand,
)

__all__ = [
    # Schemas
    "DIRECT_REPLY_MODULE",
    "HELP_MODULE",
    "OperationKind",
    "ParseResult",
    "ToolCall",
    "ToolChoice",
    "VendorResponse",
    # Functions
    "FUNCTION_DECLARATIONS",
    "INTENT_MODULE_MAP",
    "FunctionSpec",
    "ParamSpec",
    "get_function",
    "to_gemini_tools",
    "to_openai_tools",
    # Intent parsing
    "DEFAULT_INTENT_REQUEST",
    "IntentRequest",
    "parse_tool_call",
    "parse_vendor_response",
    # Expansion
    "contains_abbreviation",
    "ensure_original",
    "should_expand",
]
