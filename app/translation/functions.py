# FILE: app/translation/functions.py
"""
Function declarations for forced function-calling NLU.

This is the CLOSED SET of functions the model may call. Each function maps
to exactly one (module, intent) pair; anything outside this table is a
schema violation.

The same declarations are rendered for both vendor families:
- Gemini:  to_gemini_tools()  -> [{"function_declarations": [...]}]
- OpenAI-compatible (OpenAI / Groq / Cerebras): to_openai_tools()
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ParamSpec:
    name: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    description: str
    module: str
    intent: str
    parameters: Tuple[ParamSpec, ...] = field(default_factory=tuple)

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.parameters)

    @property
    def required_params(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.parameters if p.required)


# =============================================================================
# FUNCTION TABLE
# =============================================================================

FUNCTION_DECLARATIONS: Tuple[FunctionSpec, ...] = (
    # -------------------------------------------------------------------------
    # COURSE
    # -------------------------------------------------------------------------
    FunctionSpec(
        name="course_search",
        description=(
            "【精確搜尋】使用者已知課程名稱或教師姓名時使用。"
            "例如提到「微積分」「資料結構」或「王小明」「陳教授」。直接比對課名或教師名。"
        ),
        module="course",
        intent="search",
        parameters=(
            ParamSpec("keyword", "課程名稱或教師姓名關鍵字，應為具體名稱，例如「微積分」「王小明」"),
        ),
    ),
    FunctionSpec(
        name="course_smart",
        description=(
            "【智慧搜尋】使用者不確定課名，只描述學習需求或興趣時使用。"
            "例如「想學 Python」「輕鬆過的通識」或技術縮寫「AI」「NLP」。"
        ),
        module="course",
        intent="smart",
        parameters=(
            ParamSpec(
                "query",
                "描述學習目標的自然語言。若輸入很短或是縮寫，請擴展，"
                "例如「AI」→「人工智慧 AI artificial intelligence 機器學習」",
            ),
        ),
    ),
    FunctionSpec(
        name="course_uid",
        description="依課程編號查詢課程，例如完整編號 1131U0001 或僅課號 U0001。",
        module="course",
        intent="uid",
        parameters=(ParamSpec("uid", "課程編號或課號，例如 1131U0001、U0001"),),
    ),
    # -------------------------------------------------------------------------
    # ID
    # -------------------------------------------------------------------------
    FunctionSpec(
        name="id_search",
        description="依姓名搜尋學生資訊，可使用全名或部分姓名。",
        module="id",
        intent="search",
        parameters=(ParamSpec("name", "學生姓名，例如「王小明」「小明」"),),
    ),
    FunctionSpec(
        name="id_student_id",
        description="依學號查詢學生資訊。學號為 8-9 位數字。",
        module="id",
        intent="student_id",
        parameters=(ParamSpec("student_id", "學號，例如 412345678"),),
    ),
    FunctionSpec(
        name="id_department",
        description="查詢科系代碼或科系名稱，例如輸入「資工系」查代碼，或輸入「85」查系名。",
        module="id",
        intent="department",
        parameters=(ParamSpec("department", "科系名稱或代碼，例如「資工系」「85」"),),
    ),
    # -------------------------------------------------------------------------
    # CONTACT
    # -------------------------------------------------------------------------
    FunctionSpec(
        name="contact_search",
        description="查詢校內單位或人員的電話、分機、email。",
        module="contact",
        intent="search",
        parameters=(ParamSpec("query", "單位或人員名稱，例如「資工系」「圖書館」「教務處」"),),
    ),
    FunctionSpec(
        name="contact_emergency",
        description="取得校園緊急聯絡電話，例如保全、校安中心。不需要參數。",
        module="contact",
        intent="emergency",
    ),
    # -------------------------------------------------------------------------
    # PROGRAM
    # -------------------------------------------------------------------------
    FunctionSpec(
        name="program_list",
        description="列出所有學程。不需要參數。",
        module="program",
        intent="list",
    ),
    FunctionSpec(
        name="program_search",
        description="依名稱搜尋學程，例如「智慧財產」「金融科技」。",
        module="program",
        intent="search",
        parameters=(ParamSpec("query", "學程名稱關鍵字"),),
    ),
    FunctionSpec(
        name="program_courses",
        description="查詢某個學程包含哪些課程。",
        module="program",
        intent="courses",
        parameters=(ParamSpec("programName", "學程完整或部分名稱"),),
    ),
    # -------------------------------------------------------------------------
    # USAGE / HELP / DIRECT REPLY
    # -------------------------------------------------------------------------
    FunctionSpec(
        name="usage_query",
        description="查詢使用者目前的訊息額度與 AI 查詢額度。不需要參數。",
        module="usage",
        intent="query",
    ),
    FunctionSpec(
        name="help",
        description="顯示使用說明。使用者問怎麼用、需要幫助或不知道能查什麼時呼叫。",
        module="help",
        intent="",
    ),
    FunctionSpec(
        name="direct_reply",
        description=(
            "不屬於任何查詢功能時使用，例如打招呼、感謝、需要澄清或與校務無關的問題。"
            "用簡短友善的繁體中文回覆。"
        ),
        module="direct_reply",
        intent="",
        parameters=(ParamSpec("message", "要直接回覆給使用者的文字"),),
    ),
)

FUNCTIONS_BY_NAME: Dict[str, FunctionSpec] = {f.name: f for f in FUNCTION_DECLARATIONS}

# function name -> (module, intent)
INTENT_MODULE_MAP: Dict[str, Tuple[str, str]] = {
    f.name: (f.module, f.intent) for f in FUNCTION_DECLARATIONS
}


def get_function(name: str) -> Optional[FunctionSpec]:
    return FUNCTIONS_BY_NAME.get(name)


# =============================================================================
# VENDOR RENDERING
# =============================================================================

def _json_schema(spec: FunctionSpec, object_type: str, string_type: str) -> Dict[str, Any]:
    return {
        "type": object_type,
        "properties": {
            p.name: {"type": string_type, "description": p.description}
            for p in spec.parameters
        },
        "required": list(spec.required_params),
    }


def to_openai_tools() -> List[Dict[str, Any]]:
    """Chat Completions `tools` parameter."""
    return [
        {
            "type": "function",
            "function": {
                "name": f.name,
                "description": f.description,
                "parameters": _json_schema(f, "object", "string"),
            },
        }
        for f in FUNCTION_DECLARATIONS
    ]


def to_gemini_tools() -> List[Dict[str, Any]]:
    """google.generativeai `tools` parameter."""
    declarations = []
    for f in FUNCTION_DECLARATIONS:
        decl: Dict[str, Any] = {"name": f.name, "description": f.description}
        # Gemini rejects an OBJECT schema with no properties
        if f.parameters:
            decl["parameters"] = _json_schema(f, "OBJECT", "STRING")
        declarations.append(decl)
    return [{"function_declarations": declarations}]


__all__ = [
    "ParamSpec",
    "FunctionSpec",
    "FUNCTION_DECLARATIONS",
    "FUNCTIONS_BY_NAME",
    "INTENT_MODULE_MAP",
    "get_function",
    "to_openai_tools",
    "to_gemini_tools",
]
