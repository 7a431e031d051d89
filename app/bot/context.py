# FILE: app/bot/context.py
"""
Per-request context threaded through the pipeline.

Carries the chat identity used as the rate-limit key, whether the chat is
a group or room (unmatched text there needs an @mention to reach NLU), and
an absolute deadline (time.monotonic() scale) that LLM adapters consult
before starting another attempt.

LLM_ADMITTED_KEY is set once the request has spent its LLM limiter token,
so modules calling the LLM again within the same request do not charge it
twice.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

CHAT_ID_KEY = "chatID"
LLM_ADMITTED_KEY = "llmAdmitted"


@dataclass(frozen=True)
class RequestContext:
    chat_id: str = ""
    user_id: str = ""
    deadline: Optional[float] = None
    is_group: bool = False
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        chat_id: str = "",
        user_id: str = "",
        timeout: Optional[float] = None,
        is_group: bool = False,
        **values: Any,
    ) -> "RequestContext":
        deadline = time.monotonic() + timeout if timeout is not None else None
        merged = {CHAT_ID_KEY: chat_id, **values}
        return cls(chat_id=chat_id, user_id=user_id, deadline=deadline, is_group=is_group, values=merged)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_values(self, **values: Any) -> "RequestContext":
        return replace(self, values={**self.values, **values})

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0


__all__ = ["RequestContext", "CHAT_ID_KEY", "LLM_ADMITTED_KEY"]
