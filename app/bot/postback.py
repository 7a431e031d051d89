# FILE: app/bot/postback.py
"""
Postback payload codec.

Two wire formats are accepted:

1. Legacy (what quick replies and buttons emit):
       module:action$data1$data2
   Split on the first ":" then on "$". A module decides whether its action
   needs data; decode_postback(..., require_data=True) enforces that.

2. Compact JSON (max 300 bytes, LINE's postback limit):
       {"m": "course", "a": "detail", "p": {"uid": "1131U0001"}}

Malformed payloads decode to None and log one warning. Stale or forged
callbacks produce no reply and no error spam.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

POSTBACK_SPLIT_CHAR = "$"
MODULE_SEPARATOR = ":"
MAX_POSTBACK_BYTES = 300


@dataclass(frozen=True)
class Postback:
    module: str
    action: str
    data: Tuple[str, ...] = ()
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def joined_data(self) -> str:
        return POSTBACK_SPLIT_CHAR.join(self.data)

    @property
    def first(self) -> str:
        return self.data[0] if self.data else ""


# =============================================================================
# LEGACY FORMAT
# =============================================================================

def encode_postback(module: str, action: str, *data: str) -> str:
    """Build module:action$d1$d2."""
    for label, value in (("module", module), ("action", action)):
        if not value:
            raise ValueError(f"postback {label} must not be empty")
        if MODULE_SEPARATOR in value or POSTBACK_SPLIT_CHAR in value:
            raise ValueError(f"postback {label} contains a reserved separator: {value!r}")
    for value in data:
        if POSTBACK_SPLIT_CHAR in value:
            raise ValueError(f"postback data contains {POSTBACK_SPLIT_CHAR!r}: {value!r}")

    payload = f"{module}{MODULE_SEPARATOR}{action}"
    if data:
        payload += POSTBACK_SPLIT_CHAR + POSTBACK_SPLIT_CHAR.join(data)
    if len(payload.encode("utf-8")) > MAX_POSTBACK_BYTES:
        raise ValueError(f"postback exceeds {MAX_POSTBACK_BYTES} bytes")
    return payload


def _decode_legacy(payload: str, require_data: bool) -> Optional[Postback]:
    module, sep, rest = payload.partition(MODULE_SEPARATOR)
    if not sep:
        logger.warning(f"[postback] missing {MODULE_SEPARATOR!r} separator: {payload[:60]!r}")
        return None

    action, has_data, raw = rest.partition(POSTBACK_SPLIT_CHAR)
    if not module or not action:
        logger.warning(f"[postback] empty module or action: {payload[:60]!r}")
        return None
    if require_data and not has_data:
        logger.warning(f"[postback] missing data for {module}:{action}: {payload[:60]!r}")
        return None

    data = tuple(raw.split(POSTBACK_SPLIT_CHAR)) if has_data else ()
    params = {f"p{i}": value for i, value in enumerate(data)}
    return Postback(module=module, action=action, data=data, params=params)


# =============================================================================
# JSON FORMAT
# =============================================================================

def encode_json_postback(module: str, action: str, params: Optional[Dict[str, str]] = None) -> str:
    body: Dict[str, object] = {"m": module, "a": action}
    if params:
        body["p"] = {str(k): str(v) for k, v in params.items()}
    encoded = json.dumps(body, ensure_ascii=False, separators=(",", ":"))
    size = len(encoded.encode("utf-8"))
    if size > MAX_POSTBACK_BYTES:
        raise ValueError(f"postback data exceeds {MAX_POSTBACK_BYTES} bytes: {size}")
    return encoded


def decode_json_postback(payload: str) -> Optional[Postback]:
    try:
        body = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning(f"[postback] invalid JSON payload: {payload[:60]!r}")
        return None
    if not isinstance(body, dict):
        logger.warning(f"[postback] JSON payload is not an object: {payload[:60]!r}")
        return None

    module = body.get("m")
    action = body.get("a")
    raw_params = body.get("p") or {}
    if not isinstance(module, str) or not module or not isinstance(action, str) or not action:
        logger.warning(f"[postback] JSON payload missing module/action: {payload[:60]!r}")
        return None
    if not isinstance(raw_params, dict):
        logger.warning(f"[postback] JSON params must be an object: {payload[:60]!r}")
        return None

    params = {str(k): str(v) for k, v in raw_params.items()}
    return Postback(module=module, action=action, data=tuple(params.values()), params=params)


# =============================================================================
# ENTRY POINT
# =============================================================================

def decode_postback(payload: Optional[str], require_data: bool = False) -> Optional[Postback]:
    """Decode either format. Returns None (with a warning) for malformed input."""
    if not payload or not payload.strip():
        logger.warning("[postback] empty payload")
        return None
    payload = payload.strip()
    if len(payload.encode("utf-8")) > MAX_POSTBACK_BYTES:
        logger.warning(f"[postback] payload exceeds {MAX_POSTBACK_BYTES} bytes")
        return None

    if payload.startswith("{"):
        result = decode_json_postback(payload)
        if result is not None and require_data and not result.data:
            logger.warning(f"[postback] missing data for {result.module}:{result.action}")
            return None
        return result
    return _decode_legacy(payload, require_data)


def postback_module(payload: str) -> str:
    """Module name of a payload without full validation ("" if none)."""
    payload = (payload or "").strip()
    if payload.startswith("{"):
        decoded = decode_json_postback(payload)
        return decoded.module if decoded else ""
    module, sep, _ = payload.partition(MODULE_SEPARATOR)
    return module if sep else ""


__all__ = [
    "POSTBACK_SPLIT_CHAR",
    "MODULE_SEPARATOR",
    "MAX_POSTBACK_BYTES",
    "Postback",
    "encode_postback",
    "decode_postback",
    "encode_json_postback",
    "decode_json_postback",
    "postback_module",
]
