"""Helpers for safe debug logging.

Audit metadata may carry operator identifiers (IP address, session and
request ids, user agent). This module redacts those fields before they
are emitted in DEBUG logs; the audit files themselves keep them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pygarage._constants import REQUEST_CONTEXT_KEYS

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(key.lower() for key in REQUEST_CONTEXT_KEYS)


def _normalize_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Keys match regardless of case and of ``snake_case``/``camelCase``
    spelling (``ip_address`` and ``ipAddress`` are both redacted).
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if _normalize_key(key) in _SENSITIVE_VALUE_KEYS and v is not None:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Fallback: represent unknown objects without dumping internals.
    return repr(value)
