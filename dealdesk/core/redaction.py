"""
Redaction for collaborator error strings.

Email and CRM collaborators own their authentication, and their error text
sometimes echoes request headers or signed URLs. Anything that reaches a
ToolResult or a log line goes through redact_message() first.
"""
from __future__ import annotations

import re
from typing import Any

# ── Key-based redaction (case-insensitive substring match) ───────────
_SENSITIVE_KEY_SUBSTRINGS = frozenset({
    "password", "passwd", "secret", "token", "apikey", "api_key",
    "authorization", "bearer", "cookie", "credential", "signature",
})

# ── Value-based patterns ────────────────────────────────────────────
_JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")
_BEARER_PATTERN = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9._~+/=-]+")
_QUERY_SECRET_PATTERN = re.compile(
    r"(?i)\b([a-z_]*(?:token|key|secret|signature|password|code)[a-z_]*)=([^&\s\"']+)"
)

REDACTED = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(s in lower for s in _SENSITIVE_KEY_SUBSTRINGS)


def redact_message(text: str) -> str:
    """Mask JWTs, bearer credentials and secret-looking query parameters."""
    if not text:
        return text
    text = _JWT_PATTERN.sub(REDACTED, text)
    text = _BEARER_PATTERN.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    text = _QUERY_SECRET_PATTERN.sub(lambda m: f"{m.group(1)}={REDACTED}", text)
    return text


def redact_payload(obj: Any, parent_key: str = "") -> Any:
    """Recursively redact sensitive keys and secret-looking string values."""
    if isinstance(obj, dict):
        return {k: redact_payload(v, k) for k, v in obj.items()}
    if isinstance(obj, list):
        return [redact_payload(item, parent_key) for item in obj]
    if isinstance(obj, str):
        if _is_sensitive_key(parent_key):
            return REDACTED
        return redact_message(obj)
    return obj
