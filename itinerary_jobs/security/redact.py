"""Helpers for redacting sensitive values in logs and error strings."""

from __future__ import annotations

import re

_REDACTED = "***REDACTED***"

# Azure Maps passes its key as ``subscription-key=...`` in the query string.
_QUERY_VALUE_RE = re.compile(
    r"(?i)(?P<prefix>\b(?:subscription-key|key|api[_-]?key|token|secret|sig|password)\s*=\s*)(?P<value>[^&\s\"']+)"
)
_JSON_KV_RE = re.compile(
    r"(?i)(?P<prefix>(?:[\"']?(?:api[_-]?key|subscription[_-]?key|token|secret|password)[\"']?\s*:\s*[\"']?))(?P<value>[^\"',\s}]+)"
)
_AUTH_HEADER_RE = re.compile(
    r"(?i)(?P<prefix>\bauthorization\s*:\s*(?:bearer|basic)\s+)(?P<value>[^\s,;]+)"
)
_OPENAI_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9_-]{8,}\b")
_DSN_CREDENTIAL_RE = re.compile(
    r"(?i)(?P<prefix>\b(?:redis|rediss|postgres(?:ql)?)://)(?P<creds>[^@/\s]+)@"
)


def _replace_value(pattern: re.Pattern[str], text: str) -> str:
    return pattern.sub(lambda match: f"{match.group('prefix')}{_REDACTED}", text)


def redact_sensitive(text: str) -> str:
    """Redact common secret patterns while preserving surrounding context."""
    if not text:
        return text

    redacted = str(text)
    for pattern in (_QUERY_VALUE_RE, _JSON_KV_RE, _AUTH_HEADER_RE):
        redacted = _replace_value(pattern, redacted)
    redacted = _OPENAI_KEY_RE.sub(_REDACTED, redacted)
    return _DSN_CREDENTIAL_RE.sub(rf"\g<prefix>{_REDACTED}@", redacted)


__all__ = ["redact_sensitive"]
