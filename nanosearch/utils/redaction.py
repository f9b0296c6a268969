"""Utilities for redacting credentials before values reach the logs."""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

SECRET_PLACEHOLDER = "[REDACTED]"

_USERINFO_RE = re.compile(r"(?i)\b((?:https?|socks5h?)://)([^/@\s:]+)(?::[^/@\s]*)?@")


def redact_url(url: str | None) -> str:
    """Hide userinfo (proxy user/password) in a URL."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return _USERINFO_RE.sub(rf"\1{SECRET_PLACEHOLDER}@", url)

    if "@" not in parts.netloc:
        return url

    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, f"{SECRET_PLACEHOLDER}@{host}", parts.path, parts.query, parts.fragment))


def redact_text(text: str) -> str:
    """Redact every credentialed URL found inside free text."""
    if not text:
        return text
    return _USERINFO_RE.sub(rf"\1{SECRET_PLACEHOLDER}@", text)
