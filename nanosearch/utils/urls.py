"""URL helpers shared by extractors and engines."""

from __future__ import annotations

import base64
import binascii
from urllib.parse import parse_qs, urljoin, urlparse

_RESULT_SCHEMES = {"http", "https"}
_PROXY_SCHEMES = {"http", "https", "socks5", "socks5h"}


def is_http_url(url: str | None) -> bool:
    """Check that a URL is absolute, uses http/https and has a host."""
    if not url:
        return False
    parsed = urlparse(url)
    return (parsed.scheme or "").lower() in _RESULT_SCHEMES and bool(parsed.netloc)


def host_of(url: str) -> str:
    """Host component of a URL, or empty string if it has none."""
    try:
        return urlparse(url).netloc
    except ValueError:
        return ""


def absolutize(href: str, base_url: str | None) -> str:
    """Resolve a relative link against the page's base URL."""
    href = (href or "").strip()
    if not href or is_http_url(href):
        return href
    if href.startswith("//"):
        return f"https:{href}"
    if not base_url:
        return href
    return urljoin(base_url, href)


def query_param(url: str, name: str) -> str:
    """First value of a query parameter, already percent-decoded."""
    try:
        values = parse_qs(urlparse(url).query).get(name)
    except ValueError:
        return ""
    return values[0] if values else ""


def decode_base64_url(value: str) -> str:
    """Decode unpadded urlsafe base64, returning empty string on garbage."""
    if not value:
        return ""
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return ""


def validate_proxy_url(url: str) -> tuple[bool, str]:
    """Validate an upstream proxy URL."""
    parsed = urlparse(url)
    scheme = (parsed.scheme or "").lower()

    if scheme not in _PROXY_SCHEMES:
        return False, f"Proxy scheme must be one of {sorted(_PROXY_SCHEMES)}, got '{scheme or 'none'}'"

    if not parsed.hostname:
        return False, "Proxy host is required"

    return True, ""
