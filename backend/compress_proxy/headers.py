"""
Header allow-lists.

Only named headers ever cross the proxy, in either direction.
"""

from typing import Dict, Mapping, Optional
from urllib.parse import quote

# Inbound request headers that may be forwarded to the origin
FORWARDED_REQUEST_HEADERS = (
    "cookie",
    "dnt",
    "referer",
    "accept-language",
    "range",
    "user-agent",
)

# Origin response headers copied onto a pass-through response
PASS_THROUGH_HEADERS = (
    "accept-ranges",
    "content-type",
    "content-length",
    "content-range",
)

# Stripped from a redirect fallback response
CACHE_HEADERS = ("cache-control", "expires", "date", "etag")

PROXY_VIA = "1.1 compress-proxy"

# Characters left unescaped by JavaScript's encodeURI, plus "%" so an
# already-escaped URL is not escaped twice
_URI_SAFE = ";,/?:@&=+$-_.!~*'()#[]%"


def build_origin_headers(
    inbound: Mapping[str, str],
    user_agent: str,
    client_ip: Optional[str] = None,
) -> Dict[str, str]:
    """
    Build outbound origin request headers from the inbound request.

    Args:
        inbound: Inbound request headers (any case)
        user_agent: Synthetic User-Agent used when the client sent none
        client_ip: Client address appended to X-Forwarded-For

    Returns:
        Lower-cased header dict safe to send to the origin
    """
    lowered = {k.lower(): v for k, v in inbound.items()}

    headers = {
        name: lowered[name]
        for name in FORWARDED_REQUEST_HEADERS
        if lowered.get(name)
    }
    headers.setdefault("user-agent", user_agent)
    headers["accept"] = "image/*,*/*;q=0.8"
    headers["accept-encoding"] = "identity"
    headers["via"] = PROXY_VIA

    if client_ip:
        prior = lowered.get("x-forwarded-for")
        headers["x-forwarded-for"] = f"{prior}, {client_ip}" if prior else client_ip

    return headers


def pass_through_headers(origin_headers: Mapping[str, str]) -> Dict[str, str]:
    """
    Copy the allow-listed origin headers for a pass-through response.

    Content-Length is dropped when the origin body was content-encoded,
    since the proxy streams the decoded bytes.
    """
    lowered = {k.lower(): v for k, v in origin_headers.items()}
    headers = {
        name: lowered[name]
        for name in PASS_THROUGH_HEADERS
        if name in lowered
    }
    encoding = lowered.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        headers.pop("content-length", None)
    return headers


def encode_location(url: str) -> str:
    """Escape a URL for a Location header the way encodeURI does."""
    return quote(url, safe=_URI_SAFE)


def redirect_headers(
    url: str,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Headers for the redirect-to-origin fallback.

    Args:
        url: Original image URL
        base: Headers already staged for the response, if any
    """
    headers = {
        k.lower(): v
        for k, v in (base or {}).items()
        if k.lower() not in CACHE_HEADERS
    }
    headers["location"] = encode_location(url)
    headers["content-length"] = "0"
    return headers
