"""
Compress Proxy Errors
压缩代理异常

Error taxonomy for the fetch -> decide -> transcode pipeline:
- MissingParameter: bad inbound request (400)
- FetchError and subclasses: origin unreachable or erroring
- DecodeError / EncodeError: image payload could not be transcoded
- ClientDisconnected: the client went away mid-request
"""

from typing import Optional


class ProxyError(Exception):
    """Base class for all proxy errors."""

    stage = "proxy"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class MissingParameter(ProxyError):
    """The inbound request has no usable `url` parameter."""

    stage = "request"


# ============================================
# Fetch Errors
# ============================================

class FetchError(ProxyError):
    """Origin could not be fetched."""

    stage = "fetch"


class FetchTimeout(FetchError):
    pass


class TooManyRedirects(FetchError):
    pass


class NetworkFailure(FetchError):
    pass


class OriginError(FetchError):
    """Origin answered with a status code >= 400."""

    def __init__(self, status_code: int, url: Optional[str] = None):
        super().__init__(f"Origin responded with HTTP {status_code}", url=url)
        self.status_code = status_code


# ============================================
# Transcode Errors
# ============================================

class DecodeError(ProxyError):
    stage = "decode"


class EncodeError(ProxyError):
    stage = "encode"


class ClientDisconnected(ProxyError):
    """Client closed the connection; no response is possible."""

    stage = "sink"
