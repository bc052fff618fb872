"""
Compress Proxy Data Models
数据模型

包含：
- FetchRequest: outbound origin request, built once per inbound call
- ByteStream: single-consumer async byte stream
- OriginResponse: fetched origin status, metadata and body
- TranscodeOptions: per-request encoder settings
- ProxyResult: terminal outcome of one request (observability only)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional


# ============================================
# Fetch Models
# ============================================

@dataclass(frozen=True)
class FetchRequest:
    """Outbound origin request."""
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 5.0            # seconds
    max_redirects: int = 4


class ByteStream:
    """
    Single-consumer async byte stream over an origin body.

    Exactly one reader may drain it. Draining to the end or calling
    aclose() releases the underlying connection.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Callable[[], Awaitable[None]],
    ):
        self._chunks = chunks
        self._close = close
        self._consumed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Origin body has already been consumed")
        self._consumed = True
        try:
            async for chunk in self._chunks:
                if chunk:
                    yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._close()


@dataclass
class OriginResponse:
    """Origin response handed from the fetcher to the pipeline."""
    status_code: int
    content_type: str
    content_length: int             # 0 if unknown
    headers: Dict[str, str]
    body: ByteStream
    url: str = ""                   # final URL after redirects

    async def aclose(self) -> None:
        await self.body.aclose()


# ============================================
# Transcode Models
# ============================================

class ImageFormat(str, Enum):
    """Output encodings the proxy can produce."""
    WEBP = "webp"
    JPEG = "jpeg"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def pil_format(self) -> str:
        return self.value.upper()


def clamp_quality(quality: int) -> int:
    return max(0, min(100, int(quality)))


@dataclass(frozen=True)
class TranscodeOptions:
    """Encoder settings derived once per request from query parameters."""
    target_format: ImageFormat = ImageFormat.WEBP
    quality: int = 40
    grayscale: bool = True
    max_output_height: int = 16383

    def __post_init__(self):
        object.__setattr__(self, "quality", clamp_quality(self.quality))

    @property
    def is_webp(self) -> bool:
        return self.target_format is ImageFormat.WEBP


# ============================================
# Result Models
# ============================================

class ResultKind(str, Enum):
    STREAMED = "streamed"
    TRANSCODED = "transcoded"
    REDIRECTED = "redirected"
    FAILED = "failed"


@dataclass(frozen=True)
class ProxyResult:
    """Terminal outcome of one proxied request."""
    kind: ResultKind
    bytes_written: int = 0
    original_size: int = 0
    output_size: int = 0
    location: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def streamed(cls, bytes_written: int) -> "ProxyResult":
        return cls(ResultKind.STREAMED, bytes_written=bytes_written)

    @classmethod
    def transcoded(cls, original_size: int, output_size: int) -> "ProxyResult":
        return cls(ResultKind.TRANSCODED, original_size=original_size, output_size=output_size)

    @classmethod
    def redirected(cls, location: str) -> "ProxyResult":
        return cls(ResultKind.REDIRECTED, location=location)

    @classmethod
    def failed(cls, reason: str) -> "ProxyResult":
        return cls(ResultKind.FAILED, reason=reason)

    def describe(self) -> str:
        if self.kind is ResultKind.STREAMED:
            return f"streamed {self.bytes_written} bytes"
        if self.kind is ResultKind.TRANSCODED:
            return (
                f"transcoded {self.original_size//1024}KB -> {self.output_size//1024}KB "
                f"(saved {self.original_size - self.output_size} bytes)"
            )
        if self.kind is ResultKind.REDIRECTED:
            return f"redirected to origin {(self.location or '')[:60]}"
        return f"failed: {self.reason}"
