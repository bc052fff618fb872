"""
Compress Proxy 测试配置文件

Shared fixtures:
- origin: in-process fake origin server (httpx.MockTransport handler)
- pipeline: ProxyPipeline wired to the fake origin
- client: httpx.AsyncClient talking to the FastAPI app in-process
"""

import asyncio
import io
import random
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest
from PIL import Image

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from compress_proxy import ProxyConfig, ProxyPipeline
from compress_proxy.fetcher import OriginFetcher


ORIGIN = "http://origin.test"


# ============================================
# Test Image Helpers
# ============================================

def make_noise_image(width: int, height: int, seed: int = 0, mode: str = "RGB") -> Image.Image:
    """Deterministic noisy image (compresses poorly, like a photo)."""
    channels = len(mode)
    data = random.Random(seed).randbytes(width * height * channels)
    return Image.frombytes(mode, (width, height), data)


def encode(img: Image.Image, fmt: str, **kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def make_jpeg(width: int = 200, height: int = 200, seed: int = 0) -> bytes:
    return encode(make_noise_image(width, height, seed), "JPEG", quality=95)


def make_png(width: int = 64, height: int = 64, color=(255, 0, 0, 128)) -> bytes:
    return encode(Image.new("RGBA", (width, height), color), "PNG")


def pad_to(data: bytes, size: int) -> bytes:
    """Pad an encoded image with trailing bytes that decoders ignore."""
    assert len(data) <= size, f"image is already {len(data)} bytes"
    return data + b"\x00" * (size - len(data))


# ============================================
# Origin Body Streams
# ============================================

class StallingStream(httpx.AsyncByteStream):
    """Sends a first chunk, then stalls before the rest."""

    def __init__(self, first: bytes, rest: bytes = b"", stall: float = 2.0):
        self.first = first
        self.rest = rest
        self.stall = stall

    async def __aiter__(self):
        yield self.first
        await asyncio.sleep(self.stall)
        if self.rest:
            yield self.rest


class FailingStream(httpx.AsyncByteStream):
    """Sends the given chunks, then fails like a dropped connection."""

    def __init__(self, *chunks: bytes):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        raise httpx.ReadError("connection reset by origin")

    async def aclose(self):
        self.closed = True


# ============================================
# Fake Origin
# ============================================

Entry = Union[Callable[[httpx.Request], httpx.Response], Exception]


class FakeOrigin:
    """
    Records outbound requests and answers from a route table.

    Usage:
        origin.image("/a.jpg", data, "image/jpeg")
        origin.redirect("/old", "/a.jpg")
        origin.fail("/slow", httpx.ReadTimeout("timed out"))
    """

    def __init__(self):
        self.routes: Dict[str, Entry] = {}
        self.requests: List[httpx.Request] = []

    def url(self, path: str) -> str:
        return f"{ORIGIN}{path}"

    def add(self, path: str, factory: Callable[[httpx.Request], httpx.Response]):
        self.routes[self.url(path)] = factory

    def image(
        self,
        path: str,
        data: bytes,
        content_type: str = "image/jpeg",
        headers: Optional[Dict[str, str]] = None,
        known_length: bool = True,
        status: int = 200,
    ):
        all_headers = {"content-type": content_type, **(headers or {})}
        if known_length:
            self.add(path, lambda request: httpx.Response(status, headers=all_headers, content=data))
        else:
            self.add(path, lambda request: httpx.Response(
                status, headers=all_headers, stream=httpx.ByteStream(data)
            ))

    def stream(
        self,
        path: str,
        stream: httpx.AsyncByteStream,
        content_type: str = "image/jpeg",
        content_length: Optional[int] = None,
    ):
        headers = {"content-type": content_type}
        if content_length is not None:
            headers["content-length"] = str(content_length)
        self.add(path, lambda request: httpx.Response(200, headers=headers, stream=stream))

    def status(self, path: str, status: int, body: bytes = b"error"):
        self.add(path, lambda request: httpx.Response(status, content=body))

    def redirect(self, path: str, target: str, status: int = 302):
        self.add(path, lambda request: httpx.Response(status, headers={"location": self.url(target)}))

    def fail(self, path: str, error: Exception):
        self.routes[self.url(path)] = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.routes.get(str(request.url))
        if entry is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(entry, Exception):
            raise entry
        return entry(request)


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def origin():
    return FakeOrigin()


@pytest.fixture
def config():
    return ProxyConfig(transcode_concurrency=2)


@pytest.fixture
async def pipeline(origin, config):
    fetcher = OriginFetcher(transport=httpx.MockTransport(origin))
    proxy = ProxyPipeline(config, fetcher=fetcher)
    yield proxy
    await proxy.close()


@pytest.fixture
async def client(origin, config):
    from main import create_app

    app = create_app(config, transport=httpx.MockTransport(origin))
    transport = httpx.ASGITransport(app=app, client=("10.0.0.7", 51234))
    async with httpx.AsyncClient(transport=transport, base_url="http://proxy.test") as http:
        yield http
    await app.state.pipeline.close()
