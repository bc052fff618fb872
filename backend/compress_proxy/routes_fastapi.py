"""
Compress Proxy API Routes

Provides endpoints for:
- Proxying and recompressing external images
- Health check

Query vocabulary of the proxy endpoint:
- url:  source image URL (required, percent-encoded)
- jpeg: present -> JPEG output, otherwise WebP
- bw:   "0" disables grayscale, anything else (or absent) enables it
- l:    output quality, integer 0-100
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from .errors import MissingParameter
from .models import ImageFormat, ProxyResult, TranscodeOptions
from .pipeline import ProxyPipeline, log_result

logger = logging.getLogger(__name__)


# ============================================
# Request/Response Models
# ============================================

class HealthResponse(BaseModel):
    """Response model for health endpoint"""
    status: str
    service: str
    config: Dict[str, Any]


# ============================================
# Helpers
# ============================================

def get_pipeline(request: Request) -> ProxyPipeline:
    return request.app.state.pipeline


def parse_source_url(url: Optional[str]) -> str:
    """
    Decode and validate the `url` query parameter.

    Raises:
        MissingParameter: url is absent or not an http(s) URL
    """
    if not url:
        raise MissingParameter("Missing URL parameter.")

    url = unquote(url.strip())
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise MissingParameter(f"Invalid URL: {url[:80]}", url=url)
    return url


def parse_quality(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def build_options(
    jpeg: Optional[str],
    bw: Optional[str],
    quality: Optional[str],
    default_quality: int,
    max_output_height: int,
) -> TranscodeOptions:
    """Map query parameters onto TranscodeOptions."""
    return TranscodeOptions(
        target_format=ImageFormat.JPEG if jpeg is not None else ImageFormat.WEBP,
        quality=parse_quality(quality, default_quality),
        grayscale=bw != "0",
        max_output_height=max_output_height,
    )


# ============================================
# Router
# ============================================

router = APIRouter(tags=["Compress Proxy"])


@router.get("/")
async def proxy_image(
    request: Request,
    url: Optional[str] = Query(None, description="URL of the image to proxy"),
    jpeg: Optional[str] = Query(None, description="Present to force JPEG output"),
    bw: Optional[str] = Query(None, description='"0" disables grayscale'),
    l: Optional[str] = Query(None, description="Output quality (0-100)"),
    pipeline: ProxyPipeline = Depends(get_pipeline),
):
    """
    Fetch an image and return it recompressed, or unmodified when
    recompression is not worthwhile.

    Example:
        GET /?url=https%3A%2F%2Fexample.com%2Fimage.jpg&bw=0&l=60
    """
    try:
        source_url = parse_source_url(url)
    except MissingParameter as e:
        logger.info(f"[CompressProxy] Bad request: {e}")
        return PlainTextResponse(str(e), status_code=400)

    options = build_options(
        jpeg,
        bw,
        l,
        pipeline.config.default_quality,
        pipeline.config.max_output_height,
    )
    client_ip = request.client.host if request.client else None

    try:
        return await pipeline.handle(
            source_url,
            options,
            request.headers,
            client_ip=client_ip,
            is_disconnected=request.is_disconnected,
        )
    except Exception as e:
        logger.exception(f"[CompressProxy] Processing error: {source_url[:60]}...")
        log_result(source_url, ProxyResult.failed(str(e)))
        return PlainTextResponse("Internal Server Error.", status_code=500)


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: ProxyPipeline = Depends(get_pipeline)):
    """Health check endpoint."""
    config = pipeline.config.to_dict()
    config.pop("user_agent", None)
    return JSONResponse(content={
        "status": "healthy",
        "service": "compress-proxy",
        "config": config,
    })
