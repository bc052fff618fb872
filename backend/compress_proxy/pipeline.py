"""
Proxy Pipeline

fetch -> decide -> transcode/stream -> respond

Failure policy:
- Fetch-level failures and decode/encode failures before any byte is sent
  become a 302 back to the origin URL
- Origin 4xx/5xx statuses are propagated untouched
- Pass-through stream failures after the response started re-raise so the
  server aborts the connection
"""

import logging
from typing import AsyncIterator, Mapping, Optional

import httpx
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from .config import ProxyConfig
from .errors import (
    ClientDisconnected,
    DecodeError,
    EncodeError,
    FetchError,
    NetworkFailure,
    OriginError,
)
from .fetcher import OriginFetcher
from .headers import build_origin_headers, pass_through_headers, redirect_headers
from .models import FetchRequest, OriginResponse, ProxyResult, TranscodeOptions
from .policy import should_compress
from .transcoder import DisconnectCheck, Transcoder

logger = logging.getLogger(__name__)

CORS_HEADERS = {"access-control-allow-origin": "*"}


def log_result(url: str, result: ProxyResult) -> None:
    logger.info(f"[CompressProxy] {url[:60]}... {result.describe()}")


class ProxyPipeline:
    """
    Proxies one image request per call to handle().

    Owns the origin fetcher and the transcoder worker pool; both are built
    from the ProxyConfig given here.
    """

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        fetcher: Optional[OriginFetcher] = None,
        transcoder: Optional[Transcoder] = None,
    ):
        self.config = config or ProxyConfig()
        self.fetcher = fetcher or OriginFetcher()
        self.transcoder = transcoder or Transcoder(self.config.transcode_concurrency)

    async def close(self):
        await self.fetcher.close()
        self.transcoder.shutdown()

    def build_fetch_request(
        self,
        url: str,
        inbound_headers: Mapping[str, str],
        client_ip: Optional[str] = None,
    ) -> FetchRequest:
        return FetchRequest(
            url=url,
            headers=build_origin_headers(inbound_headers, self.config.user_agent, client_ip),
            timeout=self.config.fetch_timeout,
            max_redirects=self.config.max_redirects,
        )

    # ============================================
    # Main Entry Point
    # ============================================

    async def handle(
        self,
        url: str,
        options: TranscodeOptions,
        inbound_headers: Mapping[str, str],
        client_ip: Optional[str] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> Response:
        """
        Proxy one image.

        Args:
            url: Decoded origin URL
            options: Transcode settings for this request
            inbound_headers: Headers of the inbound request
            client_ip: Client address for X-Forwarded-For
            is_disconnected: Polled between origin chunks; True aborts the transcode

        Returns:
            The response to send
        """
        request = self.build_fetch_request(url, inbound_headers, client_ip)

        try:
            origin = await self.fetcher.fetch(request)
        except OriginError as e:
            log_result(url, ProxyResult.failed(f"origin status {e.status_code}"))
            return Response(status_code=e.status_code, headers=dict(CORS_HEADERS))
        except FetchError as e:
            logger.warning(f"[CompressProxy] Fetch failed ({type(e).__name__}): {url[:60]}... - {e}")
            return self.redirect(url)

        range_requested = any(k.lower() == "range" for k in inbound_headers)
        if not should_compress(
            origin.content_type,
            origin.content_length,
            range_requested,
            options.is_webp,
            self.config.min_compress_length,
        ):
            return self.pass_through(url, origin)

        return await self.process(url, origin, options, is_disconnected)

    # ============================================
    # Transcode Path
    # ============================================

    async def process(
        self,
        url: str,
        origin: OriginResponse,
        options: TranscodeOptions,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> Response:
        """Transcode the origin body; fall back to a redirect on failure."""
        origin_size = origin.content_length
        try:
            result = await self.transcoder.transcode(origin.body, options, is_disconnected)
        except ClientDisconnected:
            logger.info(f"[CompressProxy] Client disconnected: {url[:60]}...")
            log_result(url, ProxyResult.failed("client disconnected"))
            return Response(status_code=204)
        except (DecodeError, EncodeError) as e:
            logger.warning(f"[CompressProxy] {e.stage} failed: {url[:60]}... - {e}")
            return self.redirect(url)
        except httpx.HTTPError as e:
            logger.warning(f"[CompressProxy] Origin stream failed: {url[:60]}... - {e}")
            return self.redirect(url)
        finally:
            await origin.aclose()

        output_size = len(result.data)
        log_result(url, ProxyResult.transcoded(origin_size, output_size))
        return Response(
            content=result.data,
            media_type=result.content_type,
            headers={
                **CORS_HEADERS,
                "x-original-size": str(origin_size),
                "x-bytes-saved": str(origin_size - output_size),
            },
        )

    # ============================================
    # Pass-through Path
    # ============================================

    def pass_through(self, url: str, origin: OriginResponse) -> StreamingResponse:
        """Stream origin bytes unmodified with allow-listed headers."""
        headers = pass_through_headers(origin.headers)
        headers.update(CORS_HEADERS)
        headers["x-proxy-bypass"] = "1"

        async def body() -> AsyncIterator[bytes]:
            written = 0
            try:
                async for chunk in origin.body:
                    written += len(chunk)
                    yield chunk
            except httpx.HTTPError as e:
                logger.error(f"[CompressProxy] Stream aborted after {written} bytes: {url[:60]}... - {e}")
                log_result(url, ProxyResult.failed(f"stream aborted after {written} bytes"))
                raise NetworkFailure(f"Origin stream failed: {e}", url=url) from e
            finally:
                await origin.aclose()
            log_result(url, ProxyResult.streamed(written))

        return StreamingResponse(
            body(),
            status_code=origin.status_code,
            headers=headers,
            background=BackgroundTask(origin.aclose),
        )

    # ============================================
    # Redirect Fallback
    # ============================================

    def redirect(self, url: str) -> Response:
        """302 back to the origin URL with cache headers stripped."""
        headers = redirect_headers(url, CORS_HEADERS)
        log_result(url, ProxyResult.redirected(headers["location"]))
        return Response(status_code=302, headers=headers)
