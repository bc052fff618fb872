"""
Origin Fetcher

Issues the outbound GET for a proxied image:
- Bounded redirect following
- Overall deadline up to the final response headers, plus a per-read timeout
- Origin status >= 400 surfaces as OriginError, error bodies are never read
- Body exposed as a single-consumer ByteStream
"""

import asyncio
import logging
from typing import Optional

import httpx

from .errors import FetchTimeout, NetworkFailure, OriginError, TooManyRedirects
from .models import ByteStream, FetchRequest, OriginResponse

logger = logging.getLogger(__name__)


def _parse_content_length(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        length = int(value.strip())
    except ValueError:
        return 0
    return length if length > 0 else 0


class OriginFetcher:
    """
    Fetches origin images over a shared httpx connection pool.

    Usage:
        fetcher = OriginFetcher()
        origin = await fetcher.fetch(FetchRequest(url=...))
        async for chunk in origin.body:
            ...
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            client: Pre-built client (owned by the caller)
            transport: Transport for a client built here, e.g. httpx.MockTransport
        """
        self._owns_client = client is None
        # Redirects are followed by hand so each hop is counted
        self.http_client = client or httpx.AsyncClient(
            follow_redirects=False,
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        if self._owns_client:
            await self.http_client.aclose()

    async def _send(
        self,
        outbound: httpx.Request,
        max_redirects: int,
        url: str,
    ) -> httpx.Response:
        """Send a request, following at most max_redirects redirects."""
        response = None
        try:
            for _ in range(max_redirects + 1):
                response = await self.http_client.send(outbound, stream=True)
                if not response.is_redirect:
                    return response
                next_request = response.next_request
                await response.aclose()
                response = None
                if next_request is None:
                    raise NetworkFailure("Redirect without a usable Location", url=url)
                logger.debug(f"[CompressProxy] Redirect: {url[:60]}... -> {str(next_request.url)[:60]}...")
                outbound = next_request
        except BaseException:
            # Cancelled by the deadline or failed mid-hop
            if response is not None:
                await response.aclose()
            raise
        raise TooManyRedirects(f"Exceeded {max_redirects} redirects", url=url)

    async def fetch(self, request: FetchRequest) -> OriginResponse:
        """
        Fetch an origin URL.

        Args:
            request: Outbound request description

        Returns:
            OriginResponse whose body the caller must drain or close

        Raises:
            FetchTimeout, TooManyRedirects, NetworkFailure, OriginError
        """
        url = request.url
        outbound = self.http_client.build_request(
            "GET",
            url,
            headers=dict(request.headers),
            timeout=httpx.Timeout(request.timeout),
        )

        try:
            # Deadline covers every redirect hop up to the final response headers
            response = await asyncio.wait_for(
                self._send(outbound, request.max_redirects, url),
                timeout=request.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"[CompressProxy] Timeout: {url[:60]}...")
            raise FetchTimeout(f"Origin timed out after {request.timeout}s", url=url) from e
        except httpx.TooManyRedirects as e:
            raise TooManyRedirects(str(e), url=url) from e
        except httpx.HTTPError as e:
            logger.error(f"[CompressProxy] Fetch error: {url[:60]}... - {e}")
            raise NetworkFailure(f"Failed to fetch origin: {e}", url=url) from e

        if response.status_code >= 400:
            await response.aclose()
            logger.error(f"[CompressProxy] HTTP error {response.status_code}: {url[:60]}...")
            raise OriginError(response.status_code, url=url)

        headers = {k.lower(): v for k, v in response.headers.items()}
        return OriginResponse(
            status_code=response.status_code,
            content_type=headers.get("content-type", ""),
            content_length=_parse_content_length(headers.get("content-length")),
            headers=headers,
            body=ByteStream(response.aiter_bytes(), response.aclose),
            url=str(response.url),
        )
