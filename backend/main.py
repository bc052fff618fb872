"""
Compress Proxy Server

Run:
    cd backend
    uvicorn main:app --host 0.0.0.0 --port 8080
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from compress_proxy import ProxyConfig, ProxyPipeline, router
from compress_proxy.fetcher import OriginFetcher

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Proxy configuration, read from the environment if omitted
        transport: Outbound transport override (tests)
    """
    config = config or ProxyConfig.from_env()
    pipeline = ProxyPipeline(config, fetcher=OriginFetcher(transport=transport))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"[CompressProxy] Starting with config: {config.to_dict()}")
        yield
        await pipeline.close()

    app = FastAPI(title="Compress Proxy", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.include_router(router)
    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_config = ProxyConfig.from_env()
configure_logging(_config.log_level)
app = create_app(_config)
