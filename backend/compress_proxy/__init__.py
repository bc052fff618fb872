"""
Compress Proxy Module
图片压缩代理模块

Bandwidth-saving image proxy: fetches an image, decides whether
recompressing it is worthwhile, and returns either the transcoded
or the original bytes.

Features:
- Streaming origin fetch with bounded redirects and timeout
- Compression-worthiness heuristic
- Incremental decode, WebP/JPEG re-encode in a bounded worker pool
- Redirect-to-origin fallback when transcoding fails
"""

from .config import ProxyConfig
from .pipeline import ProxyPipeline
from .policy import should_compress
from .routes_fastapi import router

__all__ = ["router", "ProxyConfig", "ProxyPipeline", "should_compress"]
