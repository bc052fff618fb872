"""
Compress Proxy Configuration

All tunables live on a ProxyConfig instance that is handed to the pipeline
constructor. Nothing here is process-wide mutable state.
"""

import os
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# ============================================
# Defaults
# ============================================

DEFAULT_QUALITY = 40
MIN_COMPRESS_LENGTH = 1024          # bytes
MAX_OUTPUT_HEIGHT = 16383           # WebP encoder ceiling
DEFAULT_FETCH_TIMEOUT = 5.0         # seconds
DEFAULT_MAX_REDIRECTS = 4

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _default_concurrency() -> int:
    return os.cpu_count() or 1


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[CompressProxy] Invalid integer for {name}={raw!r}, using {default}")
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[CompressProxy] Invalid number for {name}={raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for one proxy pipeline."""
    # Transcoding
    default_quality: int = DEFAULT_QUALITY
    min_compress_length: int = MIN_COMPRESS_LENGTH
    max_output_height: int = MAX_OUTPUT_HEIGHT
    transcode_concurrency: int = field(default_factory=_default_concurrency)

    # Fetching
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: str = DEFAULT_USER_AGENT

    log_level: str = "INFO"

    def __post_init__(self):
        if self.transcode_concurrency < 1:
            raise ValueError("transcode_concurrency must be at least 1")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxyConfig":
        """
        Build config from PROXY_* environment variables.

        Args:
            environ: Optional mapping used instead of os.environ
        """
        env = os.environ if environ is None else environ
        return cls(
            default_quality=_env_int(env, "PROXY_DEFAULT_QUALITY", DEFAULT_QUALITY),
            min_compress_length=_env_int(env, "PROXY_MIN_COMPRESS_LENGTH", MIN_COMPRESS_LENGTH),
            max_output_height=_env_int(env, "PROXY_MAX_OUTPUT_HEIGHT", MAX_OUTPUT_HEIGHT),
            transcode_concurrency=max(1, _env_int(env, "PROXY_TRANSCODE_CONCURRENCY", _default_concurrency())),
            fetch_timeout=_env_float(env, "PROXY_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT),
            max_redirects=max(0, _env_int(env, "PROXY_MAX_REDIRECTS", DEFAULT_MAX_REDIRECTS)),
            user_agent=env.get("PROXY_USER_AGENT") or DEFAULT_USER_AGENT,
            log_level=(env.get("PROXY_LOG_LEVEL") or "INFO").upper(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
