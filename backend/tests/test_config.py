"""
Configuration tests
"""

import pytest

from compress_proxy.config import DEFAULT_USER_AGENT, ProxyConfig


class TestProxyConfig:

    def test_defaults(self):
        config = ProxyConfig.from_env({})
        assert config.default_quality == 40
        assert config.min_compress_length == 1024
        assert config.max_output_height == 16383
        assert config.fetch_timeout == 5.0
        assert config.max_redirects == 4
        assert config.transcode_concurrency >= 1
        assert config.user_agent == DEFAULT_USER_AGENT

    def test_reads_environment(self):
        config = ProxyConfig.from_env({
            "PROXY_DEFAULT_QUALITY": "80",
            "PROXY_FETCH_TIMEOUT": "2.5",
            "PROXY_MAX_REDIRECTS": "2",
            "PROXY_TRANSCODE_CONCURRENCY": "3",
            "PROXY_USER_AGENT": "proxy-test",
            "PROXY_LOG_LEVEL": "debug",
        })
        assert config.default_quality == 80
        assert config.fetch_timeout == 2.5
        assert config.max_redirects == 2
        assert config.transcode_concurrency == 3
        assert config.user_agent == "proxy-test"
        assert config.log_level == "DEBUG"

    def test_invalid_values_fall_back(self):
        config = ProxyConfig.from_env({
            "PROXY_DEFAULT_QUALITY": "high",
            "PROXY_FETCH_TIMEOUT": "soon",
            "PROXY_TRANSCODE_CONCURRENCY": "0",
        })
        assert config.default_quality == 40
        assert config.fetch_timeout == 5.0
        assert config.transcode_concurrency == 1

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            ProxyConfig(transcode_concurrency=0)

    def test_config_is_immutable(self):
        config = ProxyConfig()
        with pytest.raises(Exception):
            config.default_quality = 90
