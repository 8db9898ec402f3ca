"""
Unit tests for proxy configuration.
"""

import pytest
from pydantic import ValidationError

from shared.config import ProxyConfig, get_config
from shared.errors import ConfigurationError


class TestProxyConfig:
    """Test cases for ProxyConfig."""

    def test_defaults(self):
        config = ProxyConfig(ttl=30, target_hostname="upstream.example.com")

        assert config.target_protocol == "https"
        assert config.target_port == 443
        assert config.target_path_prefix is None
        assert config.require_https is True
        assert config.allow_binary_data is False
        assert config.request_timeout == 100
        assert config.upstream_deadline == 99.0

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PROXY_TTL", "120")
        monkeypatch.setenv("PROXY_TARGET_HOSTNAME", "env.example.com")
        monkeypatch.setenv("PROXY_TARGET_PROTOCOL", "HTTP")
        monkeypatch.setenv("PROXY_TARGET_PORT", "8080")
        monkeypatch.setenv("PROXY_REQUIRE_HTTPS", "false")
        monkeypatch.setenv("PROXY_ALLOW_BINARY_DATA", "true")
        monkeypatch.setenv("PROXY_REQUEST_TIMEOUT", "30")

        config = get_config()

        assert config.ttl == 120
        assert config.target_hostname == "env.example.com"
        assert config.target_protocol == "http"
        assert config.target_port == 8080
        assert config.require_https is False
        assert config.allow_binary_data is True
        assert config.request_timeout == 30

    def test_zero_timeout_uses_default(self):
        config = ProxyConfig(ttl=30, target_hostname="upstream.example.com", request_timeout=0)
        assert config.request_timeout == 100

    def test_empty_path_prefix_is_none(self):
        config = ProxyConfig(ttl=30, target_hostname="upstream.example.com", target_path_prefix="")
        assert config.target_path_prefix is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ttl": 0, "target_hostname": "upstream.example.com"},
            {"ttl": -5, "target_hostname": "upstream.example.com"},
            {"ttl": 30, "target_hostname": ""},
            {"ttl": 30, "target_hostname": "upstream.example.com", "target_port": 70000},
            {"ttl": 30, "target_hostname": "upstream.example.com", "target_port": -1},
            {"ttl": 30, "target_hostname": "upstream.example.com", "target_protocol": "ftp"},
            {"ttl": 30, "target_hostname": "upstream.example.com", "request_timeout": -1},
        ],
    )
    def test_invalid_configuration_is_fatal(self, overrides):
        with pytest.raises(ConfigurationError) as exc_info:
            get_config(**overrides)

        assert exc_info.value.details["errors"]

    def test_missing_required_fields(self, monkeypatch):
        monkeypatch.delenv("PROXY_TTL", raising=False)
        monkeypatch.delenv("PROXY_TARGET_HOSTNAME", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            get_config(_env_file=None)

        fields = {error["field"] for error in exc_info.value.details["errors"]}
        assert {"ttl", "target_hostname"} <= fields

    def test_configuration_is_immutable(self):
        config = ProxyConfig(ttl=30, target_hostname="upstream.example.com")

        with pytest.raises(ValidationError):
            config.ttl = 10
