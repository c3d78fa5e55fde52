import logging

import pytest

from xoclient.config import (
    DEFAULT_RETRY_MAX_TIME,
    RetryMode,
    XOConfig,
    load_config,
    parse_duration,
)
from xoclient.errors import XOConfigError


class TestFromEnv:

    def test_defaults(self):
        config = XOConfig.from_env(environ={})

        assert config.url == 'http://localhost:80'
        assert config.username == 'admin@admin.net'
        assert config.password == 'admin'
        assert config.token is None
        assert config.insecure is False
        assert config.retry_mode == RetryMode.NONE
        assert config.retry_max_time == DEFAULT_RETRY_MAX_TIME

    def test_reads_variables(self):
        config = XOConfig.from_env(environ={
            'XOA_URL': 'https://xo.example.com',
            'XOA_TOKEN': 'secret',
            'XOA_INSECURE': 'true',
            'XOA_DEVELOPMENT': '1',
            'XOA_RETRY_MODE': 'backoff',
            'XOA_RETRY_MAX_TIME': '2m',
        })

        assert config.url == 'https://xo.example.com'
        assert config.token == 'secret'
        assert config.insecure is True
        assert config.verify_ssl is False
        assert config.development is True
        assert config.retry_mode == RetryMode.BACKOFF
        assert config.retry_max_time == 120

    def test_invalid_retry_mode_falls_back(self, caplog):
        with caplog.at_level(logging.ERROR):
            config = XOConfig.from_env(environ={'XOA_RETRY_MODE': 'sometimes'})

        assert config.retry_mode == RetryMode.NONE
        assert 'XOA_RETRY_MODE' in caplog.text

    def test_invalid_retry_max_time_falls_back(self, caplog):
        with caplog.at_level(logging.ERROR):
            config = XOConfig.from_env(environ={'XOA_RETRY_MAX_TIME': 'soon'})

        assert config.retry_max_time == DEFAULT_RETRY_MAX_TIME
        assert 'XOA_RETRY_MAX_TIME' in caplog.text

    def test_overrides_win(self):
        config = XOConfig.from_env(environ={'XOA_URL': 'http://a.example.com'}, url='http://b.example.com')

        assert config.url == 'http://b.example.com'


class TestValidation:

    def test_missing_url(self):
        with pytest.raises(XOConfigError, match="XOA_URL is not set"):
            XOConfig.create(username='admin', password='admin')

    def test_missing_credentials(self):
        with pytest.raises(XOConfigError, match="authentication information not provided"):
            XOConfig.create(url='http://xo.example.com', username='admin')

    def test_bad_scheme(self):
        with pytest.raises(XOConfigError, match="scheme"):
            XOConfig.create(url='ftp://xo.example.com', token='t')

    def test_token_alone_is_enough(self):
        config = XOConfig.create(url='http://xo.example.com', token='t')

        assert config.token == 't'

    def test_repr_masks_token(self):
        config = XOConfig.create(url='http://xo.example.com', token='very-secret')

        assert 'very-secret' not in repr(config)
        assert '***' in repr(config)


class TestUrls:

    def test_rest_base_url_from_websocket_url(self):
        config = XOConfig(url='ws://xo.example.com:8080', token='t')

        assert config.rest_base_url == 'http://xo.example.com:8080/rest/v0'

    def test_secure_urls(self):
        config = XOConfig(url='https://xo.example.com/', token='t')

        assert config.rest_base_url == 'https://xo.example.com/rest/v0'
        assert config.auth_url == 'https://xo.example.com/auth/login'
        assert config.jsonrpc_url == 'wss://xo.example.com/api/'

    def test_jsonrpc_url_plain(self):
        config = XOConfig(url='http://xo.example.com', token='t')

        assert config.jsonrpc_url == 'ws://xo.example.com/api/'


class TestParseDuration:

    @pytest.mark.parametrize('value,expected', [
        ('300', 300.0),
        ('1.5', 1.5),
        ('90s', 90.0),
        ('5m', 300.0),
        ('1h30m', 5400.0),
        ('250ms', 0.25),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize('value', ['', 'abc', '5x', '5m later'])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestLoadConfig:

    def test_load_with_token_path(self, tmp_path):
        token_file = tmp_path / 'token'
        token_file.write_text('file-token\n')
        config_file = tmp_path / 'config.yaml'
        config_file.write_text(
            "xoa:\n"
            "  url: https://xo.example.com\n"
            "  insecure: true\n"
            f"  token_path: {token_file}\n"
        )

        config = load_config(config_file)

        assert config.url == 'https://xo.example.com'
        assert config.token == 'file-token'
        assert config.insecure is True

    def test_missing_section(self, tmp_path):
        config_file = tmp_path / 'config.yaml'
        config_file.write_text("proxmox:\n  host: pve\n")

        with pytest.raises(XOConfigError, match="no 'xoa' section"):
            load_config(config_file)
