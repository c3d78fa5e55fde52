import logging
import os
import re
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import yaml
from pydantic import BaseModel, ValidationError, model_validator

from .errors import XOConfigError

logger = logging.getLogger(__name__)

DEFAULT_URL = 'http://localhost:80'
DEFAULT_USER = 'admin@admin.net'
DEFAULT_PASSWORD = 'admin'
DEFAULT_RETRY_MAX_TIME = 5 * 60.0

REST_BASE_PATH = 'rest/v0'
JSONRPC_PATH = 'api/'

VALID_SCHEMES = ('http', 'https', 'ws', 'wss')
TRUE_VALUES = ('1', 'true', 't', 'yes', 'y', 'on')

DURATION_REGEX = re.compile(r'(\d+(?:\.\d+)?)(h|ms|m|s)')
UNIT_SECONDS = {'h': 3600.0, 'm': 60.0, 's': 1.0, 'ms': 0.001}


class RetryMode(str, Enum):
    NONE = 'none'
    BACKOFF = 'backoff'


def parse_duration(value):
    """
    Parse a duration such as '5m', '90s', '1h30m' or a bare number of seconds.

    :param value: Duration string
    :return: Seconds as float
    """
    text = str(value).strip()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass
    total = 0.0
    position = 0
    for match in DURATION_REGEX.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def _parse_bool(value):
    return str(value).strip().lower() in TRUE_VALUES


class XOConfig(BaseModel):
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    insecure: bool = False
    development: bool = False
    retry_mode: RetryMode = RetryMode.NONE
    retry_max_time: float = DEFAULT_RETRY_MAX_TIME
    timeout: float = 30
    task_poll_interval: float = 2
    task_timeout: float = 300

    @model_validator(mode='after')
    def check_connection(self):
        if not self.url:
            raise ValueError("XOA_URL is not set, please set it")
        parts = urlsplit(self.url)
        if parts.scheme not in VALID_SCHEMES:
            raise ValueError(f"invalid XOA_URL {self.url!r}: scheme must be one of {', '.join(VALID_SCHEMES)}")
        if not parts.netloc:
            raise ValueError(f"invalid XOA_URL {self.url!r}: missing host")
        if not self.token and not (self.username and self.password):
            raise ValueError(
                "authentication information not provided. "
                "Please set XOA_TOKEN or both XOA_USER and XOA_PASSWORD"
            )
        return self

    def __repr__(self):
        # Credentials stay out of reprs and log lines.
        return (f"XOConfig(url={self.url!r}, username={self.username!r}, "
                f"token={'***' if self.token else None}, insecure={self.insecure}, "
                f"retry_mode={self.retry_mode.value})")

    __str__ = __repr__

    @classmethod
    def create(cls, **values):
        """Build a config, re-raising validation failures as XOConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise XOConfigError(f"Invalid config: {e}") from e

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides):
        """
        Load configuration from XOA_* environment variables.

        :param environ: Mapping to read instead of os.environ
        :param overrides: Explicit values that win over the environment
        :return: XOConfig
        """
        env = os.environ if environ is None else environ
        values = {
            'url': env.get('XOA_URL') or DEFAULT_URL,
            'username': env.get('XOA_USER') or DEFAULT_USER,
            'password': env.get('XOA_PASSWORD') or DEFAULT_PASSWORD,
            'token': env.get('XOA_TOKEN') or None,
            'insecure': _parse_bool(env.get('XOA_INSECURE', 'false')),
            'development': _parse_bool(env.get('XOA_DEVELOPMENT', 'false')),
        }

        mode = (env.get('XOA_RETRY_MODE') or RetryMode.NONE.value).strip().lower()
        try:
            values['retry_mode'] = RetryMode(mode)
        except ValueError:
            logger.error(f"Invalid XOA_RETRY_MODE {mode!r}, expected 'none' or 'backoff'; retry disabled")
            values['retry_mode'] = RetryMode.NONE

        max_time = env.get('XOA_RETRY_MAX_TIME')
        if max_time:
            try:
                values['retry_max_time'] = parse_duration(max_time)
            except ValueError:
                logger.error(f"Invalid XOA_RETRY_MAX_TIME {max_time!r}; using {DEFAULT_RETRY_MAX_TIME:.0f}s")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.create(**values)

    @property
    def rest_base_url(self):
        """Base URL for REST calls, with ws(s) mapped to http(s) and rest/v0 appended."""
        parts = urlsplit(self.url)
        scheme = {'ws': 'http', 'wss': 'https'}.get(parts.scheme, parts.scheme)
        path = parts.path.rstrip('/') + '/' + REST_BASE_PATH
        return urlunsplit((scheme, parts.netloc, path, '', ''))

    @property
    def auth_url(self):
        parts = urlsplit(self.rest_base_url)
        path = parts.path[:-len(REST_BASE_PATH)] + 'auth/login'
        return urlunsplit((parts.scheme, parts.netloc, path, '', ''))

    @property
    def jsonrpc_url(self):
        """Websocket URL of the JSON-RPC endpoint."""
        parts = urlsplit(self.url)
        scheme = {'http': 'ws', 'https': 'wss'}.get(parts.scheme, parts.scheme)
        path = parts.path.rstrip('/') + '/' + JSONRPC_PATH
        return urlunsplit((scheme, parts.netloc, path, '', ''))

    @property
    def verify_ssl(self):
        return not self.insecure


def load_config(config_path):
    """
    Load configuration from a YAML file.

    The file holds an ``xoa`` mapping with the XOConfig field names. A ``token_path``
    entry names a file whose contents become the token.

    :param config_path: Path to the YAML file
    :return: XOConfig
    """
    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict) or 'xoa' not in raw_config:
        raise XOConfigError(f"Invalid config: {config_path} has no 'xoa' section")
    values = dict(raw_config['xoa'] or {})

    token_path = values.pop('token_path', None)
    if token_path and not values.get('token'):
        with open(token_path, 'r') as f:
            values['token'] = f.read().strip()

    return XOConfig.create(**values)
