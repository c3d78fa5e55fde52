import logging
from typing import Any, Optional

import requests

from . import codec
from .config import XOConfig
from .context import Context, ensure
from .errors import (
    DeadlineExceededError,
    XOAuthError,
    XOHTTPError,
    XOTransportError,
    XOValidationError,
)

logger = logging.getLogger(__name__)

AUTH_COOKIE = 'authenticationToken'
DEFAULT_TIMEOUT = 30
BODY_METHODS = ('POST', 'PUT', 'PATCH')


class RestClient:
    def __init__(self, config: XOConfig, log: Optional[logging.Logger] = None):
        """
        Initialize the REST transport.

        When the config carries no token the client logs in with username and
        password and keeps the session token returned in the authentication cookie.

        :param config: Validated XOConfig
        :param log: Logger to use, defaults to the module logger
        """
        self.base_url = config.rest_base_url
        self.auth_url = config.auth_url
        self.verify_ssl = config.verify_ssl
        self.timeout = config.timeout or DEFAULT_TIMEOUT
        self.log = log or logger
        self.session = requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        self.token = config.token or self._login(config.username, config.password)

    def _login(self, username, password):
        try:
            resp = self.session.post(
                self.auth_url,
                json={'username': username, 'password': password},
                verify=self.verify_ssl,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise XOAuthError(f"Authentication failed: {e}") from e

        if resp.status_code != 200:
            raise XOAuthError(f"Authentication failed: HTTP {resp.status_code}: {resp.text}")
        token = resp.cookies.get(AUTH_COOKIE)
        if not token:
            raise XOAuthError("Authentication failed: no auth token found")
        self.log.info(f"Authenticated as {username}")
        return token

    def url(self, endpoint):
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _request_timeout(self, ctx: Context):
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout
        if remaining <= 0:
            raise DeadlineExceededError("context deadline exceeded")
        return min(self.timeout, remaining)

    def _send(self, method, endpoint, ctx: Context, **kwargs):
        ctx.raise_if_done()
        url = self.url(endpoint)
        headers = dict(kwargs.pop('headers', {}))
        try:
            resp = self.session.request(
                method,
                url,
                headers=headers,
                cookies={AUTH_COOKIE: self.token},
                verify=self.verify_ssl,
                timeout=self._request_timeout(ctx),
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            if ctx.done():
                raise ctx.error() from e
            raise XOTransportError(f"Request timed out: {method} {endpoint}") from e
        except requests.exceptions.SSLError as e:
            raise XOTransportError(f"SSL verification failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise XOTransportError(f"Request failed: {method} {endpoint}: {e}") from e

        # A cancel that arrived while the request was in flight wins over its result.
        err = ctx.error()
        if err is None and not 200 <= resp.status_code < 300:
            err = XOHTTPError(resp.status_code, resp.reason or '', resp.text)
        if err is not None:
            # Releases the connection of a streamed response.
            resp.close()
            raise err
        return resp

    def request(self, method, endpoint, params=None, result_type: Any = None, ctx: Optional[Context] = None):
        """
        Send one request and decode the response.

        :param method: HTTP verb
        :param endpoint: Path relative to the rest/v0 base
        :param params: Query parameters for GET and DELETE, JSON body otherwise
        :param result_type: Type the response is decoded into, None to ignore the body
        :param ctx: Cancellation context
        :return: Decoded result
        """
        ctx = ensure(ctx)
        method = method.upper()
        kwargs = {}
        if method in BODY_METHODS:
            body = codec.to_body(params)
            if body is not None:
                kwargs['json'] = body
                kwargs['headers'] = {'Content-Type': 'application/json'}
        else:
            query = codec.to_query(params)
            if query is not None:
                kwargs['params'] = query

        self.log.debug(f"{method} {endpoint}")
        resp = self._send(method, endpoint, ctx, **kwargs)
        return codec.decode_text(resp.text, result_type)

    def get(self, endpoint, params=None, result_type: Any = Any, ctx=None):
        return self.request('GET', endpoint, params, result_type, ctx)

    def post(self, endpoint, params=None, result_type: Any = Any, ctx=None):
        return self.request('POST', endpoint, params, result_type, ctx)

    def put(self, endpoint, params=None, result_type: Any = Any, ctx=None):
        return self.request('PUT', endpoint, params, result_type, ctx)

    def patch(self, endpoint, params=None, result_type: Any = Any, ctx=None):
        return self.request('PATCH', endpoint, params, result_type, ctx)

    def delete(self, endpoint, params=None, result_type: Any = Any, ctx=None):
        return self.request('DELETE', endpoint, params, result_type, ctx)

    def download(self, endpoint, ctx=None):
        """
        Stream a raw resource. The caller must close the returned response.

        :param endpoint: Path relative to the rest/v0 base
        :return: requests.Response opened with stream=True
        """
        ctx = ensure(ctx)
        return self._send('GET', endpoint, ctx, stream=True, headers={'Accept': 'application/octet-stream'})

    def upload(self, endpoint, data, size, ctx=None):
        """
        Send raw content with PUT.

        :param endpoint: Path relative to the rest/v0 base
        :param data: Bytes or a readable file object
        :param size: Content length in bytes
        :return: Response body as text
        """
        if data is None:
            raise XOValidationError("content cannot be empty")
        if size <= 0:
            raise XOValidationError(f"invalid content size {size}")
        ctx = ensure(ctx)
        resp = self._send('PUT', endpoint, ctx, data=data, headers={
            'Content-Type': 'application/octet-stream',
            'Content-Length': str(size),
        })
        return resp.text

    def close(self):
        self.session.close()
