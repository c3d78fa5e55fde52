"""
JSON-RPC session over the XO websocket API.

The session keeps one websocket open, signs in once, and lets any number of threads
issue calls concurrently. A reader thread matches replies to calls by id.
"""
import json
import logging
import ssl
import threading
from typing import Any, Callable, Dict, Optional

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from . import codec
from .context import Context, ensure
from .errors import (
    XOAPIError,
    XOAuthError,
    XOError,
    XOProtocolError,
    XORPCError,
    XOSessionClosedError,
    XOTransportError,
)
from .retry import RETRYABLE_METHODS, RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

AUTH_COOKIE = 'authenticationToken'
WAIT_SLICE = 0.1


def validate_result(result, operation):
    """Raise if a JSON-RPC method reported failure by returning false."""
    if result is False:
        raise XOAPIError(f"{operation} returned unsuccessful status")
    return result


class _PendingCall:
    def __init__(self, method):
        self.method = method
        self.event = threading.Event()
        self.result = None
        self.error: Optional[Exception] = None


class JsonRpcSession:
    def __init__(self, url, token=None, username=None, password=None, verify_ssl=True,
                 timeout=30, retry: Optional[RetryConfig] = None, log=None, connect_func=None):
        """
        :param url: Websocket URL of the JSON-RPC endpoint
        :param token: Session token, preferred over username and password
        :param verify_ssl: Verify TLS certificates for wss URLs
        :param timeout: Seconds allowed for opening the websocket
        :param retry: Backoff settings for the retryable methods, None to disable
        :param connect_func: Replacement for websockets.sync.client.connect
        """
        self.url = url
        self.token = token
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.retry = retry
        self.log = log or logger
        self._connect = connect_func or connect

        self._ws = None
        self._reader = None
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._next_id = 0
        self._pending: Dict[int, _PendingCall] = {}
        self._closing = False
        self.closed = False

    def _ssl_context(self):
        context = ssl.create_default_context()
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def open(self):
        """Connect, start the reader thread and sign in."""
        kwargs = {'open_timeout': self.timeout}
        if self.token:
            kwargs['additional_headers'] = {'Cookie': f'{AUTH_COOKIE}={self.token}'}
        if self.url.startswith('wss://'):
            kwargs['ssl'] = self._ssl_context()
        try:
            self._ws = self._connect(self.url, **kwargs)
        except (OSError, WebSocketException) as e:
            raise XOTransportError(f"Failed to connect to {self.url}: {e}") from e

        self._reader = threading.Thread(target=self._read_loop, name='xo-jsonrpc-reader', daemon=True)
        self._reader.start()

        if self.token:
            params = {'token': self.token}
        else:
            params = {'email': self.username, 'password': self.password}
        try:
            self._call_once('session.signIn', params, ensure(None), {})
        except XORPCError as e:
            self.close()
            raise XOAuthError(f"JSON-RPC sign-in failed: {e}") from e
        except XOError:
            self.close()
            raise
        self.log.info(f"JSON-RPC session established with {self.url}")
        return self

    def _read_loop(self):
        reason = 'connection closed'
        try:
            while True:
                message = self._ws.recv()
                try:
                    self._dispatch(message)
                except Exception as e:
                    # Only a lost connection ends the session.
                    self.log.error(f"Dropping JSON-RPC frame that failed to dispatch: {e}")
        except ConnectionClosed as e:
            reason = f"connection closed: {e}"
        except OSError as e:
            reason = f"connection lost: {e}"
        finally:
            self._shutdown(reason)

    def _dispatch(self, message):
        try:
            envelope = json.loads(message)
        except ValueError:
            self.log.warning(f"Dropping malformed JSON-RPC frame: {str(message)[:200]}")
            return
        if not isinstance(envelope, dict):
            self.log.warning(f"Dropping unexpected JSON-RPC frame: {str(message)[:200]}")
            return

        call_id = envelope.get('id')
        if call_id is None:
            self.log.debug(f"JSON-RPC notification {envelope.get('method')}")
            return
        if isinstance(call_id, bool) or not isinstance(call_id, (int, str)):
            self.log.warning(f"Dropping JSON-RPC frame with invalid id: {str(message)[:200]}")
            return

        with self._lock:
            pending = self._pending.get(call_id)
        if pending is None:
            self.log.warning(f"JSON-RPC reply for unknown call id {call_id}")
            return

        error = envelope.get('error')
        if error is not None:
            if isinstance(error, dict):
                pending.error = XORPCError(pending.method, error.get('message', 'unknown error'),
                                           error.get('code'), error.get('data'))
            else:
                pending.error = XORPCError(pending.method, str(error))
        elif 'result' in envelope:
            pending.result = envelope['result']
        else:
            pending.error = XOProtocolError(f"JSON-RPC call to {pending.method} failed: reply has neither result nor error")
        pending.event.set()

    def _shutdown(self, reason):
        with self._lock:
            self.closed = True
            pending = list(self._pending.values())
            self._pending.clear()
        if not self._closing:
            self.log.warning(f"JSON-RPC channel closed: {reason}")
        for call in pending:
            call.error = XOSessionClosedError(f"JSON-RPC call to {call.method} failed: {reason}")
            call.event.set()

    def _call_once(self, method, params, ctx: Context, log_fields):
        ctx.raise_if_done()
        if self.closed:
            raise XOSessionClosedError(f"JSON-RPC call to {method} failed: session closed")

        pending = _PendingCall(method)
        with self._lock:
            self._next_id += 1
            call_id = self._next_id
            self._pending[call_id] = pending

        try:
            frame = json.dumps({
                'jsonrpc': '2.0',
                'id': call_id,
                'method': method,
                'params': codec.to_body(params) or {},
            })
            self.log.debug(f"JSON-RPC call {method}", extra={'rpc_method': method, 'rpc_id': call_id, **log_fields})
            try:
                with self._send_lock:
                    self._ws.send(frame)
            except ConnectionClosed as e:
                raise XOSessionClosedError(f"JSON-RPC call to {method} failed: {e}") from e
            except OSError as e:
                raise XOTransportError(f"JSON-RPC call to {method} failed: {e}") from e

            while not pending.event.wait(self._wait_slice(ctx)):
                ctx.raise_if_done()
        finally:
            with self._lock:
                self._pending.pop(call_id, None)

        if pending.error is not None:
            raise pending.error
        return pending.result

    @staticmethod
    def _wait_slice(ctx: Context):
        remaining = ctx.remaining()
        if remaining is None:
            return WAIT_SLICE
        return min(WAIT_SLICE, remaining)

    def call(self, method, params=None, result_type: Any = Any, ctx: Optional[Context] = None, **log_fields):
        """
        Invoke a JSON-RPC method.

        :param method: Method name such as 'backupNg.getJob'
        :param params: Named parameters, a dict or a model
        :param result_type: Type the result is decoded into
        :param ctx: Cancellation context
        :param log_fields: Extra fields attached to the debug log record
        :return: Decoded result
        """
        ctx = ensure(ctx)
        if self.retry is not None and method in RETRYABLE_METHODS:
            raw = retry_with_backoff(lambda: self._call_once(method, params, ctx, log_fields),
                                     self.retry, ctx, operation=method)
        else:
            raw = self._call_once(method, params, ctx, log_fields)
        return codec.decode(raw, result_type)

    def close(self):
        self._closing = True
        if self._ws is not None:
            self._ws.close()
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=self.timeout)


class LazyJsonRpc:
    """
    Opens a JsonRpcSession on first use.

    The first caller builds the session while concurrent callers wait on the lock.
    A failure is kept and raised to every later caller.
    """

    def __init__(self, factory: Callable[[], JsonRpcSession]):
        self._factory = factory
        self._lock = threading.Lock()
        self._session: Optional[JsonRpcSession] = None
        self._error: Optional[XOError] = None
        self._initialized = False

    @property
    def initialized(self):
        return self._initialized

    def _get(self, method) -> JsonRpcSession:
        with self._lock:
            if not self._initialized:
                try:
                    self._session = self._factory()
                except XOError as e:
                    self._error = e
                self._initialized = True

        if self._error is not None:
            message = f"failed to initialize JSON-RPC session for call to {method}: {self._error}"
            if isinstance(self._error, XOAuthError):
                raise XOAuthError(message) from self._error
            raise XOTransportError(message) from self._error
        return self._session

    def call(self, method, params=None, result_type: Any = Any, ctx: Optional[Context] = None, **log_fields):
        return self._get(method).call(method, params, result_type, ctx, **log_fields)

    @staticmethod
    def validate_result(result, operation):
        return validate_result(result, operation)

    def close(self):
        with self._lock:
            session = self._session
        if session is not None:
            session.close()
