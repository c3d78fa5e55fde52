from .client import XOClient, load_client
from .config import RetryMode, XOConfig, load_config
from .context import Context, background, with_cancel, with_timeout
from .errors import (
    DeadlineExceededError,
    OperationCancelledError,
    TaskFailedError,
    TaskTimeoutError,
    XOAPIError,
    XOAuthError,
    XOConfigError,
    XODecodeError,
    XOError,
    XOHTTPError,
    XONotFoundError,
    XOProtocolError,
    XORPCError,
    XOSessionClosedError,
    XOTransportError,
    XOValidationError,
)

__version__ = '0.1.0'
