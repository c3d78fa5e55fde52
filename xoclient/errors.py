from typing import Any, Optional


class XOError(Exception):
    pass


class XOConfigError(XOError, ValueError):
    pass


class XOAuthError(XOError):
    pass


class XOValidationError(XOError, ValueError):
    pass


class XONotFoundError(XOError):
    pass


class XOTransportError(XOError):
    pass


class XOSessionClosedError(XOTransportError):
    """The JSON-RPC channel is gone; the session is never reopened."""
    pass


class XOProtocolError(XOTransportError):
    """A frame arrived that could not be matched to a well-formed JSON-RPC reply."""
    pass


class XOAPIError(XOError):
    pass


class XOHTTPError(XOAPIError):
    def __init__(self, status: int, reason: str = "", body: str = ""):
        self.status = status
        self.reason = reason
        self.body = body
        status_text = f"{status} {reason}" if reason else str(status)
        super().__init__(f"API error: {status_text} - {body}")


class XODecodeError(XOError):
    def __init__(self, type_name: str, body: str, cause: Optional[Exception] = None):
        self.type_name = type_name
        self.body = body
        super().__init__(f"failed to parse response into {type_name}: {cause}, body: {body}")


class XORPCError(XOError):
    def __init__(self, method: str, message: str, code: Optional[int] = None, data: Any = None):
        self.method = method
        self.code = code
        self.data = data
        detail = f"{message} (code {code})" if code is not None else message
        super().__init__(f"JSON-RPC call to {method} failed: {detail}")


class TaskFailedError(XOError):
    def __init__(self, message: str, task=None):
        self.task = task
        self.stack = getattr(task, "stack", None)
        super().__init__(message)


class DeadlineExceededError(XOError):
    pass


class TaskTimeoutError(DeadlineExceededError):
    pass


class OperationCancelledError(XOError):
    pass
