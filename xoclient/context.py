"""
Cancellation contexts shared by every public operation.

A Context carries an optional deadline and a cancellation cause. Children inherit the
earliest deadline of their ancestors and are cancelled together with their parent.
Blocking waits inside the library go through :meth:`Context.sleep` so that a cancel
wakes them immediately.
"""
import threading
import time
from typing import List, Optional

from .errors import DeadlineExceededError, OperationCancelledError


class Context:
    def __init__(self, parent: Optional["Context"] = None, timeout: Optional[float] = None):
        """
        :param parent: Parent context whose cancellation propagates to this one
        :param timeout: Seconds until this context's deadline, None for no own deadline
        """
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cause: Optional[BaseException] = None
        self._children: List["Context"] = []

        deadline = time.monotonic() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child):
        with self._lock:
            cause = self._cause
            if cause is None:
                self._children.append(child)
                return
        child.cancel(cause)

    def _remove_child(self, child):
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def cancel(self, cause: Optional[BaseException] = None):
        """
        Cancel this context and all of its children.

        :param cause: Error returned to waiters, defaults to OperationCancelledError
        """
        if cause is None:
            cause = OperationCancelledError("context canceled")
        with self._lock:
            if self._cause is not None:
                return
            self._cause = cause
            children, self._children = self._children, []
        self._event.set()
        for child in children:
            child.cancel(cause)
        if self._parent is not None:
            self._parent._remove_child(self)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> Optional[BaseException]:
        """The cancellation cause, a deadline error, or None while the context is live."""
        if self._cause is not None:
            return self._cause
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceededError("context deadline exceeded")
        return None

    def done(self) -> bool:
        return self.error() is not None

    def raise_if_done(self):
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to ``seconds``, waking early on cancel or deadline.

        :return: True if the context is done after waking
        """
        timeout = seconds
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        if timeout > 0:
            self._event.wait(timeout)
        return self.done()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # Releases the child from its parent; a no-op when already cancelled.
        self.cancel()
        return False


def background() -> Context:
    """A fresh context with no deadline."""
    return Context()


def with_cancel(parent: Optional[Context] = None) -> Context:
    return Context(parent)


def with_timeout(parent: Optional[Context], seconds: float) -> Context:
    return Context(parent, timeout=seconds)


def ensure(ctx: Optional[Context]) -> Context:
    return ctx if ctx is not None else background()
