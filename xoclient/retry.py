import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .context import Context, ensure
from .errors import XORPCError, XOSessionClosedError, XOTransportError

logger = logging.getLogger(__name__)

# JSON-RPC methods that race with guest start-up (PV drivers, hotplug support).
RETRYABLE_METHODS = frozenset({
    'vm.attachDisk',
    'vm.start',
    'vbd.connect',
    'vbd.disconnect',
    'vif.connect',
    'vif.disconnect',
})

# XAPI error codes reported while the guest is still booting.
RETRYABLE_ERROR_MARKERS = (
    'VM_MISSING_PV_DRIVERS',
    'VM_LACKS_FEATURE',
    'VM_BAD_POWER_STATE',
)


@dataclass
class RetryConfig:
    """Configuration for backoff retries."""

    max_time: float = 300.0
    base_delay: float = 0.5
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.1

    def delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        return max(delay, 0.0)


def is_retryable_error(err: BaseException) -> bool:
    if isinstance(err, XOSessionClosedError):
        return False
    if isinstance(err, XOTransportError):
        return True
    if isinstance(err, XORPCError):
        text = f"{err} {err.data or ''}"
        return any(marker in text for marker in RETRYABLE_ERROR_MARKERS)
    return False


def retry_with_backoff(func: Callable, config: RetryConfig, ctx: Optional[Context] = None,
                       is_retryable: Callable[[BaseException], bool] = is_retryable_error,
                       operation: str = ''):
    """
    Call ``func`` until it succeeds, a non-retryable error occurs, or ``config.max_time``
    has elapsed. Sleeps go through the context so a cancel stops the loop.

    :return: Whatever ``func`` returns
    """
    ctx = ensure(ctx)
    start = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except Exception as e:
            if not is_retryable(e):
                raise
            delay = config.delay(attempt)
            elapsed = time.monotonic() - start
            if elapsed + delay > config.max_time:
                logger.error(f"{operation} failed after {attempt} attempts: {e}",
                             extra={'operation': operation, 'attempt': attempt})
                raise
            logger.warning(f"{operation} failed (attempt {attempt}), retrying in {delay:.1f}s: {e}",
                           extra={'operation': operation, 'attempt': attempt})
            if ctx.sleep(delay):
                raise ctx.error() from e
