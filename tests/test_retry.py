from unittest.mock import Mock

import pytest

from xoclient.context import with_cancel
from xoclient.errors import (
    OperationCancelledError,
    XOAPIError,
    XORPCError,
    XOSessionClosedError,
    XOTransportError,
)
from xoclient.retry import RetryConfig, is_retryable_error, retry_with_backoff


class TestRetryConfig:

    def test_exponential_delay(self):
        config = RetryConfig(base_delay=0.5, max_delay=30, jitter=False)

        assert [config.delay(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        config = RetryConfig(base_delay=1, max_delay=5, jitter=False)

        assert config.delay(10) == 5

    def test_jitter_stays_in_range(self):
        config = RetryConfig(base_delay=1, jitter=True, jitter_range=0.1)

        for _ in range(50):
            assert 0.9 <= config.delay(1) <= 1.1


class TestIsRetryable:

    def test_transport_errors(self):
        assert is_retryable_error(XOTransportError('connection reset'))

    def test_closed_session_is_final(self):
        assert not is_retryable_error(XOSessionClosedError('JSON-RPC call to vm.start failed: session closed'))

    @pytest.mark.parametrize('marker', ['VM_MISSING_PV_DRIVERS', 'VM_LACKS_FEATURE', 'VM_BAD_POWER_STATE'])
    def test_guest_startup_errors(self, marker):
        assert is_retryable_error(XORPCError('vm.attachDisk', marker))

    def test_marker_in_data(self):
        assert is_retryable_error(XORPCError('vbd.connect', 'failed', data={'code': 'VM_LACKS_FEATURE'}))

    def test_other_errors(self):
        assert not is_retryable_error(XORPCError('vm.start', 'permission denied'))
        assert not is_retryable_error(XOAPIError('boom'))
        assert not is_retryable_error(ValueError('boom'))


class TestRetryWithBackoff:

    def test_succeeds_after_retries(self):
        func = Mock(side_effect=[XOTransportError('reset'), XOTransportError('reset'), 'done'])
        config = RetryConfig(max_time=5, base_delay=0.001, jitter=False)

        assert retry_with_backoff(func, config, operation='vm.start') == 'done'
        assert func.call_count == 3

    def test_non_retryable_raises_immediately(self):
        func = Mock(side_effect=XORPCError('vm.start', 'permission denied'))

        with pytest.raises(XORPCError):
            retry_with_backoff(func, RetryConfig(max_time=5, base_delay=0.001))
        assert func.call_count == 1

    def test_gives_up_after_max_time(self):
        func = Mock(side_effect=XOTransportError('reset'))
        # Second delay (0.08s) on top of the first sleep exceeds the budget.
        config = RetryConfig(max_time=0.1, base_delay=0.04, jitter=False)

        with pytest.raises(XOTransportError):
            retry_with_backoff(func, config)
        assert func.call_count == 2

    def test_cancel_stops_retries(self):
        ctx = with_cancel()
        ctx.cancel()
        func = Mock(side_effect=XOTransportError('reset'))

        with pytest.raises(OperationCancelledError):
            retry_with_backoff(func, RetryConfig(max_time=5, base_delay=0.001), ctx=ctx)
        assert func.call_count == 1
