import time

import pytest

from xoclient.context import Context, background, with_cancel, with_timeout
from xoclient.errors import DeadlineExceededError, OperationCancelledError


class TestContext:

    def test_background_never_done(self):
        ctx = background()

        assert ctx.remaining() is None
        assert ctx.error() is None
        assert not ctx.done()

    def test_cancel_default_cause(self):
        ctx = with_cancel()
        ctx.cancel()

        assert isinstance(ctx.error(), OperationCancelledError)
        with pytest.raises(OperationCancelledError):
            ctx.raise_if_done()

    def test_cancel_keeps_first_cause(self):
        ctx = with_cancel()
        first = OperationCancelledError('first')
        ctx.cancel(first)
        ctx.cancel(OperationCancelledError('second'))

        assert ctx.error() is first

    def test_cancel_propagates_to_children(self):
        parent = with_cancel()
        child = with_cancel(parent)
        grandchild = with_timeout(child, 60)
        cause = OperationCancelledError('stop')

        parent.cancel(cause)

        assert child.error() is cause
        assert grandchild.error() is cause

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = with_cancel()
        parent.cancel()

        assert with_cancel(parent).done()

    def test_child_cancel_does_not_reach_parent(self):
        parent = with_cancel()
        child = with_cancel(parent)
        child.cancel()

        assert not parent.done()

    def test_deadline(self):
        ctx = with_timeout(None, 0.01)
        time.sleep(0.02)

        assert isinstance(ctx.error(), DeadlineExceededError)
        assert ctx.remaining() == 0.0

    def test_child_inherits_earlier_deadline(self):
        parent = with_timeout(None, 1)
        child = with_timeout(parent, 60)

        assert child.deadline == parent.deadline

    def test_sleep_wakes_on_cancel(self):
        ctx = with_cancel()
        ctx.cancel()
        start = time.monotonic()

        assert ctx.sleep(5) is True
        assert time.monotonic() - start < 1

    def test_sleep_bounded_by_deadline(self):
        ctx = with_timeout(None, 0.05)
        start = time.monotonic()
        ctx.sleep(5)

        assert time.monotonic() - start < 1

    def test_context_manager_releases_child(self):
        parent = with_cancel()
        with Context(parent) as child:
            assert parent._children == [child]

        assert parent._children == []
        assert not parent.done()
