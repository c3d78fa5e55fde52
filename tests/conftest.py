import json
from unittest.mock import Mock

import pytest

from xoclient.config import XOConfig
from xoclient.jsonrpc import validate_result
from xoclient.tasks import TaskService

TOKEN = 'token123'
VM_ID = '7d2f5e3a-4b1c-4e8f-9a6d-1c2b3a4d5e6f'
POOL_ID = 'b7569d99-30f8-178a-7d94-801de3e29b5b'
SR_ID = 'c787b75c-3e0d-70fa-d0c3-cbfd382d7e33'
TEMPLATE_ID = '2e5d3b7f-8c1a-4f6e-9b0d-3a4c5e6f7a8b'


def make_response(status=200, body=None, text=None, reason='OK', cookies=None):
    """Build a requests.Response stand-in carrying a JSON or text body."""
    resp = Mock()
    resp.status_code = status
    resp.reason = reason
    if text is None:
        text = '' if body is None else json.dumps(body)
    resp.text = text
    resp.cookies = cookies or {}
    return resp


def task_body(task_id, status='success', result=None, message=None):
    body = {'id': task_id, 'status': status}
    if result is not None:
        body['result'] = result
    if message is not None:
        body['message'] = message
    return body


@pytest.fixture
def config():
    return XOConfig(url='http://xo.example.com', token=TOKEN)


@pytest.fixture
def rest():
    return Mock()


@pytest.fixture
def rpc():
    rpc = Mock()
    rpc.validate_result.side_effect = validate_result
    return rpc


@pytest.fixture
def tasks(rest):
    return TaskService(rest, poll_interval=0.01, default_timeout=5)
