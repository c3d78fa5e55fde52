from uuid import UUID

import pytest

from conftest import POOL_ID, TEMPLATE_ID, VM_ID
from xoclient.errors import TaskFailedError, XOAPIError
from xoclient.models import CreateVMParams, Pool, Task
from xoclient.services import PoolService


def task(status, **fields):
    return Task.model_validate({'status': status, **fields})


@pytest.fixture
def service(rest, tasks):
    return PoolService(rest, tasks=tasks)


@pytest.fixture
def params():
    return CreateVMParams(name_label='web', template=UUID(TEMPLATE_ID))


class TestPoolService:

    def test_get_by_id(self, service, rest):
        rest.get.return_value = Pool.model_validate({'id': POOL_ID, 'name_label': 'main', 'HA_enabled': True,
                                                     'default_SR': ''})

        pool = service.get_by_id(POOL_ID)

        assert pool.ha_enabled is True
        assert pool.default_sr is None
        assert rest.get.call_args[0] == (f'pools/{POOL_ID}',)

    def test_create_vm_returns_vm_id(self, service, rest, params):
        rest.post.return_value = '/rest/v0/tasks/t1'
        rest.get.return_value = task('success', id='t1', result={'id': VM_ID})

        assert service.create_vm(POOL_ID, params) == VM_ID
        assert rest.post.call_args[0] == (f'pools/{POOL_ID}/actions/create_vm', params)

    def test_create_vm_without_wait(self, service, rest, params):
        rest.post.return_value = '/rest/v0/tasks/t1'

        assert service.create_vm(POOL_ID, params, wait=False) == 't1'

    def test_create_vm_failure(self, service, rest, params):
        rest.post.return_value = '/rest/v0/tasks/t1'
        rest.get.return_value = task('failure', id='t1', message='no template')

        with pytest.raises(TaskFailedError, match="VM creation failed: no template"):
            service.create_vm(POOL_ID, params)

    def test_create_vm_without_result(self, service, rest, params):
        rest.post.return_value = '/rest/v0/tasks/t1'
        rest.get.return_value = task('success', id='t1')

        with pytest.raises(XOAPIError, match="returned no VM id"):
            service.create_vm(POOL_ID, params)

    def test_create_vm_unexpected_body(self, service, rest, params):
        rest.post.return_value = 'OK'

        with pytest.raises(XOAPIError, match="unexpected response"):
            service.create_vm(POOL_ID, params)

    def test_emergency_shutdown(self, service, rest):
        rest.post.return_value = '/rest/v0/tasks/t1'

        assert service.emergency_shutdown(wait=False) == 't1'
        assert rest.post.call_args[0] == ('pools/_/actions/emergency_shutdown',)

    @pytest.mark.parametrize('action', ['rolling_reboot', 'rolling_update'])
    def test_rolling_actions(self, service, rest, action):
        rest.post.return_value = '/rest/v0/tasks/t1'
        rest.get.return_value = task('success', id='t1')

        assert getattr(service, action)(POOL_ID) == 't1'
        assert rest.post.call_args[0] == (f'pools/{POOL_ID}/actions/{action}',)
