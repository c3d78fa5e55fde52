from unittest.mock import Mock, patch

from conftest import TOKEN
from xoclient import XOClient, load_client
from xoclient.config import RetryMode, XOConfig
from xoclient.services import (
    BackupService,
    HostService,
    NetworkService,
    PoolService,
    RestoreService,
    ScheduleService,
    SnapshotService,
    StorageRepositoryService,
    VDIService,
    VMService,
)
from xoclient.tasks import TaskService


class TestXOClient:

    @patch('xoclient.rest.requests.Session')
    def test_services(self, mock_session_class, config):
        mock_session_class.return_value = Mock()

        xo = XOClient(config)

        assert isinstance(xo.vm, VMService)
        assert isinstance(xo.snapshot, SnapshotService)
        assert isinstance(xo.backup, BackupService)
        assert isinstance(xo.restore, RestoreService)
        assert isinstance(xo.task, TaskService)
        assert isinstance(xo.pool, PoolService)
        assert isinstance(xo.host, HostService)
        assert isinstance(xo.network, NetworkService)
        assert isinstance(xo.vdi, VDIService)
        assert isinstance(xo.storage_repository, StorageRepositoryService)
        assert isinstance(xo.schedule, ScheduleService)
        assert xo.vm.tasks is xo.task
        assert xo.backup.rpc is xo.rpc
        assert xo.task.poll_interval == config.task_poll_interval

    @patch('xoclient.client.JsonRpcSession')
    @patch('xoclient.rest.requests.Session')
    def test_jsonrpc_opened_on_first_call(self, mock_session_class, mock_rpc_class, config):
        mock_session_class.return_value = Mock()
        rpc_session = Mock()
        rpc_session.call.return_value = True
        mock_rpc_class.return_value.open.return_value = rpc_session

        xo = XOClient(config)
        assert not xo.rpc.initialized
        mock_rpc_class.assert_not_called()

        xo.rpc.call('vm.revert', {'snapshot': 's'})
        xo.rpc.call('vm.revert', {'snapshot': 's'})

        mock_rpc_class.assert_called_once()
        args, kwargs = mock_rpc_class.call_args
        assert args == ('ws://xo.example.com/api/',)
        assert kwargs['token'] == TOKEN
        assert kwargs['retry'] is None
        assert rpc_session.call.call_count == 2

    @patch('xoclient.client.JsonRpcSession')
    @patch('xoclient.rest.requests.Session')
    def test_backoff_mode_enables_retry(self, mock_session_class, mock_rpc_class):
        mock_session_class.return_value = Mock()
        config = XOConfig(url='https://xo.example.com', token=TOKEN, retry_mode=RetryMode.BACKOFF, retry_max_time=60)

        xo = XOClient(config)
        xo.rpc.call('vm.start', {'id': 'vm-1'})

        retry = mock_rpc_class.call_args[1]['retry']
        assert retry.max_time == 60
        assert mock_rpc_class.call_args[0] == ('wss://xo.example.com/api/',)

    @patch('xoclient.rest.requests.Session')
    def test_overrides_without_config(self, mock_session_class):
        mock_session_class.return_value = Mock()

        xo = XOClient(url='http://xo.example.com', token='override-token')

        assert xo.config.token == 'override-token'
        assert xo.rest.token == 'override-token'

    @patch('xoclient.rest.requests.Session')
    def test_context_manager_closes(self, mock_session_class, config):
        mock_session = Mock()
        mock_session_class.return_value = mock_session

        with XOClient(config):
            pass

        mock_session.close.assert_called_once_with()


class TestLoadClient:

    @patch('xoclient.rest.requests.Session')
    def test_load_client(self, mock_session_class, tmp_path):
        mock_session_class.return_value = Mock()
        config_file = tmp_path / 'config.yaml'
        config_file.write_text("xoa:\n  url: http://xo.example.com\n  token: file-token\n  task_poll_interval: 1\n")

        xo = load_client(config_file)

        assert xo.config.url == 'http://xo.example.com'
        assert xo.rest.token == 'file-token'
        assert xo.task.poll_interval == 1
