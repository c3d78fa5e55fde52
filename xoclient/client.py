import logging
from typing import Optional

from .config import RetryMode, XOConfig, load_config
from .jsonrpc import JsonRpcSession, LazyJsonRpc
from .log import configure_logging
from .rest import RestClient
from .retry import RetryConfig
from .services import (
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
from .tasks import TaskService


class XOClient:
    """
    Entry point to a Xen Orchestra server.

    Owns the REST transport, the JSON-RPC session (opened on first use) and the logger,
    and publishes one service per resource type::

        with XOClient(XOConfig.from_env()) as xo:
            for vm in xo.vm.list(filter='power_state:Running'):
                print(vm.name_label)
    """

    def __init__(self, config: Optional[XOConfig] = None, **overrides):
        """
        :param config: XOConfig, loaded from the XOA_* environment when None
        :param overrides: Config values that win over the environment when config is None
        """
        self.config = config or XOConfig.from_env(**overrides)
        self.log = configure_logging(self.config.development)
        self.rest = RestClient(self.config, log=self.log.getChild('rest'))

        retry = None
        if self.config.retry_mode == RetryMode.BACKOFF:
            retry = RetryConfig(max_time=self.config.retry_max_time)
        self._retry = retry
        self.rpc = LazyJsonRpc(self._open_jsonrpc)

        self.task = TaskService(self.rest, poll_interval=self.config.task_poll_interval,
                                default_timeout=self.config.task_timeout, log=self.log.getChild('task'))

        def capabilities(name):
            return {'rpc': self.rpc, 'tasks': self.task, 'log': self.log.getChild(name)}

        self.vm = VMService(self.rest, **capabilities('vm'))
        self.snapshot = SnapshotService(self.rest, **capabilities('snapshot'))
        self.backup = BackupService(self.rest, **capabilities('backup'))
        self.restore = RestoreService(self.rest, **capabilities('restore'))
        self.pool = PoolService(self.rest, **capabilities('pool'))
        self.host = HostService(self.rest, **capabilities('host'))
        self.network = NetworkService(self.rest, **capabilities('network'))
        self.vdi = VDIService(self.rest, **capabilities('vdi'))
        self.storage_repository = StorageRepositoryService(self.rest, **capabilities('storage_repository'))
        self.schedule = ScheduleService(self.rpc, log=self.log.getChild('schedule'))
        self.log.debug(f"Client ready for {self.config.rest_base_url}")

    def _open_jsonrpc(self) -> JsonRpcSession:
        session = JsonRpcSession(
            self.config.jsonrpc_url,
            token=self.rest.token,
            username=self.config.username,
            password=self.config.password,
            verify_ssl=self.config.verify_ssl,
            timeout=self.config.timeout,
            retry=self._retry,
            log=self.log.getChild('jsonrpc'),
        )
        return session.open()

    def close(self):
        self.rpc.close()
        self.rest.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def load_client(config_path) -> XOClient:
    """
    Build a client from a YAML config file.

    :param config_path: Path to a YAML file with an ``xoa`` section
    :return: XOClient
    """
    config = load_config(config_path)
    logging.getLogger(__name__).debug(f"Loaded config from {config_path}")
    return XOClient(config)
