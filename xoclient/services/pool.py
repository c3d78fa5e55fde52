from typing import Any, Optional

from ..context import Context
from ..errors import XOAPIError, XOError
from ..models import CreateVMParams, Pool
from ..paths import PathBuilder, format_action_path
from .base import ResourceService, require_id


class PoolService(ResourceService):
    resource = 'pools'
    model = Pool
    object_type = 'pool'

    def _action_path(self, pool_id, action):
        return PathBuilder().resource(self.resource).id_string(pool_id).actions_group().action(action).build()

    def create_vm(self, pool_id, params: CreateVMParams, wait: bool = True, ctx: Optional[Context] = None) -> str:
        """
        Create a VM on a pool.

        :param pool_id: Pool UUID
        :param params: CreateVMParams
        :param wait: Wait for the task and return the new VM id, else return the task id
        :return: VM id or task id
        """
        pool_id = require_id(pool_id, "pool ID")
        try:
            body = self.rest.post(self._action_path(pool_id, 'create_vm'), params, result_type=Any, ctx=ctx)
            if not wait:
                return self._run_task(body, False, 'VM creation', ctx)

            task, is_task = self.tasks.handle_task_response(body, True, ctx=ctx)
            if not is_task:
                raise XOAPIError(f"unexpected response to VM creation on pool {pool_id}: {body!r}")
            self.tasks.check(task, 'VM creation')
            vm_id = task.result.entity_id if task.result is not None else None
            if not vm_id:
                raise XOAPIError(f"VM creation on pool {pool_id} returned no VM id (task {task.id})")
            self.log.info(f"Created VM {vm_id} on pool {pool_id}")
            return vm_id
        except XOError as e:
            self.log.error(f"Failed to create VM on pool {pool_id}: {e}")
            raise

    def _pool_action(self, pool_id, action, wait, ctx):
        pool_id = require_id(pool_id, "pool ID")
        try:
            body = self.rest.post(self._action_path(pool_id, action), result_type=Any, ctx=ctx)
            task_id = self._run_task(body, wait, f"pool {action}", ctx)
            self.log.info(f"Pool {pool_id} action '{action}' {'completed' if wait else 'initiated'}")
            return task_id
        except XOError as e:
            self.log.error(f"Failed to run {action} on pool {pool_id}: {e}")
            raise

    def emergency_shutdown(self, wait: bool = True, ctx: Optional[Context] = None):
        """Shut down every host of every pool. Uses the wildcard action."""
        try:
            body = self.rest.post(format_action_path(self.resource, 'emergency_shutdown'), result_type=Any, ctx=ctx)
            self.log.warning("Emergency shutdown requested")
            return self._run_task(body, wait, 'emergency shutdown', ctx)
        except XOError as e:
            self.log.error(f"Failed to request emergency shutdown: {e}")
            raise

    def rolling_reboot(self, pool_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._pool_action(pool_id, 'rolling_reboot', wait, ctx)

    def rolling_update(self, pool_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._pool_action(pool_id, 'rolling_update', wait, ctx)
