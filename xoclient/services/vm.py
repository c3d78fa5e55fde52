from typing import Any, Optional

from pydantic import ValidationError

from .. import codec
from ..context import Context
from ..errors import XOError, XONotFoundError
from ..models import VM, CreateVMParams, VMFilter
from ..paths import PathBuilder, build_filter_from_model, format_action_path, format_path
from ..tasks import is_task_url
from .base import ResourceService, require_id
from .snapshot import SnapshotService


class VMService(ResourceService):
    resource = 'vms'
    model = VM
    object_type = 'VM'

    def create(self, pool_id, params: CreateVMParams, wait: bool = True, ctx: Optional[Context] = None):
        """
        Create a VM from a template on a pool.

        :param pool_id: UUID of the pool
        :param params: CreateVMParams
        :param wait: Wait for the creation task and return the VM, else return the task id
        :return: VM, or the task id when wait is False
        """
        pool_id = require_id(pool_id, "pool ID")
        path = PathBuilder().resource('pools').id(pool_id).actions_group().action('create_vm').build()
        try:
            body = self.rest.post(path, params, result_type=Any, ctx=ctx)
            if is_task_url(body) and not wait:
                task_id = self._run_task(body, False, 'VM creation', ctx)
                self.log.info(f"VM creation for '{params.name_label}' started, task {task_id}")
                return task_id

            task = self._await_task(body, 'VM creation', ctx)
            if task is not None and task.result is not None and task.result.id is not None:
                vm = self.get_by_id(task.result.id, ctx=ctx)
            else:
                vm = self._find_created(params.name_label, body, ctx)
            self.log.info(f"Created VM {vm.id} ('{vm.name_label}') on pool {pool_id}")
            return vm
        except XOError as e:
            self.log.error(f"Failed to create VM '{params.name_label}' on pool {pool_id}: {e}")
            raise

    def _find_created(self, name_label, body, ctx):
        # The creation task did not report an id; look the VM up by its label.
        query = build_filter_from_model(VMFilter(name_label=name_label))
        for vm in self.list(filter=query, ctx=ctx):
            if vm.name_label == name_label:
                return vm
        if isinstance(body, dict):
            try:
                return VM.model_validate(body)
            except ValidationError:
                pass
        raise XONotFoundError(f"VM not found after creation: '{name_label}'")

    def delete(self, vm_id, ctx: Optional[Context] = None):
        self._delete(vm_id, ctx)

    def _power_action(self, action, vm_id, wait, ctx):
        vm_id = require_id(vm_id, "VM ID")
        try:
            body = self.rest.post(format_action_path(self.resource, action), {'id': vm_id},
                                  result_type=Any, ctx=ctx)
            task_id = self._run_task(body, wait, f"VM {action}", ctx)
            self.log.info(f"VM {vm_id} action '{action}' completed" if wait else
                          f"VM {vm_id} action '{action}' initiated, task {task_id}")
            return task_id
        except XOError as e:
            self.log.error(f"Failed to {action} VM {vm_id}: {e}")
            raise

    def start(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        """
        Start a VM.

        :param vm_id: VM UUID
        :param wait: Wait for the task to finish
        :return: Task id, or None if the server answered without a task
        """
        return self._power_action('start', vm_id, wait, ctx)

    def clean_shutdown(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('clean_shutdown', vm_id, wait, ctx)

    def hard_shutdown(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('hard_shutdown', vm_id, wait, ctx)

    def clean_reboot(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('clean_reboot', vm_id, wait, ctx)

    def hard_reboot(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('hard_reboot', vm_id, wait, ctx)

    def suspend(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('suspend', vm_id, wait, ctx)

    def resume(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        return self._power_action('resume', vm_id, wait, ctx)

    def restart(self, vm_id, wait: bool = True, ctx: Optional[Context] = None):
        """
        Restart a VM through its own restart route.

        :param vm_id: VM UUID
        :param wait: Wait for the task to finish
        :return: Task id, or None if the server answered without a task
        """
        vm_id = require_id(vm_id, "VM ID")
        path = PathBuilder().resource(self.resource).id_string(vm_id).action('restart').build()
        try:
            body = self.rest.post(path, result_type=Any, ctx=ctx)
            task_id = self._run_task(body, wait, "VM restart", ctx)
            self.log.info(f"VM {vm_id} restarted" if wait else f"VM {vm_id} restart initiated, task {task_id}")
            return task_id
        except XOError as e:
            self.log.error(f"Failed to restart VM {vm_id}: {e}")
            raise

    def update(self, vm: VM, ctx: Optional[Context] = None) -> VM:
        """
        Send a modified VM record back to the server.

        :param vm: VM with its id set
        :return: The VM as stored after the update
        """
        vm_id = require_id(vm.id, "VM ID")
        try:
            body = self.rest.post(format_path(self.resource, vm_id), vm, result_type=Any, ctx=ctx)
            if is_task_url(body):
                self._await_task(body, 'VM update', ctx)
                updated = self.get_by_id(vm_id, ctx=ctx)
            else:
                updated = codec.decode(body, VM)
            self.log.info(f"Updated VM {vm_id}")
            return updated
        except XOError as e:
            self.log.error(f"Failed to update VM {vm_id}: {e}")
            raise

    def snapshot(self, vm_id, name: str, wait: bool = True, ctx: Optional[Context] = None):
        """Snapshot a VM; same as SnapshotService.create."""
        return SnapshotService(self.rest, self.rpc, self.tasks, self.log).create(vm_id, name, wait, ctx)
