from typing import Any, List, Optional

from ..context import Context
from ..errors import XOAPIError, XOError, XOValidationError
from ..models import Snapshot
from ..paths import PathBuilder, filter_clause
from .base import ResourceService, require_id


class SnapshotService(ResourceService):
    resource = 'vm-snapshots'
    model = Snapshot
    object_type = 'snapshot'

    def create(self, vm_id, name: str, wait: bool = True, ctx: Optional[Context] = None):
        """
        Snapshot a VM.

        :param vm_id: VM UUID
        :param name: Snapshot name label
        :param wait: Wait for the task and return the new snapshot
        :return: Snapshot when waiting and the task reports its id, else the task id
        """
        vm_id = require_id(vm_id, "VM ID")
        if not name:
            raise XOValidationError("snapshot name cannot be empty")
        path = PathBuilder().resource('vms').id_string(vm_id).actions_group().action('snapshot').build()
        try:
            body = self.rest.post(path, {'name_label': name}, result_type=Any, ctx=ctx)
            if not wait:
                task_id = self._run_task(body, False, 'snapshot creation', ctx)
                self.log.info(f"Snapshot '{name}' of VM {vm_id} initiated, task {task_id}")
                return task_id

            task = self._await_task(body, 'snapshot creation', ctx)
            if task is None:
                raise XOAPIError(f"unexpected response to snapshot of VM {vm_id}: {body!r}")
            snapshot_id = task.result.entity_id if task.result is not None else None
            self.log.info(f"Created snapshot '{name}' of VM {vm_id}", extra={'task_id': task.id})
            if snapshot_id is None:
                return task.id
            return self.get_by_id(snapshot_id, ctx=ctx)
        except XOError as e:
            self.log.error(f"Failed to snapshot VM {vm_id}: {e}")
            raise

    def list_by_vm(self, vm_id, ctx: Optional[Context] = None) -> List[Snapshot]:
        """
        List the snapshots of one VM.

        The server filter on $snapshot_of is applied again locally, since some
        servers ignore it and answer with every snapshot.

        :param vm_id: VM UUID
        :return: List of Snapshot
        """
        vm_id = require_id(vm_id, "VM ID")
        snapshots = self.list(filter=filter_clause('$snapshot_of', vm_id), ctx=ctx)
        matching = [s for s in snapshots if s.snapshot_of is not None and str(s.snapshot_of) == vm_id]
        self.log.debug(f"Found {len(matching)} of {len(snapshots)} snapshots for VM {vm_id}")
        return matching

    def delete(self, snapshot_id, ctx: Optional[Context] = None):
        self._delete(snapshot_id, ctx)

    def revert(self, vm_id, snapshot_id, ctx: Optional[Context] = None):
        """
        Revert a VM to one of its snapshots.

        :param vm_id: VM UUID, used for logging and validation
        :param snapshot_id: Snapshot UUID
        """
        vm_id = require_id(vm_id, "VM ID")
        snapshot_id = require_id(snapshot_id, "snapshot ID")
        try:
            result = self.rpc.call('vm.revert', {'snapshot': snapshot_id}, result_type=Any, ctx=ctx,
                                   vm_id=vm_id, snapshot_id=snapshot_id)
            self.rpc.validate_result(result, f"revert of VM {vm_id} to snapshot {snapshot_id}")
            self.log.info(f"Reverted VM {vm_id} to snapshot {snapshot_id}")
        except XOError as e:
            self.log.error(f"Failed to revert VM {vm_id} to snapshot {snapshot_id}: {e}")
            raise
