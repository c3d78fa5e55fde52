from typing import Any, Dict, List, Optional

from ..context import Context
from ..errors import XOError
from ..models import BackupLog, QueryOptions, RestoreLog, RestorePoint
from ..tasks import is_task_url
from .base import Service, require_id

RESTORE_POINT_LIMIT = 200
SUCCESS = 'success'


def _vm_ids(log: BackupLog) -> List[str]:
    ids = []
    for task in log.tasks:
        data = task.get('data') or {}
        if data.get('type') == 'VM' and data.get('id'):
            ids.append(data['id'])
    return ids


class RestoreService(Service):
    """Restore points and restores of VM and metadata backups."""

    def get_restore_points(self, vm_id, limit=RESTORE_POINT_LIMIT, ctx: Optional[Context] = None) -> List[RestorePoint]:
        """
        Successful backups of a VM, newest first.

        :param vm_id: VM UUID
        :param limit: Number of backup logs to scan
        :return: List of RestorePoint
        """
        vm_id = require_id(vm_id, "VM ID")
        options = QueryOptions(limit=limit)
        try:
            logs = self.rest.get('backup/logs', options.to_params(), result_type=List[BackupLog], ctx=ctx) or []
        except XOError as e:
            self.log.error(f"Failed to get restore points for VM {vm_id}: {e}")
            raise

        points = []
        for log in logs:
            if log.status != SUCCESS or vm_id not in _vm_ids(log):
                continue
            points.append(RestorePoint(
                id=log.id,
                name=log.name or log.data.get('jobName'),
                vm_id=vm_id,
                job_id=log.job_id,
                backup_time=log.end or log.start,
                type=log.data.get('mode'),
            ))
        points.sort(key=lambda p: p.backup_time.timestamp() if p.backup_time else 0, reverse=True)
        self.log.debug(f"Found {len(points)} restore points for VM {vm_id}")
        return points

    def restore_vm(self, backup_id, sr_id, start_after_restore: bool = False,
                   new_name_pattern: Optional[str] = None, wait: bool = True,
                   ctx: Optional[Context] = None):
        """
        Restore a VM backup to a storage repository.

        :param backup_id: Backup id as listed by list_vm_backups
        :param sr_id: Target SR UUID
        :param start_after_restore: Start the restored VM
        :param new_name_pattern: Name pattern for the restored VM, e.g. '{name}_restored'
        :param wait: Wait for the restore task when the server answers with one
        :return: The new VM id, or a task id when wait is False
        """
        backup_id = require_id(backup_id, "backup ID")
        sr_id = require_id(sr_id, "SR ID")
        params: Dict[str, Any] = {'id': backup_id, 'sr': sr_id}
        if new_name_pattern:
            params['settings'] = {'newNamePattern': new_name_pattern}
        try:
            result = self.rpc.call('backupNg.importVmBackup', params, result_type=Any, ctx=ctx,
                                   backup_id=backup_id, sr_id=sr_id)
            if is_task_url(result):
                if not wait:
                    return self._run_task(result, False, 'VM restore', ctx)
                task = self._await_task(result, 'VM restore', ctx)
                vm_id = task.result.entity_id if task.result is not None else None
            else:
                vm_id = result
            self.log.info(f"Restored backup {backup_id} to SR {sr_id} as VM {vm_id}")

            if start_after_restore and vm_id:
                self.rpc.call('vm.start', {'id': vm_id}, result_type=Any, ctx=ctx, vm_id=vm_id)
                self.log.info(f"Started restored VM {vm_id}")
            return vm_id
        except XOError as e:
            self.log.error(f"Failed to restore backup {backup_id}: {e}")
            raise

    def restore_metadata(self, backup_id, pool_id=None, ctx: Optional[Context] = None):
        """
        Restore a pool or XO metadata backup.

        :param backup_id: Metadata backup id
        :param pool_id: Pool to restore onto, for pool metadata backups
        """
        backup_id = require_id(backup_id, "backup ID")
        params = {'id': backup_id}
        if pool_id:
            params['pool'] = str(pool_id)
        try:
            result = self.rpc.call('backupNg.restoreMetadata', params, result_type=Any, ctx=ctx, backup_id=backup_id)
            self.rpc.validate_result(result, f"metadata restore of {backup_id}")
            if is_task_url(result):
                self._await_task(result, 'metadata restore', ctx)
            self.log.info(f"Restored metadata backup {backup_id}")
        except XOError as e:
            self.log.error(f"Failed to restore metadata backup {backup_id}: {e}")
            raise

    def list_restore_logs(self, limit=0, ctx: Optional[Context] = None) -> List[RestoreLog]:
        options = QueryOptions(limit=limit)
        try:
            entries = self.rest.get('restore/logs', options.to_params(), result_type=List[Any], ctx=ctx) or []
            return [self.get_restore_log(e.rsplit('/', 1)[-1], ctx) if isinstance(e, str)
                    else RestoreLog.model_validate(e) for e in entries]
        except XOError as e:
            self.log.error(f"Failed to list restore logs: {e}")
            raise

    def get_restore_log(self, log_id, ctx: Optional[Context] = None) -> RestoreLog:
        log_id = require_id(log_id, "restore log ID")
        return self.rest.get(f"restore/logs/{log_id}", result_type=RestoreLog, ctx=ctx)
