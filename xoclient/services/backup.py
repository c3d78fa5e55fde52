"""
Backup jobs live in both APIs: REST knows a job's name, mode and selection, while its
settings and compression are only available through JSON-RPC. ``get_job`` merges both.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from ..context import Context
from ..errors import (
    DeadlineExceededError,
    OperationCancelledError,
    XOError,
    XOHTTPError,
    XONotFoundError,
    XOValidationError,
)
from ..models import (
    BackupJob,
    BackupJobKind,
    BackupJobResponse,
    BackupLog,
    BackupSettings,
    QueryOptions,
    parse_uuid,
)
from ..paths import PathBuilder
from ..tasks import extract_task_id, is_task_url
from .base import Service, require_id

JOB_NAMESPACES = {
    BackupJobKind.VM: 'backupNg',
    BackupJobKind.METADATA: 'metadataBackup',
    BackupJobKind.MIRROR: 'mirrorBackup',
}

# '/rest/v0/backup/jobs/<kind>/<id>' splits into seven segments.
MIN_JOB_PATH_SEGMENTS = 7

SCHEDULE_MARKER = 'exportRetention'

CANCELLATION_ERRORS = (OperationCancelledError, DeadlineExceededError)


def find_schedule_id(settings: Dict[str, Any]) -> Optional[UUID]:
    """First settings key that is a UUID and carries schedule-level retention."""
    for key, value in (settings or {}).items():
        schedule_id = parse_uuid(key)
        if schedule_id is not None and isinstance(value, dict) and SCHEDULE_MARKER in value:
            return schedule_id
    return None


def _kinds(kind) -> List[BackupJobKind]:
    return [BackupJobKind(kind)] if kind else list(BackupJobKind)


def _task_id_or_body(result):
    if is_task_url(result):
        return extract_task_id(result)
    return result


class BackupService(Service):
    """Backup jobs of every kind, plus backup logs and the VM backups held on remotes."""

    def _job_path(self, kind: BackupJobKind, job_id=None) -> str:
        builder = PathBuilder().resource('backup').resource('jobs').resource(kind.value)
        if job_id is not None:
            builder.id_string(str(job_id))
        return builder.build()

    def get_job(self, job_id, kind=None, ctx: Optional[Context] = None) -> BackupJobResponse:
        """
        Fetch a backup job with its settings.

        :param job_id: Job UUID
        :param kind: 'vm', 'metadata' or 'mirror'; all kinds are tried when None
        :return: BackupJobResponse
        """
        job_id = require_id(job_id, "backup job ID")
        try:
            job = self._get_rest_job(job_id, _kinds(kind), ctx)
            job.schedule = job.schedule or find_schedule_id(job.settings)
            self._enrich(job, job_id, ctx)
            job.schedule = job.schedule or find_schedule_id(job.settings)
            return job
        except XOError as e:
            self.log.error(f"Failed to get backup job {job_id}: {e}")
            raise

    def _get_rest_job(self, job_id, kinds, ctx) -> BackupJobResponse:
        last_error = None
        for kind in kinds:
            try:
                job = self.rest.get(self._job_path(kind, job_id), result_type=BackupJobResponse, ctx=ctx)
            except XOHTTPError as e:
                if e.status != 404 or len(kinds) == 1:
                    raise
                last_error = e
                continue
            job.kind = kind
            return job
        raise XONotFoundError(f"backup job {job_id} not found") from last_error

    def _enrich(self, job: BackupJobResponse, job_id, ctx):
        method = f"{JOB_NAMESPACES[job.kind]}.getJob"
        try:
            details = self.rpc.call(method, {'id': job_id}, result_type=Dict[str, Any], ctx=ctx, job_id=job_id)
        except CANCELLATION_ERRORS:
            raise
        except XOError as e:
            self.log.warning(f"Could not load settings of backup job {job_id} via {method}, "
                             f"returning REST data only: {e}", extra={'object_id': job_id})
            return
        if details.get('settings'):
            job.settings = details['settings']
        if 'compression' in details:
            job.compression = details['compression']

    def list_jobs(self, limit=0, kind=None, ctx: Optional[Context] = None) -> List[BackupJobResponse]:
        """
        List backup jobs of one or all kinds, each fully resolved through get_job.

        :param limit: Maximum jobs per kind, 0 for the server default
        :param kind: Restrict to one kind
        :return: List of BackupJobResponse
        """
        jobs = []
        params = {'limit': limit} if limit else None
        for job_kind in _kinds(kind):
            try:
                entries = self.rest.get(self._job_path(job_kind), params, result_type=List[Any], ctx=ctx) or []
            except XOHTTPError as e:
                if e.status != 404:
                    self.log.error(f"Failed to list {job_kind.value} backup jobs: {e}")
                    raise
                self.log.warning(f"No {job_kind.value} backup jobs endpoint on this server: {e}")
                continue

            for entry in entries:
                if isinstance(entry, dict) and entry.get('id'):
                    jobs.append(self.get_job(entry['id'], job_kind, ctx))
                    continue
                segments = entry.split('/') if isinstance(entry, str) else []
                if len(segments) < MIN_JOB_PATH_SEGMENTS:
                    self.log.warning(f"Skipping invalid backup job path: {entry!r}")
                    continue
                jobs.append(self.get_job(segments[-1], job_kind, ctx))
        self.log.debug(f"Retrieved {len(jobs)} backup jobs")
        return jobs

    def create_job(self, job: BackupJob, ctx: Optional[Context] = None) -> BackupJobResponse:
        """
        Create a backup job.

        :param job: BackupJob definition, its kind selects the JSON-RPC namespace
        :return: The created job as read back from the server
        """
        method = f"{JOB_NAMESPACES[job.kind]}.createJob"
        payload = job.to_jsonrpc_payload()
        payload.pop('id', None)
        try:
            job_id = self.rpc.call(method, payload, result_type=str, ctx=ctx, job_name=job.name)
            self.log.info(f"Created {job.kind.value} backup job {job_id} ('{job.name}')")
            return self.get_job(job_id, job.kind, ctx)
        except XOError as e:
            self.log.error(f"Failed to create backup job '{job.name}': {e}")
            raise

    def update_job(self, job: BackupJob, ctx: Optional[Context] = None) -> BackupJobResponse:
        job_id = require_id(job.id, "backup job ID")
        method = f"{JOB_NAMESPACES[job.kind]}.editJob"
        try:
            result = self.rpc.call(method, job.to_jsonrpc_payload(), result_type=Any, ctx=ctx, job_id=job_id)
            self.rpc.validate_result(result, f"backup job update {job_id}")
            self.log.info(f"Updated backup job {job_id}")
            return self.get_job(job_id, job.kind, ctx)
        except XOError as e:
            self.log.error(f"Failed to update backup job {job_id}: {e}")
            raise

    def delete_job(self, job_id, kind=BackupJobKind.VM, ctx: Optional[Context] = None):
        job_id = require_id(job_id, "backup job ID")
        method = f"{JOB_NAMESPACES[BackupJobKind(kind)]}.deleteJob"
        try:
            result = self.rpc.call(method, {'id': job_id}, result_type=Any, ctx=ctx, job_id=job_id)
            self.rpc.validate_result(result, "backup job deletion")
            self.log.info(f"Deleted backup job {job_id}")
        except XOError as e:
            self.log.error(f"Failed to delete backup job {job_id}: {e}")
            raise

    def _resolve_schedule(self, job_id, kind, schedule, ctx) -> str:
        if schedule:
            return str(schedule)
        job = self.get_job(job_id, kind, ctx)
        if job.schedule is None:
            raise XOValidationError(f"backup job {job_id} has no schedule, pass one explicitly")
        return str(job.schedule)

    def run_job(self, job_id, kind=BackupJobKind.VM, schedule=None, ctx: Optional[Context] = None):
        """
        Run a backup job for every VM it selects.

        Prefer run_job_for_vms, which limits the run to explicit VMs.

        :param job_id: Job UUID
        :param schedule: Schedule UUID, looked up from the job when None
        :return: Task id when the server answers with a task, else the raw result
        """
        job_id = require_id(job_id, "backup job ID")
        kind = BackupJobKind(kind)
        self.log.warning(f"Running backup job {job_id} for ALL of its VMs; "
                         f"use run_job_for_vms to limit the run to specific VMs")
        try:
            params = {'id': job_id, 'schedule': self._resolve_schedule(job_id, kind, schedule, ctx)}
            result = self.rpc.call(f"{JOB_NAMESPACES[kind]}.runJob", params, result_type=Any, ctx=ctx, job_id=job_id)
            return _task_id_or_body(result)
        except XOError as e:
            self.log.error(f"Failed to run backup job {job_id}: {e}")
            raise

    def run_job_for_vms(self, job_id, vm_ids: List[str], settings_override: Optional[BackupSettings] = None,
                        schedule=None, ctx: Optional[Context] = None):
        """
        Run a VM backup job for the given VMs only.

        :param job_id: Job UUID
        :param vm_ids: VM UUIDs, at least one
        :param settings_override: Settings applied to this run only
        :param schedule: Schedule UUID, looked up from the job when None
        :return: Task id when the server answers with a task, else the raw result
        """
        job_id = require_id(job_id, "backup job ID")
        if not vm_ids:
            raise XOValidationError("VM ID list cannot be empty")
        vm_ids = [str(v) for v in vm_ids]
        try:
            params: Dict[str, Any] = {
                'id': job_id,
                'schedule': self._resolve_schedule(job_id, BackupJobKind.VM, schedule, ctx),
            }
            if len(vm_ids) == 1:
                params['vm'] = vm_ids[0]
            else:
                params['vms'] = vm_ids
            if settings_override is not None:
                params['settings'] = {'': settings_override.to_payload()}
            result = self.rpc.call('backupNg.runJob', params, result_type=Any, ctx=ctx,
                                   job_id=job_id, vm_count=len(vm_ids))
            self.log.info(f"Started backup job {job_id} for {len(vm_ids)} VM(s)")
            return _task_id_or_body(result)
        except XOError as e:
            self.log.error(f"Failed to run backup job {job_id} for VMs {vm_ids}: {e}")
            raise

    def list_logs(self, limit=0, filter=None, ctx: Optional[Context] = None) -> List[BackupLog]:
        options = QueryOptions(limit=limit, filter=filter or '')
        try:
            entries = self.rest.get('backup/logs', options.to_params(), result_type=List[Any], ctx=ctx) or []
            return [self.get_log(e.rsplit('/', 1)[-1], ctx) if isinstance(e, str) else BackupLog.model_validate(e)
                    for e in entries]
        except XOError as e:
            self.log.error(f"Failed to list backup logs: {e}")
            raise

    def get_log(self, log_id, ctx: Optional[Context] = None) -> BackupLog:
        log_id = require_id(log_id, "backup log ID")
        return self.rest.get(f"backup/logs/{log_id}", result_type=BackupLog, ctx=ctx)

    def list_vm_backups(self, remote_ids: List[str], ctx: Optional[Context] = None) -> Dict[str, Any]:
        """
        List VM backups stored on remotes.

        :param remote_ids: Remote ids to scan
        :return: Mapping of remote id to the backups it holds, keyed by VM
        """
        if not remote_ids:
            raise XOValidationError("remote ID list cannot be empty")
        return self.rpc.call('backupNg.listVmBackups', {'remotes': [str(r) for r in remote_ids]},
                             result_type=Dict[str, Any], ctx=ctx)
