import logging
from uuid import UUID

import pytest

from conftest import VM_ID
from xoclient.errors import (
    OperationCancelledError,
    XOAPIError,
    XOHTTPError,
    XONotFoundError,
    XORPCError,
    XOValidationError,
)
from xoclient.models import BackupJob, BackupJobKind, BackupJobResponse, BackupSettings
from xoclient.services import BackupService
from xoclient.services.backup import find_schedule_id

JOB_ID = '5c6d7e8f-9a0b-4c1d-8e2f-3a4b5c6d7e8f'
SCHEDULE_ID = 'd1e2f3a4-b5c6-4d7e-8f9a-0b1c2d3e4f5a'
OTHER_VM_ID = '0a1b2c3d-4e5f-4a6b-8c7d-9e0f1a2b3c4d'


def not_found():
    return XOHTTPError(404, 'Not Found', 'no such job')


def rest_job(**fields):
    return BackupJobResponse(id=JOB_ID, name='nightly', mode='full', **fields)


@pytest.fixture
def service(rest, rpc, tasks):
    return BackupService(rest, rpc=rpc, tasks=tasks)


class TestFindScheduleId:

    def test_finds_schedule_key(self):
        settings = {'': {'concurrency': 2}, SCHEDULE_ID: {'exportRetention': 7}}

        assert find_schedule_id(settings) == UUID(SCHEDULE_ID)

    def test_ignores_keys_without_retention(self):
        assert find_schedule_id({'': {}, SCHEDULE_ID: {'concurrency': 2}}) is None
        assert find_schedule_id({'not-a-uuid': {'exportRetention': 7}}) is None
        assert find_schedule_id({}) is None


class TestGetJob:

    def test_merges_jsonrpc_settings(self, service, rest, rpc):
        rest.get.return_value = rest_job()
        rpc.call.return_value = {
            'settings': {'': {'concurrency': 2}, SCHEDULE_ID: {'exportRetention': 7}},
            'compression': 'zstd',
        }

        job = service.get_job(JOB_ID)

        assert job.kind == BackupJobKind.VM
        assert job.compression == 'zstd'
        assert job.settings[SCHEDULE_ID] == {'exportRetention': 7}
        assert job.schedule == UUID(SCHEDULE_ID)
        assert rest.get.call_args[0] == (f'backup/jobs/vm/{JOB_ID}',)
        assert rpc.call.call_args[0] == ('backupNg.getJob', {'id': JOB_ID})

    def test_tries_next_kind_on_404(self, service, rest, rpc):
        rest.get.side_effect = [not_found(), rest_job()]
        rpc.call.return_value = {}

        job = service.get_job(JOB_ID)

        assert job.kind == BackupJobKind.METADATA
        assert rest.get.call_args[0] == (f'backup/jobs/metadata/{JOB_ID}',)
        assert rpc.call.call_args[0][0] == 'metadataBackup.getJob'

    def test_not_found_in_any_kind(self, service, rest):
        rest.get.side_effect = [not_found(), not_found(), not_found()]

        with pytest.raises(XONotFoundError, match=f"backup job {JOB_ID} not found"):
            service.get_job(JOB_ID)

    def test_explicit_kind_keeps_http_error(self, service, rest):
        rest.get.side_effect = not_found()

        with pytest.raises(XOHTTPError):
            service.get_job(JOB_ID, kind='mirror')
        assert rest.get.call_args[0] == (f'backup/jobs/mirror/{JOB_ID}',)

    def test_enrichment_failure_returns_rest_data(self, service, rest, rpc, caplog):
        rest.get.return_value = rest_job(settings={SCHEDULE_ID: {'exportRetention': 3}})
        rpc.call.side_effect = XORPCError('backupNg.getJob', 'no such method')

        with caplog.at_level(logging.WARNING):
            job = service.get_job(JOB_ID)

        assert job.name == 'nightly'
        assert job.schedule == UUID(SCHEDULE_ID)
        assert 'returning REST data only' in caplog.text

    def test_cancellation_is_not_swallowed(self, service, rest, rpc):
        rest.get.return_value = rest_job()
        rpc.call.side_effect = OperationCancelledError('context canceled')

        with pytest.raises(OperationCancelledError):
            service.get_job(JOB_ID)

    def test_requires_id(self, service):
        with pytest.raises(XOValidationError, match="backup job ID cannot be empty"):
            service.get_job('')


class TestListJobs:

    def test_skips_short_paths(self, service, rest, rpc, caplog):
        rest.get.side_effect = [
            [f'/rest/v0/backup/jobs/vm/{JOB_ID}', 'backup/jobs/vm'],
            rest_job(),
        ]
        rpc.call.return_value = {}

        with caplog.at_level(logging.WARNING):
            jobs = service.list_jobs(kind='vm')

        assert [str(j.id) for j in jobs] == [JOB_ID]
        assert 'Skipping invalid backup job path' in caplog.text

    def test_missing_kind_endpoint_is_skipped(self, service, rest):
        rest.get.side_effect = [[], not_found(), []]

        assert service.list_jobs() == []
        assert rest.get.call_count == 3

    def test_other_errors_propagate(self, service, rest):
        rest.get.side_effect = XOHTTPError(500, 'Internal Server Error', 'boom')

        with pytest.raises(XOHTTPError):
            service.list_jobs(kind='vm')

    def test_limit_is_passed(self, service, rest):
        rest.get.return_value = []

        service.list_jobs(limit=5, kind='metadata')

        assert rest.get.call_args[0] == ('backup/jobs/metadata', {'limit': 5})


class TestJobMutations:

    def test_create_job(self, service, rest, rpc):
        rpc.call.side_effect = [JOB_ID, {}]
        rest.get.return_value = rest_job()
        job = BackupJob(name='nightly', vms=[VM_ID], remotes=['remote-1'], schedule=SCHEDULE_ID,
                        settings=BackupSettings(export_retention=7, concurrency=2))

        created = service.create_job(job)

        assert str(created.id) == JOB_ID
        method, payload = rpc.call.call_args_list[0][0]
        assert method == 'backupNg.createJob'
        assert payload == {
            'name': 'nightly',
            'mode': 'full',
            'vms': {'id': VM_ID},
            'remotes': {'id': 'remote-1'},
            'settings': {'': {'concurrency': 2}, SCHEDULE_ID: {'exportRetention': 7}},
        }

    def test_payload_without_schedule_keeps_settings_global(self):
        job = BackupJob(name='weekly', kind='metadata', pools=['p1', 'p2'],
                        settings=BackupSettings(export_retention=4))

        payload = job.to_jsonrpc_payload()

        assert 'mode' not in payload
        assert payload['pools'] == {'id': {'__or': ['p1', 'p2']}}
        assert payload['settings'] == {'': {'exportRetention': 4}}

    def test_update_job(self, service, rest, rpc):
        rpc.call.side_effect = [True, {}]
        rest.get.return_value = rest_job()

        service.update_job(BackupJob(id=JOB_ID, name='nightly'))

        method, payload = rpc.call.call_args_list[0][0]
        assert method == 'backupNg.editJob'
        assert payload['id'] == JOB_ID

    def test_update_job_requires_id(self, service):
        with pytest.raises(XOValidationError):
            service.update_job(BackupJob(name='nightly'))

    def test_delete_job(self, service, rpc):
        rpc.call.return_value = True

        service.delete_job(JOB_ID, kind='mirror')

        assert rpc.call.call_args[0] == ('mirrorBackup.deleteJob', {'id': JOB_ID})

    def test_delete_job_unsuccessful(self, service, rpc):
        rpc.call.return_value = False

        with pytest.raises(XOAPIError, match="backup job deletion returned unsuccessful status"):
            service.delete_job(JOB_ID)


class TestRunJob:

    def test_run_job_warns_and_returns_task(self, service, rpc, caplog):
        rpc.call.return_value = '/rest/v0/tasks/t9'

        with caplog.at_level(logging.WARNING):
            result = service.run_job(JOB_ID, schedule=SCHEDULE_ID)

        assert result == 't9'
        assert rpc.call.call_args[0] == ('backupNg.runJob', {'id': JOB_ID, 'schedule': SCHEDULE_ID})
        assert 'ALL of its VMs' in caplog.text

    def test_run_job_looks_up_schedule(self, service, rest, rpc):
        rest.get.return_value = rest_job()
        rpc.call.side_effect = [{'settings': {SCHEDULE_ID: {'exportRetention': 1}}}, True]

        assert service.run_job(JOB_ID) is True
        assert rpc.call.call_args[0] == ('backupNg.runJob', {'id': JOB_ID, 'schedule': SCHEDULE_ID})

    def test_run_job_without_schedule(self, service, rest, rpc):
        rest.get.return_value = rest_job()
        rpc.call.return_value = {}

        with pytest.raises(XOValidationError, match="has no schedule"):
            service.run_job(JOB_ID)

    def test_run_for_one_vm(self, service, rpc):
        rpc.call.return_value = True

        service.run_job_for_vms(JOB_ID, [VM_ID], schedule=SCHEDULE_ID)

        assert rpc.call.call_args[0] == ('backupNg.runJob', {'id': JOB_ID, 'schedule': SCHEDULE_ID, 'vm': VM_ID})

    def test_run_for_several_vms_with_settings(self, service, rpc):
        rpc.call.return_value = '/rest/v0/tasks/t9'

        result = service.run_job_for_vms(JOB_ID, [VM_ID, OTHER_VM_ID], BackupSettings(offline_snapshot=True),
                                         schedule=SCHEDULE_ID)

        assert result == 't9'
        assert rpc.call.call_args[0][1] == {
            'id': JOB_ID,
            'schedule': SCHEDULE_ID,
            'vms': [VM_ID, OTHER_VM_ID],
            'settings': {'': {'offlineSnapshot': True}},
        }

    def test_run_for_no_vms(self, service, rpc):
        with pytest.raises(XOValidationError, match="VM ID list cannot be empty"):
            service.run_job_for_vms(JOB_ID, [])
        rpc.call.assert_not_called()


class TestBackupLogs:

    def test_list_logs(self, service, rest):
        rest.get.return_value = [{'id': 'log-1', 'jobId': JOB_ID, 'status': 'success', 'start': 1700000000000}]

        logs = service.list_logs(limit=10)

        assert logs[0].job_id == JOB_ID
        assert logs[0].start.year == 2023
        assert rest.get.call_args[0] == ('backup/logs', {'fields': '*', 'limit': 10})

    def test_list_vm_backups(self, service, rpc):
        rpc.call.return_value = {'remote-1': {VM_ID: []}}

        assert service.list_vm_backups(['remote-1']) == {'remote-1': {VM_ID: []}}
        assert rpc.call.call_args[0] == ('backupNg.listVmBackups', {'remotes': ['remote-1']})
