"""
Typed payloads exchanged with the XO REST and JSON-RPC APIs.

Wire names that are not valid Python identifiers (``$poolId``, ``CPUs``, ``$VBDs``) are
mapped through field aliases. Every model accepts either spelling on input and dumps
by alias, so a model can be sent back to the server unchanged.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator


def _blank_to_none(value):
    if value == '':
        return None
    return value


def _parse_api_time(value):
    # The API reports times either as RFC3339 strings or as Unix milliseconds.
    if value is None or value == '' or value == 0:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    return value


OptionalUUID = Annotated[Optional[UUID], BeforeValidator(_blank_to_none)]
APITime = Annotated[Optional[datetime], BeforeValidator(_parse_api_time)]


def parse_uuid(value) -> Optional[UUID]:
    """Return value as a UUID, or None if it is not one."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class XOModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class QueryOptions(XOModel):
    limit: int = 0
    fields: Union[str, List[str]] = '*'
    filter: str = ''

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        fields = self.fields if isinstance(self.fields, str) else ','.join(self.fields)
        if fields:
            params['fields'] = fields
        if self.limit > 0:
            params['limit'] = self.limit
        if self.filter:
            params['filter'] = self.filter
        return params


# Tasks

class TaskStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILURE = 'failure'

    @property
    def is_terminal(self):
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILURE)


class TaskProperties(XOModel):
    name: Optional[str] = None
    method: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    object_id: Optional[str] = Field(None, alias='objectId')
    user_id: Optional[str] = Field(None, alias='userId')
    type: Optional[str] = None


class TaskResult(XOModel):
    id: Optional[UUID] = None
    string_id: Optional[str] = None
    message: Optional[str] = None
    stack: Optional[str] = None
    code: Any = None
    value: Any = None

    @model_validator(mode='before')
    @classmethod
    def normalize(cls, data):
        # A result is either a bare id string or an object with an id.
        if data is None or isinstance(data, dict):
            if isinstance(data, dict) and 'id' in data:
                data = dict(data)
                raw_id = data.pop('id')
                uuid_id = parse_uuid(raw_id)
                if uuid_id is not None:
                    data['id'] = uuid_id
                elif raw_id not in (None, ''):
                    data.setdefault('string_id', str(raw_id))
            return data
        if isinstance(data, str):
            uuid_id = parse_uuid(data)
            return {'id': uuid_id} if uuid_id is not None else {'string_id': data}
        return {'value': data}

    @property
    def entity_id(self) -> Optional[str]:
        if self.id is not None:
            return str(self.id)
        return self.string_id


class Task(XOModel):
    id: str = ''
    name: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    properties: Optional[TaskProperties] = None
    start: APITime = None
    updated_at: APITime = Field(None, alias='updatedAt')
    end: APITime = None
    message: Optional[str] = None
    stack: Optional[str] = None
    result: Optional[TaskResult] = None

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if value == 'interrupted':
            return TaskStatus.FAILURE
        return value

    @property
    def is_terminal(self):
        return self.status.is_terminal

    @property
    def failure_message(self) -> str:
        if self.result is not None and self.result.message:
            return self.result.message
        return self.message or 'unknown error'


class AbortResponse(XOModel):
    success: bool = False


# VMs

class PowerState(str, Enum):
    HALTED = 'Halted'
    RUNNING = 'Running'
    PAUSED = 'Paused'
    SUSPENDED = 'Suspended'


class Memory(XOModel):
    dynamic: List[int] = Field(default_factory=list)
    static: List[int] = Field(default_factory=list)
    size: int = 0
    usage: Optional[int] = None


class CPUs(XOModel):
    number: int = 0
    max: int = 0


class CPUInfo(XOModel):
    cores: Optional[int] = None
    sockets: Optional[int] = None


class Boot(XOModel):
    firmware: Optional[str] = None
    order: Optional[str] = None


class VM(XOModel):
    id: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    power_state: Optional[PowerState] = None
    memory: Optional[Memory] = None
    cpus: Optional[CPUs] = Field(None, alias='CPUs')
    vifs: List[str] = Field(default_factory=list, alias='VIFs')
    vbds: List[str] = Field(default_factory=list, alias='$VBDs')
    tags: List[str] = Field(default_factory=list)
    auto_poweron: bool = False
    high_availability: Optional[str] = None
    virtualization_mode: Optional[str] = Field(None, alias='virtualizationMode')
    start_delay: Optional[int] = Field(None, alias='startDelay')
    exp_nested_hvm: Optional[bool] = Field(None, alias='expNestedHvm')
    boot: Optional[Boot] = None
    videoram: Optional[int] = None
    vga: Optional[str] = None
    xenstore_data: Dict[str, str] = Field(default_factory=dict, alias='xenStoreData')
    blocked_operations: Dict[str, str] = Field(default_factory=dict, alias='blockedOperations')
    template: Optional[str] = None
    pool_id: OptionalUUID = Field(None, alias='$poolId')
    container: Optional[str] = Field(None, alias='$container')

    @field_validator('videoram', mode='before')
    @classmethod
    def parse_videoram(cls, value):
        # Older servers report videoram as a numeric string.
        if isinstance(value, str):
            return int(value) if value.strip() else None
        return value


class Snapshot(VM):
    snapshot_of: OptionalUUID = Field(None, alias='$snapshot_of')
    snapshot_time: Optional[int] = None


class VMFilter(XOModel):
    power_state: Optional[Union[PowerState, str]] = None
    name_label: Optional[str] = None
    pool_id: Optional[str] = None
    tags: Optional[Union[str, List[str]]] = None


class InstallParams(XOModel):
    method: str
    repository: Optional[str] = None


class VDIParams(XOModel):
    destroy: Optional[bool] = None
    userdevice: Optional[str] = None
    size: Optional[int] = None
    sr: Optional[str] = None
    name_label: Optional[str] = None
    name_description: Optional[str] = None


class VIFParams(XOModel):
    destroy: Optional[bool] = None
    device: Optional[str] = None
    ipv4_allowed: Optional[List[str]] = None
    ipv6_allowed: Optional[List[str]] = None
    mac: Optional[str] = None
    network: Optional[str] = None


class CreateVMParams(XOModel):
    name_label: str
    template: UUID
    name_description: Optional[str] = None
    affinity: Optional[str] = None
    auto_poweron: Optional[bool] = None
    boot: Optional[bool] = None
    clone: Optional[bool] = None
    cloud_config: Optional[str] = None
    destroy_cloud_config_vdi: Optional[bool] = None
    install: Optional[InstallParams] = None
    memory: Optional[int] = None
    network_config: Optional[str] = None
    vdis: Optional[List[VDIParams]] = None
    vifs: Optional[List[VIFParams]] = None


# Infrastructure

class Pool(XOModel):
    id: OptionalUUID = None
    uuid: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    auto_poweron: bool = False
    current_operations: Dict[str, Any] = Field(default_factory=dict)
    default_sr: OptionalUUID = Field(None, alias='default_SR')
    ha_enabled: bool = Field(False, alias='HA_enabled')
    ha_srs: List[str] = Field(default_factory=list, alias='haSrs')
    master: OptionalUUID = None
    tags: List[str] = Field(default_factory=list)
    migration_compression: Optional[bool] = Field(None, alias='migrationCompression')
    other_config: Dict[str, Any] = Field(default_factory=dict, alias='otherConfig')
    cpus: Optional[CPUInfo] = None
    zstd_supported: Optional[bool] = Field(None, alias='zstdSupported')
    vtpm_supported: Optional[bool] = Field(None, alias='vtpmSupported')
    platform_version: Optional[str] = None
    pool: OptionalUUID = Field(None, alias='$pool')
    pool_id: OptionalUUID = Field(None, alias='$poolId')
    xapi_ref: Optional[str] = Field(None, alias='_xapiRef')


class Host(XOModel):
    id: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    address: Optional[str] = None
    hostname: Optional[str] = None
    power_state: Optional[str] = None
    enabled: bool = False
    memory: Optional[Memory] = None
    cpus: Optional[CPUInfo] = None
    version: Optional[str] = None
    build: Optional[str] = None
    product_brand: Optional[str] = Field(None, alias='productBrand')
    tags: List[str] = Field(default_factory=list)
    pool_id: OptionalUUID = Field(None, alias='$poolId')


class Network(XOModel):
    id: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    bridge: Optional[str] = None
    mtu: Optional[int] = Field(None, alias='MTU')
    automatic: Optional[bool] = None
    default_is_locked: Optional[bool] = Field(None, alias='defaultIsLocked')
    nbd: Optional[bool] = None
    insecure_nbd: Optional[bool] = Field(None, alias='insecureNbd')
    pifs: List[str] = Field(default_factory=list, alias='PIFs')
    vifs: List[str] = Field(default_factory=list, alias='VIFs')
    other_config: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    pool: OptionalUUID = Field(None, alias='$pool')
    pool_id: OptionalUUID = Field(None, alias='$poolId')


class VDIFormat(str, Enum):
    RAW = 'raw'
    VHD = 'vhd'


class VDI(XOModel):
    id: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    size: int = 0
    usage: int = 0
    vdi_type: Optional[str] = Field(None, alias='VDI_type')
    cbt_enabled: Optional[bool] = None
    missing: Optional[bool] = None
    parent: OptionalUUID = None
    image_format: Optional[str] = None
    snapshots: List[str] = Field(default_factory=list)
    sr: OptionalUUID = Field(None, alias='$SR')
    vbds: List[str] = Field(default_factory=list, alias='$VBDs')
    pool_id: OptionalUUID = Field(None, alias='$poolId')
    tags: List[str] = Field(default_factory=list)


class StorageRepository(XOModel):
    id: OptionalUUID = None
    uuid: OptionalUUID = None
    type: Optional[str] = None
    name_label: str = ''
    name_description: str = ''
    sr_type: Optional[str] = Field(None, alias='SR_type')
    content_type: Optional[str] = None
    shared: bool = False
    physical_usage: int = 0
    size: int = 0
    usage: int = 0
    allocation_strategy: Optional[str] = Field(None, alias='allocationStrategy')
    pbds: List[str] = Field(default_factory=list, alias='$PBDs')
    sm_config: Dict[str, Any] = Field(default_factory=dict)
    pool: OptionalUUID = Field(None, alias='$pool')
    pool_id: OptionalUUID = Field(None, alias='$poolId')
    tags: List[str] = Field(default_factory=list)


class SRFilter(XOModel):
    name_label: Optional[str] = None
    pool_id: Optional[str] = Field(None, alias='$poolId')
    sr_type: Optional[str] = Field(None, alias='SR_type')
    tags: Optional[Union[str, List[str]]] = None


# Backups

class BackupJobKind(str, Enum):
    VM = 'vm'
    METADATA = 'metadata'
    MIRROR = 'mirror'


class BackupMode(str, Enum):
    FULL = 'full'
    DELTA = 'delta'


# Settings that XO stores under a schedule id instead of the global '' key.
SCHEDULE_SETTING_KEYS = frozenset({
    'exportRetention',
    'copyRetention',
    'snapshotRetention',
    'deleteFirst',
    'healthCheckSr',
    'healthCheckVmsWithTags',
})


class BackupSettings(XOModel):
    report_when: Optional[str] = Field(None, alias='reportWhen')
    report_recipients: Optional[List[str]] = Field(None, alias='reportRecipients')
    concurrency: Optional[int] = None
    n_retries_vm_backup_failures: Optional[int] = Field(None, alias='nRetriesVmBackupFailures')
    timeout: Optional[int] = None
    max_export_rate: Optional[int] = Field(None, alias='maxExportRate')
    offline_backup: Optional[bool] = Field(None, alias='offlineBackup')
    offline_snapshot: Optional[bool] = Field(None, alias='offlineSnapshot')
    checkpoint_snapshot: Optional[bool] = Field(None, alias='checkpointSnapshot')
    backup_report_tpl: Optional[str] = Field(None, alias='backupReportTpl')
    merge_backups_synchronously: Optional[bool] = Field(None, alias='mergeBackupsSynchronously')
    timezone: Optional[str] = None
    long_term_retention: Optional[Dict[str, Any]] = Field(None, alias='longTermRetention')
    export_retention: Optional[int] = Field(None, alias='exportRetention')
    copy_retention: Optional[int] = Field(None, alias='copyRetention')
    snapshot_retention: Optional[int] = Field(None, alias='snapshotRetention')
    delete_first: Optional[bool] = Field(None, alias='deleteFirst')
    health_check_sr: Optional[str] = Field(None, alias='healthCheckSr')
    health_check_vms_with_tags: Optional[List[str]] = Field(None, alias='healthCheckVmsWithTags')


def id_selection(ids: List[str]) -> Dict[str, Any]:
    """XO selection pattern: one id as-is, several as an ``__or`` list."""
    values = [str(i) for i in ids]
    if len(values) == 1:
        return {'id': values[0]}
    return {'id': {'__or': values}}


class BackupJob(XOModel):
    """A backup job definition as sent to the JSON-RPC createJob and editJob methods."""
    id: OptionalUUID = None
    name: str
    kind: BackupJobKind = BackupJobKind.VM
    mode: BackupMode = BackupMode.FULL
    schedule: OptionalUUID = None
    compression: Optional[str] = None
    vms: List[str] = Field(default_factory=list)
    remotes: List[str] = Field(default_factory=list)
    srs: List[str] = Field(default_factory=list)
    pools: List[str] = Field(default_factory=list)
    source_remote: Optional[str] = Field(None, alias='sourceRemote')
    settings: Optional[BackupSettings] = None

    def to_jsonrpc_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'name': self.name}
        if self.id is not None:
            payload['id'] = str(self.id)
        if self.kind != BackupJobKind.METADATA:
            payload['mode'] = self.mode.value
        if self.compression is not None:
            payload['compression'] = self.compression
        for key, ids in (('vms', self.vms), ('remotes', self.remotes), ('srs', self.srs), ('pools', self.pools)):
            if ids:
                payload[key] = id_selection(ids)
        if self.source_remote:
            payload['sourceRemote'] = self.source_remote

        values = self.settings.to_payload() if self.settings is not None else {}
        global_settings = {k: v for k, v in values.items() if k not in SCHEDULE_SETTING_KEYS}
        schedule_settings = {k: v for k, v in values.items() if k in SCHEDULE_SETTING_KEYS}
        settings = {'': global_settings}
        if self.schedule is not None:
            settings[str(self.schedule)] = schedule_settings
        else:
            global_settings.update(schedule_settings)
        payload['settings'] = settings
        return payload


class BackupJobResponse(XOModel):
    """A backup job as returned to callers: REST fields merged with JSON-RPC settings."""
    id: OptionalUUID = None
    name: str = ''
    kind: Optional[BackupJobKind] = None
    mode: Optional[str] = None
    type: Optional[str] = None
    schedule: OptionalUUID = None
    compression: Optional[str] = None
    proxy: Optional[str] = None
    vms: Any = None
    remotes: Any = None
    srs: Any = None
    settings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class BackupLog(XOModel):
    id: str = ''
    name: Optional[str] = None
    job_id: Optional[str] = Field(None, alias='jobId')
    schedule_id: Optional[str] = Field(None, alias='scheduleId')
    status: Optional[str] = None
    start: APITime = None
    end: APITime = None
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class RestoreLog(XOModel):
    id: str = ''
    message: Optional[str] = None
    status: Optional[str] = None
    start: APITime = None
    end: APITime = None
    data: Dict[str, Any] = Field(default_factory=dict)
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class RestorePoint(XOModel):
    id: str
    name: Optional[str] = None
    vm_id: Optional[str] = None
    job_id: Optional[str] = None
    backup_time: Optional[datetime] = None
    type: Optional[str] = None


class Schedule(XOModel):
    id: OptionalUUID = None
    job_id: Optional[str] = Field(None, alias='jobId')
    name: Optional[str] = None
    cron: str = ''
    enabled: bool = False
    timezone: Optional[str] = None
