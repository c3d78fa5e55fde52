import logging
from typing import Any, List, Optional

from ..context import Context
from ..errors import XOError, XOValidationError
from ..models import Schedule
from .base import require_id

logger = logging.getLogger(__name__)


class ScheduleService:
    """Backup schedules, only reachable through JSON-RPC."""

    def __init__(self, rpc, log=None):
        self.rpc = rpc
        self.log = log or logger

    def get(self, schedule_id, ctx: Optional[Context] = None) -> Schedule:
        schedule_id = require_id(schedule_id, "schedule ID")
        try:
            return self.rpc.call('schedule.get', {'id': schedule_id}, result_type=Schedule, ctx=ctx,
                                 schedule_id=schedule_id)
        except XOError as e:
            self.log.error(f"Failed to get schedule {schedule_id}: {e}")
            raise

    get_by_id = get

    def list(self, ctx: Optional[Context] = None) -> List[Schedule]:
        try:
            return self.rpc.call('schedule.getAll', result_type=List[Schedule], ctx=ctx)
        except XOError as e:
            self.log.error(f"Failed to list schedules: {e}")
            raise

    def create(self, schedule: Schedule, ctx: Optional[Context] = None) -> Schedule:
        """
        Create a schedule for a backup job.

        :param schedule: Schedule with job_id and cron set
        :return: The created schedule
        """
        if not schedule.job_id:
            raise XOValidationError("schedule job ID cannot be empty")
        if not schedule.cron:
            raise XOValidationError("schedule cron cannot be empty")
        params = schedule.to_payload()
        params.pop('id', None)
        try:
            created = self.rpc.call('schedule.create', params, result_type=Schedule, ctx=ctx, job_id=schedule.job_id)
            self.log.info(f"Created schedule {created.id} for job {schedule.job_id}")
            return created
        except XOError as e:
            self.log.error(f"Failed to create schedule for job {schedule.job_id}: {e}")
            raise

    def update(self, schedule: Schedule, ctx: Optional[Context] = None) -> Schedule:
        schedule_id = require_id(schedule.id, "schedule ID")
        try:
            result = self.rpc.call('schedule.set', schedule.to_payload(), result_type=Any, ctx=ctx,
                                   schedule_id=schedule_id)
            self.rpc.validate_result(result, f"schedule update {schedule_id}")
            return self.get(schedule_id, ctx)
        except XOError as e:
            self.log.error(f"Failed to update schedule {schedule_id}: {e}")
            raise

    def delete(self, schedule_id, ctx: Optional[Context] = None):
        schedule_id = require_id(schedule_id, "schedule ID")
        try:
            result = self.rpc.call('schedule.delete', {'id': schedule_id}, result_type=Any, ctx=ctx,
                                   schedule_id=schedule_id)
            self.rpc.validate_result(result, f"schedule deletion {schedule_id}")
            self.log.info(f"Deleted schedule {schedule_id}")
        except XOError as e:
            self.log.error(f"Failed to delete schedule {schedule_id}: {e}")
            raise
