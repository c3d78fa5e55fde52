from typing import Any, Callable, List, Optional

from ..context import Context
from ..errors import XOError, XOValidationError
from ..models import VDI, QueryOptions, Task, VDIFormat
from ..paths import PathBuilder
from .base import ResourceService, require_id


class VDIService(ResourceService):
    resource = 'vdis'
    model = VDI
    object_type = 'VDI'

    def delete(self, vdi_id, ctx: Optional[Context] = None):
        self._delete(vdi_id, ctx)

    def migrate(self, vdi_id, sr_id, wait: bool = False, ctx: Optional[Context] = None):
        """
        Move a VDI to another storage repository.

        :param vdi_id: VDI UUID
        :param sr_id: Target SR UUID
        :param wait: Wait for the migration task to finish
        :return: Task id
        """
        vdi_id = require_id(vdi_id, "VDI ID")
        sr_id = require_id(sr_id, "SR ID")
        path = PathBuilder().resource(self.resource).id_string(vdi_id).actions_group().action('migrate').build()
        try:
            body = self.rest.post(path, {'srId': sr_id}, result_type=Any, ctx=ctx)
            task_id = self._run_task(body, wait, 'VDI migration', ctx)
            self.log.info(f"VDI {vdi_id} migration to SR {sr_id} {'completed' if wait else 'initiated'}, task {task_id}")
            return task_id
        except XOError as e:
            self.log.error(f"Failed to migrate VDI {vdi_id} to SR {sr_id}: {e}")
            raise

    def get_tasks(self, vdi_id, limit=0, filter=None, ctx: Optional[Context] = None) -> List[Task]:
        """
        List the tasks that touched a VDI.

        :param vdi_id: VDI UUID
        :return: List of Task
        """
        vdi_id = require_id(vdi_id, "VDI ID")
        path = self._path(vdi_id, 'tasks')
        params = QueryOptions(limit=limit, filter=filter or '').to_params()
        try:
            entries = self.rest.get(path, params, result_type=List[Any], ctx=ctx) or []
            return [self.tasks.get(e, ctx=ctx) if isinstance(e, str) else Task.model_validate(e) for e in entries]
        except XOError as e:
            self.log.error(f"Failed to get tasks of VDI {vdi_id}: {e}")
            raise

    def _content_path(self, vdi_id, fmt):
        try:
            fmt = VDIFormat(fmt)
        except ValueError:
            raise XOValidationError(f"unsupported VDI format {fmt!r}, expected 'raw' or 'vhd'") from None
        return f"{self.resource}/{vdi_id}.{fmt.value}"

    def export(self, vdi_id, fmt, handler: Callable[[Any], Any], ctx: Optional[Context] = None):
        """
        Stream a VDI's content to ``handler``.

        :param vdi_id: VDI UUID
        :param fmt: 'raw' or 'vhd'
        :param handler: Called with the raw response stream; its return value is returned
        """
        vdi_id = require_id(vdi_id, "VDI ID")
        path = self._content_path(vdi_id, fmt)
        try:
            resp = self.rest.download(path, ctx=ctx)
        except XOError as e:
            self.log.error(f"Failed to export VDI {vdi_id}: {e}")
            raise
        try:
            return handler(resp.raw)
        finally:
            resp.close()

    def import_content(self, vdi_id, fmt, content, size: int, ctx: Optional[Context] = None):
        """
        Replace a VDI's content.

        :param vdi_id: VDI UUID
        :param fmt: 'raw' or 'vhd'
        :param content: Bytes or a readable file object
        :param size: Content length in bytes
        """
        vdi_id = require_id(vdi_id, "VDI ID")
        path = self._content_path(vdi_id, fmt)
        try:
            self.rest.upload(path, content, size, ctx=ctx)
            self.log.info(f"Imported {size} bytes into VDI {vdi_id}")
        except XOError as e:
            self.log.error(f"Failed to import into VDI {vdi_id}: {e}")
            raise
