import logging
from typing import Any, List, Optional
from uuid import UUID

from .. import codec
from ..context import Context
from ..errors import XOError, XOValidationError
from ..models import QueryOptions
from ..paths import PathBuilder, format_path, tag_path
from ..tasks import extract_task_id, is_task_url

logger = logging.getLogger(__name__)

NIL_UUID = str(UUID(int=0))


def require_id(value, what='ID'):
    if value is None or value == '' or str(value) == NIL_UUID:
        raise XOValidationError(f"{what} cannot be empty")
    return str(value)


def require_tag(tag):
    if not tag:
        raise XOValidationError("tag cannot be empty")
    return tag


def entry_id(entry: str) -> str:
    """Last path segment of a resource URL such as '/rest/v0/vms/<id>'."""
    return entry.rstrip('/').rsplit('/', 1)[-1]


class Service:
    """
    A service receives the capabilities its operations need: the REST transport always,
    the JSON-RPC session and the task tracker when it uses them.
    """

    def __init__(self, rest, rpc=None, tasks=None, log: Optional[logging.Logger] = None):
        self.rest = rest
        self.rpc = rpc
        self.tasks = tasks
        self.log = log or logging.getLogger(type(self).__module__)

    def _await_task(self, body, operation: str, ctx: Optional[Context] = None):
        """
        Wait for a task-handle body and raise if the task failed.

        :return: The terminal Task, or None when body is not a task handle
        """
        task, is_task = self.tasks.handle_task_response(body, True, ctx=ctx)
        if not is_task:
            return None
        return self.tasks.check(task, operation)

    def _run_task(self, body, wait: bool, operation: str, ctx: Optional[Context] = None) -> Optional[str]:
        """
        Resolve a mutation body through the task tracker.

        :return: The task id (after success when ``wait``), or None for a non-task body
        """
        if not is_task_url(body):
            return None
        if not wait:
            return extract_task_id(body)
        return self._await_task(body, operation, ctx).id


class ResourceService(Service):
    """
    Common REST operations for one resource collection.

    Subclasses set ``resource`` (the REST collection name) and ``model`` (the payload type).
    """
    resource = ''
    model: Any = None
    object_type = 'object'

    def _path(self, *segments) -> str:
        builder = PathBuilder().resource(self.resource)
        for segment in segments:
            builder.id_string(str(segment))
        return builder.build()

    def get_by_id(self, object_id, ctx: Optional[Context] = None):
        """
        Fetch one object.

        :param object_id: Object UUID
        :return: Model instance
        """
        object_id = require_id(object_id, f"{self.object_type} ID")
        try:
            return self.rest.get(format_path(self.resource, object_id), result_type=self.model, ctx=ctx)
        except XOError as e:
            self.log.error(f"Failed to get {self.object_type} {object_id}: {e}",
                           extra={'object_id': object_id, 'object_type': self.object_type})
            raise

    def list(self, limit=0, filter=None, options: Optional[QueryOptions] = None,
             ctx: Optional[Context] = None) -> List[Any]:
        """
        List objects.

        :param limit: Maximum number of results, 0 for the server default
        :param filter: Filter string, see xoclient.paths.build_filter
        :param options: Full query options, overrides limit and filter
        :return: List of model instances
        """
        options = options or QueryOptions(limit=limit, filter=filter or '')
        return self._list(self.resource, options, ctx)

    def _list(self, endpoint, options: QueryOptions, ctx: Optional[Context]) -> List[Any]:
        try:
            entries = self.rest.get(endpoint, options.to_params(), result_type=List[Any], ctx=ctx) or []
            # Without 'fields' the server answers with object URLs; resolve them one by one.
            items = [
                self.get_by_id(entry_id(entry), ctx=ctx) if isinstance(entry, str)
                else codec.decode(entry, self.model)
                for entry in entries
            ]
            self.log.debug(f"Retrieved {len(items)} {self.object_type}s from {endpoint}")
            return items
        except XOError as e:
            self.log.error(f"Failed to list {self.object_type}s: {e}")
            raise

    def add_tag(self, object_id, tag: str, ctx: Optional[Context] = None):
        object_id = require_id(object_id, f"{self.object_type} ID")
        require_tag(tag)
        try:
            self.rest.put(tag_path(self.resource, object_id, tag), result_type=Any, ctx=ctx)
            self.log.info(f"Added tag '{tag}' to {self.object_type} {object_id}")
        except XOError as e:
            self.log.error(f"Failed to add tag '{tag}' to {self.object_type} {object_id}: {e}")
            raise

    def remove_tag(self, object_id, tag: str, ctx: Optional[Context] = None):
        object_id = require_id(object_id, f"{self.object_type} ID")
        require_tag(tag)
        try:
            self.rest.delete(tag_path(self.resource, object_id, tag), result_type=Any, ctx=ctx)
            self.log.info(f"Removed tag '{tag}' from {self.object_type} {object_id}")
        except XOError as e:
            self.log.error(f"Failed to remove tag '{tag}' from {self.object_type} {object_id}: {e}")
            raise

    def _delete(self, object_id, ctx: Optional[Context] = None):
        object_id = require_id(object_id, f"{self.object_type} ID")
        try:
            # The server answers a plain "OK" which decodes as text.
            self.rest.delete(format_path(self.resource, object_id), result_type=Any, ctx=ctx)
            self.log.info(f"Deleted {self.object_type} {object_id}")
        except XOError as e:
            self.log.error(f"Failed to delete {self.object_type} {object_id}: {e}")
            raise
