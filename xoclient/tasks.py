import logging
import re
import time
from typing import Any, List, Optional, Tuple

from .context import Context, ensure, with_timeout
from .errors import (
    DeadlineExceededError,
    OperationCancelledError,
    TaskFailedError,
    TaskTimeoutError,
    XOAPIError,
    XODecodeError,
    XOTransportError,
    XOValidationError,
)
from .models import AbortResponse, QueryOptions, Task, TaskStatus
from .paths import PathBuilder

logger = logging.getLogger(__name__)

TASK_PATH_PREFIX = '/rest/v0/tasks/'
TASK_URL_REGEX = re.compile(r'^/rest/v0/tasks/([^/]+)$')

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_TASK_TIMEOUT = 300.0


def is_task_url(body) -> bool:
    """True iff body is exactly a task handle path."""
    return isinstance(body, str) and TASK_URL_REGEX.match(body) is not None


def extract_task_id(body: str) -> str:
    match = TASK_URL_REGEX.match(body)
    if match is None:
        raise XOValidationError(f"not a task URL: {body!r}")
    return match.group(1)


def clean_task_path(value: str) -> str:
    """Strip the task path prefix; anything without it is taken as a bare id."""
    if value.startswith(TASK_PATH_PREFIX):
        return value[len(TASK_PATH_PREFIX):]
    return value


class TaskService:
    """
    Tracks XO tasks over REST.

    Mutations often answer with a task handle instead of a result. ``handle_task_response``
    recognizes such bodies and ``wait`` polls the task until it reaches success or failure.
    """

    def __init__(self, rest, poll_interval=DEFAULT_POLL_INTERVAL, default_timeout=DEFAULT_TASK_TIMEOUT, log=None):
        """
        :param rest: RestClient
        :param poll_interval: Seconds between polls
        :param default_timeout: Bound for ``wait`` when the context has no deadline
        """
        self.rest = rest
        self.poll_interval = poll_interval
        self.default_timeout = default_timeout
        self.log = log or logger

    def get(self, task_id: str, ctx: Optional[Context] = None) -> Task:
        """
        Fetch the current state of a task.

        :param task_id: Task id or task URL
        :return: Task
        """
        if not task_id:
            raise XOValidationError("task ID cannot be empty")
        task_id = clean_task_path(task_id)
        path = PathBuilder().resource('tasks').id_string(task_id).build()
        task = self.rest.get(path, result_type=Task, ctx=ctx)
        if not task.id:
            task.id = task_id
        return task

    def list(self, limit=0, filter=None, options: Optional[QueryOptions] = None,
             ctx: Optional[Context] = None) -> List[Task]:
        """
        List tasks.

        :param limit: Maximum number of tasks, 0 for the server default
        :param filter: Filter string such as 'status:failure'
        :return: List of Task
        """
        options = options or QueryOptions(limit=limit, filter=filter or '')
        try:
            entries = self.rest.get('tasks', options.to_params(), result_type=List[Any], ctx=ctx)
            tasks = [self.get(e, ctx=ctx) if isinstance(e, str) else Task.model_validate(e) for e in entries]
            self.log.debug(f"Retrieved {len(tasks)} tasks")
            return tasks
        except XOAPIError as e:
            self.log.error(f"Failed to list tasks: {e}")
            raise

    def abort(self, task_id: str, ctx: Optional[Context] = None):
        """
        Request cancellation of a running task. The task is not guaranteed to end in failure.

        :param task_id: Task id or task URL
        """
        if not task_id:
            raise XOValidationError("task ID cannot be empty")
        task_id = clean_task_path(task_id)
        path = PathBuilder().resource('tasks').id_string(task_id).action('abort').build()
        response = self.rest.post(path, result_type=AbortResponse, ctx=ctx)
        if response is not None and not response.success:
            raise XOAPIError(f"failed to abort task {task_id}")
        self.log.info(f"Abort requested for task {task_id}", extra={'task_id': task_id})

    def wait(self, task_id: str, ctx: Optional[Context] = None) -> Task:
        """
        Poll a task until it reaches a terminal state.

        Errors while fetching the task are logged and retried on the next poll. The wait is
        bounded by the context deadline, or by ``default_timeout`` when there is none.

        :param task_id: Task id or task URL
        :param ctx: Cancellation context
        :return: Task in status success or failure
        """
        if not task_id:
            raise XOValidationError("task ID cannot be empty")
        task_id = clean_task_path(task_id)
        ctx = ensure(ctx)
        if ctx.deadline is None:
            with with_timeout(ctx, self.default_timeout) as bounded:
                return self._poll(task_id, bounded)
        return self._poll(task_id, ctx)

    def wait_with_timeout(self, task_id: str, timeout: float, ctx: Optional[Context] = None) -> Task:
        with with_timeout(ctx, timeout) as bounded:
            return self._poll(clean_task_path(task_id), bounded)

    def _poll(self, task_id: str, ctx: Context) -> Task:
        start = time.monotonic()
        attempt = 0
        while True:
            err = ctx.error()
            if err is not None:
                raise self._wait_error(task_id, err, start)

            attempt += 1
            try:
                task = self.get(task_id, ctx=ctx)
            except (DeadlineExceededError, OperationCancelledError):
                continue
            except (XOTransportError, XOAPIError, XODecodeError) as e:
                self.log.warning(f"Failed to get task {task_id}, retrying: {e}",
                                 extra={'task_id': task_id, 'attempt': attempt})
                ctx.sleep(self.poll_interval)
                continue

            self.log.debug(f"Task {task_id} status: {task.status.value}",
                           extra={'task_id': task_id, 'attempt': attempt})
            if task.is_terminal:
                if task.status == TaskStatus.SUCCESS:
                    self.log.info(f"Task {task_id} completed successfully", extra={'task_id': task_id})
                else:
                    self.log.error(f"Task {task_id} failed: {task.failure_message}", extra={'task_id': task_id})
                return task
            ctx.sleep(self.poll_interval)

    @staticmethod
    def _wait_error(task_id, err, start):
        if isinstance(err, DeadlineExceededError):
            elapsed = time.monotonic() - start
            return TaskTimeoutError(f"task {task_id} did not complete within {elapsed:.1f}s: {err}")
        return err

    def handle_task_response(self, body, wait: bool, ctx: Optional[Context] = None) -> Tuple[Optional[Task], bool]:
        """
        Dispatch a mutation body that may be a task handle.

        :param body: Decoded response body
        :param wait: Block until the task is terminal
        :return: (task, True) for a task handle, (None, False) otherwise
        """
        if not is_task_url(body):
            return None, False
        task_id = extract_task_id(body)
        self.log.debug(f"Response is task {task_id}", extra={'task_id': task_id})
        if wait:
            return self.wait(task_id, ctx=ctx), True
        return self.get(task_id, ctx=ctx), True

    @staticmethod
    def check(task: Task, operation: str) -> Task:
        """Raise TaskFailedError if the task ended in failure."""
        if task.status == TaskStatus.FAILURE:
            raise TaskFailedError(f"{operation} failed: {task.failure_message}", task)
        return task
