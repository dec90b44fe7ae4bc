"""Background tasks for long-running site operations."""

import asyncio
import logging
import uuid
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINISHED = 200


class TaskHandle:
    """A submitted operation. ``done`` and ``error`` can be polled, ``wait()`` awaited."""

    def __init__(self, task_id, name, task):
        self.id = task_id
        self.name = name
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def error(self):
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    @property
    def result(self):
        if not self.done or self._task.cancelled() or self._task.exception() is not None:
            return None
        return self._task.result()

    async def wait(self):
        """Wait for completion. Returns the result; re-raises the task's exception."""
        return await asyncio.shield(self._task)

    def to_dict(self) -> dict:
        if not self.done:
            state = "running"
        elif self.error is not None:
            state = "failed"
        else:
            state = "done"
        data = {"id": self.id, "name": self.name, "state": state}
        if self.error is not None:
            data["error"] = str(self.error)
        elif state == "done" and isinstance(self.result, (bool, str, int, float)):
            data["result"] = self.result
        return data


class TaskRunner:
    """Runs coroutines as asyncio tasks and keeps a reference until they finish.

    Handles stay queryable by id after completion so clients can poll the
    outcome. Only the ``max_finished`` most recently finished handles are
    kept; older ones are evicted. Exceptions are logged when a task ends.
    """

    def __init__(self, max_finished=DEFAULT_MAX_FINISHED):
        self.max_finished = max_finished
        self._handles: dict[str, TaskHandle] = {}
        self._running: set[asyncio.Task] = set()
        self._finished_ids: deque[str] = deque()

    def submit(self, name, coro) -> TaskHandle:
        task_id = uuid.uuid4().hex[:12]
        task = asyncio.create_task(coro, name=f"wpdock-{name}")
        self._running.add(task)
        task.add_done_callback(lambda t: self._finished(t, task_id, name))
        handle = TaskHandle(task_id, name, task)
        self._handles[task_id] = handle
        logger.debug(f"Submitted task {task_id} ({name})")
        return handle

    def _finished(self, task, task_id, name):
        self._running.discard(task)
        self._finished_ids.append(task_id)
        while len(self._finished_ids) > self.max_finished:
            self._handles.pop(self._finished_ids.popleft(), None)
        if task.cancelled():
            logger.warning(f"Task {name} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Task {name} failed: {exc}", exc_info=exc)

    def get(self, task_id):
        return self._handles.get(task_id)

    async def wait_all(self):
        """Wait for every running task. Exceptions stay on their handles."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
