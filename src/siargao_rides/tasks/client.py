"""Worker task dispatch, deduplicated by task_id.

TASKS_BACKEND picks where tasks go:
- inline (default): recorded in memory only, for tests and single-process runs
- http: POSTed to the worker service (APP_ROLE=worker)
"""

import os
from dataclasses import asdict, dataclass
from datetime import datetime

TASKS_BACKEND = os.environ.get("TASKS_BACKEND", "inline")
_BACKENDS = ("inline", "http")


@dataclass(frozen=True)
class TaskRequest:
    task_id: str
    url_path: str
    payload: dict
    correlation_id: str | None = None
    schedule_time: datetime | None = None


class TasksClient:
    """Dispatches each task_id at most once per client.

    Replayed allocations and repeated payment webhooks reuse their task
    ids, so they never fan out a second notification.
    """

    def __init__(self, backend: str | None = None) -> None:
        self.backend = backend or TASKS_BACKEND
        self._seen: set[str] = set()
        self._recorded: list[TaskRequest] = []

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Hand a task to the backend. Payloads carry ids only, never contact data.

        Returns False for an already-dispatched task_id or a failed delivery.
        Raises ValueError for an unknown TASKS_BACKEND.
        """
        if self.backend not in _BACKENDS:
            raise ValueError(f"Unknown TASKS_BACKEND: {self.backend}")
        if task_id in self._seen:
            return False

        task = TaskRequest(task_id, url_path, payload, correlation_id, schedule_time)
        if self.backend == "inline":
            self._recorded.append(task)
            self._seen.add(task_id)
            return True

        from siargao_rides.tasks import http_backend

        accepted = http_backend.enqueue_http(
            task.task_id, task.url_path, task.payload, task.correlation_id, task.schedule_time
        )
        # failed deliveries stay retryable
        if accepted:
            self._seen.add(task_id)
        return accepted

    def was_executed(self, task_id: str) -> bool:
        return task_id in self._seen

    def get_scheduled_tasks(self) -> list[dict]:
        return [asdict(task) for task in self._recorded]

    def clear(self) -> None:
        self._seen.clear()
        self._recorded.clear()
