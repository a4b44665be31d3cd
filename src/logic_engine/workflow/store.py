"""Persistence hook for workflow instances and tasks.

The engine only talks to the :class:`WorkflowStore` protocol. Two
implementations ship here: an in-memory store (the default) and a JSON file
store that keeps long-running workflows restartable and inspectable.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .models import Task, TaskStatus, WorkflowInstance

logger = logging.getLogger(__name__)


class WorkflowStore(Protocol):
    def save_instance(self, instance: WorkflowInstance) -> None: ...

    def load_instance(self, instance_id: str) -> WorkflowInstance | None: ...

    def save_task(self, task: Task) -> None: ...

    def load_task(self, task_id: str) -> Task | None: ...

    def list_tasks(
        self,
        *,
        instance_id: str | None = None,
        status: TaskStatus | None = None,
    ) -> list[Task]: ...


def _matches(task: Task, instance_id: str | None, status: TaskStatus | None) -> bool:
    if instance_id is not None and task.instance_id != instance_id:
        return False
    if status is not None and task.status is not status:
        return False
    return True


class InMemoryWorkflowStore:
    """Keeps copies of every record so callers never alias stored state."""

    def __init__(self) -> None:
        self._instances: dict[str, WorkflowInstance] = {}
        self._tasks: dict[str, Task] = {}

    def save_instance(self, instance: WorkflowInstance) -> None:
        self._instances[instance.id] = instance.model_copy(deep=True)

    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        stored = self._instances.get(instance_id)
        return stored.model_copy(deep=True) if stored is not None else None

    def save_task(self, task: Task) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    def load_task(self, task_id: str) -> Task | None:
        stored = self._tasks.get(task_id)
        return stored.model_copy(deep=True) if stored is not None else None

    def list_tasks(
        self,
        *,
        instance_id: str | None = None,
        status: TaskStatus | None = None,
    ) -> list[Task]:
        return [
            t.model_copy(deep=True)
            for t in self._tasks.values()
            if _matches(t, instance_id, status)
        ]


@dataclass
class JsonWorkflowStore:
    """Persist instances and tasks to a single JSON file.

    The whole file is rewritten on each save. A missing or unreadable file is
    treated as empty.
    """

    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, dict[str, Any]]:
        empty: dict[str, dict[str, Any]] = {"instances": {}, "tasks": {}}
        if not self.path.exists():
            return empty
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt workflow state file", extra={"path": str(self.path)})
            return empty
        if not isinstance(raw, dict):
            return empty
        instances = raw.get("instances")
        tasks = raw.get("tasks")
        return {
            "instances": instances if isinstance(instances, dict) else {},
            "tasks": tasks if isinstance(tasks, dict) else {},
        }

    def _save_unlocked(self, data: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    def save_instance(self, instance: WorkflowInstance) -> None:
        with self._lock:
            data = self._load_unlocked()
            data["instances"][instance.id] = instance.to_json()
            self._save_unlocked(data)

    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        with self._lock:
            raw = self._load_unlocked()["instances"].get(instance_id)
        if raw is None:
            return None
        try:
            return WorkflowInstance.model_validate(raw)
        except ValidationError:
            logger.warning(
                "Ignoring invalid workflow instance record", extra={"instance_id": instance_id}
            )
            return None

    def save_task(self, task: Task) -> None:
        with self._lock:
            data = self._load_unlocked()
            data["tasks"][task.id] = task.to_json()
            self._save_unlocked(data)

    def load_task(self, task_id: str) -> Task | None:
        with self._lock:
            raw = self._load_unlocked()["tasks"].get(task_id)
        if raw is None:
            return None
        try:
            return Task.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring invalid task record", extra={"task_id": task_id})
            return None

    def list_tasks(
        self,
        *,
        instance_id: str | None = None,
        status: TaskStatus | None = None,
    ) -> list[Task]:
        with self._lock:
            raw_tasks = list(self._load_unlocked()["tasks"].values())
        tasks: list[Task] = []
        for raw in raw_tasks:
            try:
                task = Task.model_validate(raw)
            except ValidationError:
                continue
            if _matches(task, instance_id, status):
                tasks.append(task)
        return tasks
