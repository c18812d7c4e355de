"""Shared test helpers for taskmem tests."""

import itertools
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from taskmem.backends.interface import Backend, require_project
from taskmem.core.constants import (
    BREAKDOWN_STEPS,
    STATUS_NOTE_KEY,
    TARGET_COMPLEXITY_KEY,
    TaskPriority,
    TaskStatus,
)
from taskmem.core.errors import NotFoundError, UpstreamError
from taskmem.core.models import Memory, Project, Task, newest_first, pick_next_task

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeBackend(Backend):
    """In-memory backend with the same contracts as the real ones.

    Every created entity gets a timestamp one second after the previous one,
    so ordering is deterministic. Search similarity is the fraction of query
    words found in the memory content.
    """

    name = "fake"

    def __init__(self):
        self.projects: dict[str, Project] = {}
        self.memories: dict[str, Memory] = {}
        self.tasks: dict[str, Task] = {}
        self.marker: str | None = None
        self.marker_writes: list[str] = []
        self.released = 0
        self._ids = itertools.count(1)
        self._ticks = itertools.count()

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _now(self) -> datetime:
        return BASE_TIME + timedelta(seconds=next(self._ticks))

    def _project(self, project_id: str) -> Project:
        project = self.projects.get(require_project(project_id))
        if project is None:
            raise NotFoundError(f'Project with ID "{project_id}" not found.')
        return project

    def release(self):
        self.released += 1

    def validate(self):
        pass

    # -- projects --

    def create_project(self, name, description=None, metadata=None):
        if any(p.name == name for p in self.projects.values()):
            raise UpstreamError(f'A project named "{name}" already exists.')
        project = Project(
            id=self._next_id("proj"), name=name, description=description,
            metadata=dict(metadata or {}), created_at=self._now(),
        )
        self.projects[project.id] = project
        return project

    def list_projects(self):
        result = []
        for p in self.projects.values():
            p.memory_count = sum(1 for m in self.memories.values() if m.project_id == p.id)
            p.task_count = sum(1 for t in self.tasks.values() if t.project_id == p.id)
            result.append(p)
        return newest_first(result)

    def get_current_project_marker(self):
        return self.projects.get(self.marker) if self.marker else None

    def set_current_project_marker(self, project_id):
        self.marker = project_id
        self.marker_writes.append(project_id)

    # -- memories --

    def store_memory(self, project_id, content, memory_type, importance):
        project = self._project(project_id)
        memory = Memory(
            id=self._next_id("mem"), project_id=project.id, content=content,
            memory_type=memory_type, importance=importance, created_at=self._now(),
        )
        self.memories[memory.id] = memory
        return memory

    def search_memory(self, project_id, query, limit):
        project = self._project(project_id)
        words = query.lower().split()
        results = []
        for m in self.memories.values():
            if m.project_id != project.id:
                continue
            hits = sum(1 for w in words if w in m.content.lower())
            results.append(Memory(
                id=m.id, project_id=m.project_id, content=m.content,
                memory_type=m.memory_type, importance=m.importance,
                created_at=m.created_at, similarity=hits / len(words),
            ))
        results.sort(key=lambda m: m.similarity, reverse=True)
        return results[:limit]

    def list_memories(self, project_id, memory_type=None, start=None, end=None, limit=None):
        project = self._project(project_id)
        result = [
            m for m in self.memories.values()
            if m.project_id == project.id
            and (memory_type is None or m.memory_type == memory_type)
            and (start is None or m.created_at >= start)
            and (end is None or m.created_at <= end)
        ]
        result = newest_first(result)
        return result[:limit] if limit else result

    def update_memory_importance(self, memory_id, importance):
        memory = self.memories.get(memory_id)
        if memory is None:
            raise NotFoundError(f'Memory with ID "{memory_id}" not found.')
        memory.importance = importance
        return memory

    # -- tasks --

    def create_task(self, project_id, title, description=None, priority=TaskPriority.MEDIUM,
                    dependencies=None):
        project = self._project(project_id)
        task = Task(
            id=self._next_id("task"), project_id=project.id, title=title,
            description=description, priority=priority,
            dependencies=list(dependencies or []), created_at=self._now(),
        )
        self.tasks[task.id] = task
        return task

    def list_tasks(self, project_id, status=None, priority=None, assignee=None):
        project = self._project(project_id)
        return newest_first(
            t for t in self.tasks.values()
            if t.project_id == project.id
            and (status is None or t.status == status)
            and (priority is None or t.priority == priority)
            and (assignee is None or t.assignee == assignee)
        )

    def update_task_status(self, task_id, status, notes=None):
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f'Task with ID "{task_id}" not found.')
        task.status = status
        if notes:
            task.metadata[STATUS_NOTE_KEY] = notes
        return task

    def breakdown_task(self, project_id, task_id, target_complexity=None):
        parent = self.tasks.get(task_id)
        if parent is None:
            raise NotFoundError(f'Task with ID "{task_id}" not found.')
        children = []
        for prefix, description, inherit in BREAKDOWN_STEPS:
            child = Task(
                id=self._next_id("task"),
                project_id=parent.project_id,
                title=f"{prefix}: {parent.title}",
                description=description.format(title=parent.title),
                priority=parent.priority if inherit else TaskPriority.MEDIUM,
                status=TaskStatus.PENDING,
                dependencies=[parent.id],
                parent_id=parent.id,
                created_at=self._now(),
            )
            if target_complexity is not None:
                child.metadata[TARGET_COMPLEXITY_KEY] = target_complexity
            self.tasks[child.id] = child
            children.append(child)
        return children

    def suggest_next_task(self, project_id):
        project = self._project(project_id)
        return pick_next_task(t for t in self.tasks.values() if t.project_id == project.id)


def _mock_response(data):
    """Create a mock urllib response. ``data`` may be raw bytes or JSON-able."""
    body = data if isinstance(data, bytes) else json.dumps(data).encode()
    mock = MagicMock()
    mock.read.return_value = body
    mock.__enter__ = MagicMock(return_value=mock)
    mock.__exit__ = MagicMock(return_value=False)
    return mock
