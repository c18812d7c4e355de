"""Entity model: Project, Memory, Task.

Both backends hand back native records (psycopg dict rows, remote JSON
objects). ``from_record`` normalizes either shape: snake_case or camelCase
keys, UUID objects, ISO timestamps with or without a trailing ``Z``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from taskmem.core.constants import (
    IMPORTANCE_DEFAULT,
    TaskPriority,
    TaskStatus,
)
from taskmem.core.errors import ParseError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a datetime or ISO-8601 string into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ParseError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _pick(record: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present key, so snake_case and camelCase both work."""
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _ident(value: Any) -> str | None:
    # psycopg hands back uuid.UUID for uuid columns
    return str(value) if value is not None else None


def _require_mapping(record: Any, kind: str) -> dict:
    if not isinstance(record, dict):
        raise ParseError(f"Expected a {kind} object, got {type(record).__name__}")
    if _pick(record, "id") is None:
        raise ParseError(f"{kind} record is missing an id")
    return record


@dataclass
class Project:
    id: str
    name: str
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    memory_count: int | None = None
    task_count: int | None = None

    @classmethod
    def from_record(cls, record: Any) -> Project:
        record = _require_mapping(record, "Project")
        return cls(
            id=_ident(record["id"]),
            name=_pick(record, "name", default=""),
            description=_pick(record, "description"),
            metadata=dict(_pick(record, "metadata", default={}) or {}),
            created_at=parse_timestamp(_pick(record, "created_at", "createdAt")),
            memory_count=_pick(record, "memory_count", "memoryCount"),
            task_count=_pick(record, "task_count", "taskCount"),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
        }
        if self.memory_count is not None:
            data["memory_count"] = self.memory_count
        if self.task_count is not None:
            data["task_count"] = self.task_count
        return data


@dataclass
class Memory:
    id: str
    project_id: str | None
    content: str
    memory_type: str | None = None
    importance: int = IMPORTANCE_DEFAULT
    created_at: datetime | None = None
    similarity: float | None = None  # set on search results only

    @classmethod
    def from_record(cls, record: Any) -> Memory:
        record = _require_mapping(record, "Memory")
        similarity = _pick(record, "similarity")
        return cls(
            id=_ident(record["id"]),
            project_id=_ident(_pick(record, "project_id", "projectId")),
            content=_pick(record, "content", default=""),
            memory_type=_pick(record, "memory_type", "memoryType", "type"),
            importance=int(_pick(record, "importance", default=IMPORTANCE_DEFAULT)),
            created_at=parse_timestamp(_pick(record, "created_at", "createdAt")),
            similarity=float(similarity) if similarity is not None else None,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "content": self.content,
            "memory_type": self.memory_type,
            "importance": self.importance,
            "created_at": _iso(self.created_at),
        }
        if self.similarity is not None:
            data["similarity"] = round(self.similarity, 4)
        return data


@dataclass
class Task:
    id: str
    project_id: str | None
    title: str
    description: str | None = None
    status: str = TaskStatus.PENDING
    priority: str = TaskPriority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    parent_id: str | None = None
    assignee: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: Any) -> Task:
        record = _require_mapping(record, "Task")
        return cls(
            id=_ident(record["id"]),
            project_id=_ident(_pick(record, "project_id", "projectId")),
            title=_pick(record, "title", default=""),
            description=_pick(record, "description"),
            status=_pick(record, "status", default=TaskStatus.PENDING),
            priority=_pick(record, "priority", default=TaskPriority.MEDIUM),
            dependencies=[_ident(d) for d in _pick(record, "dependencies", default=[]) or []],
            parent_id=_ident(_pick(record, "parent_id", "parentId")),
            assignee=_pick(record, "assignee"),
            metadata=dict(_pick(record, "metadata", default={}) or {}),
            created_at=parse_timestamp(_pick(record, "created_at", "createdAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "parent_id": self.parent_id,
            "assignee": self.assignee,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
        }


def newest_first(items: Iterable[Project | Memory | Task]) -> list:
    """Sort entities by created_at descending; undated entries sink to the end."""
    return sorted(items, key=lambda e: e.created_at or _EPOCH, reverse=True)


def pick_next_task(tasks: Iterable[Task]) -> Task | None:
    """Highest-priority open task, ties broken by earliest creation.

    Only pending and in_progress tasks are eligible.
    """
    candidates = [t for t in tasks if t.status in TaskStatus.OPEN]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda t: (
            -TaskPriority.RANK.get(t.priority, TaskPriority.RANK[TaskPriority.MEDIUM]),
            t.created_at or _EPOCH,
        ),
    )
