"""Backend ABC: one operation set over the direct store and the remote API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from taskmem.core.errors import NoCurrentProjectError, NotFoundError
from taskmem.core.models import Memory, Project, Task


class Backend(ABC):
    """Abstract base for fulfilment paths.

    Implementations return entities from ``taskmem.core.models`` and raise
    only errors from ``taskmem.core.errors``.
    """

    name: str = "backend"

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Acquire connections and start background workers."""

    def close(self) -> None:
        """Release connections and stop background workers."""

    def release(self) -> None:
        """Per-call cleanup, invoked by the dispatcher after every tool call."""

    @abstractmethod
    def validate(self) -> None:
        """Check credentials/connectivity at startup. Raises on failure."""

    # -- projects --------------------------------------------------------

    @abstractmethod
    def create_project(
        self, name: str, description: str | None = None, metadata: dict[str, Any] | None = None,
    ) -> Project:
        """Create a project. Duplicate names raise UpstreamError."""

    @abstractmethod
    def list_projects(self) -> list[Project]:
        """All projects, most recently created first."""

    def get_project(self, project_id: str) -> Project:
        """Look up one project by id."""
        for project in self.list_projects():
            if project.id == project_id:
                return project
        raise NotFoundError(
            f'Project with ID "{project_id}" not found. Use list_projects to see available projects.'
        )

    @abstractmethod
    def get_current_project_marker(self) -> Project | None:
        """The project previously marked current, if any."""

    @abstractmethod
    def set_current_project_marker(self, project_id: str) -> None:
        """Record project_id as current for out-of-process readers."""

    # -- memories --------------------------------------------------------

    @abstractmethod
    def store_memory(
        self, project_id: str, content: str, memory_type: str | None, importance: int,
    ) -> Memory:
        """Embed and persist a memory."""

    @abstractmethod
    def search_memory(self, project_id: str, query: str, limit: int) -> list[Memory]:
        """Top ``limit`` memories by descending similarity."""

    @abstractmethod
    def list_memories(
        self,
        project_id: str,
        memory_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Memory]:
        """Memories newest first, optionally filtered by type and creation range."""

    @abstractmethod
    def update_memory_importance(self, memory_id: str, importance: int) -> Memory:
        """Set a memory's importance in place."""

    # -- tasks -----------------------------------------------------------

    @abstractmethod
    def create_task(
        self,
        project_id: str,
        title: str,
        description: str | None = None,
        priority: str = "medium",
        dependencies: list[str] | None = None,
    ) -> Task:
        """Create a pending task."""

    @abstractmethod
    def list_tasks(
        self,
        project_id: str,
        status: str | None = None,
        priority: str | None = None,
        assignee: str | None = None,
    ) -> list[Task]:
        """Tasks newest first, optionally filtered."""

    @abstractmethod
    def update_task_status(self, task_id: str, status: str, notes: str | None = None) -> Task:
        """Set a task's status; notes are kept in metadata."""

    @abstractmethod
    def breakdown_task(
        self, project_id: str, task_id: str, target_complexity: int | None = None,
    ) -> list[Task]:
        """Create the research/implement/test subtasks of a task."""

    @abstractmethod
    def suggest_next_task(self, project_id: str) -> Task | None:
        """Highest-priority open task, earliest first on ties."""


def require_project(project_id: str | None) -> str:
    """Guard for project-scoped operations."""
    if not project_id:
        raise NoCurrentProjectError(
            "Project ID is required for this operation. "
            "Use create_project or set_current_project first."
        )
    return project_id
