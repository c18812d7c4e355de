"""Tool catalogue: parameter models and handlers for every exposed tool.

Each parameter model is the input contract shown to the host (its JSON
schema is published as-is), so field names use the host-facing camelCase
aliases. Handlers receive the Session and a validated model, and return the
rendered text. Errors are left to the dispatcher.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from taskmem.core import formatting
from taskmem.core.constants import (
    COMPLEXITY_MAX,
    COMPLEXITY_MIN,
    CONTEXT_RECENT_MEMORIES,
    IMPORTANCE_DEFAULT,
    IMPORTANCE_MAX,
    IMPORTANCE_MIN,
    LIST_MEMORIES_LIMIT,
    MAX_PROJECT_NAME,
    SEARCH_LIMIT_DEFAULT,
    SEARCH_LIMIT_MAX,
    TaskStatus,
)
from taskmem.core.dispatcher import ToolSpec
from taskmem.core.errors import ParseError
from taskmem.core.models import parse_timestamp
from taskmem.core.session import Session

logger = logging.getLogger(__name__)

StatusLiteral = Literal["pending", "in_progress", "completed", "cancelled"]
PriorityLiteral = Literal["low", "medium", "high"]


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


class ToolParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================
# Parameter models
# ============================================================

class StoreMemoryParams(ToolParams):
    content: NonBlankStr = Field(
        min_length=1,
        description=(
            "The content/information to store in memory. Can be facts, insights, code "
            "snippets, decisions, or any important information you want to remember "
            "for later use."
        ),
    )
    memory_type: Optional[str] = Field(
        None,
        alias="memoryType",
        description=(
            'Optional category/type of memory to help with organization. Examples: "code", '
            '"decision", "insight", "reference", "todo", "bug", "feature"'
        ),
    )
    importance: int = Field(
        IMPORTANCE_DEFAULT,
        ge=IMPORTANCE_MIN,
        le=IMPORTANCE_MAX,
        strict=True,
        description=(
            "Importance level from 1-10 where 10 is most critical. Higher importance "
            "memories are prioritized in search results. Default: 5"
        ),
    )


class SearchMemoryParams(ToolParams):
    query: NonBlankStr = Field(
        min_length=1,
        description=(
            "Natural language search query to find relevant memories. Use keywords, "
            'phrases, or questions like "code examples", "API decisions", or '
            '"how did we solve X?"'
        ),
    )
    limit: int = Field(
        SEARCH_LIMIT_DEFAULT,
        ge=1,
        le=SEARCH_LIMIT_MAX,
        strict=True,
        description="Maximum number of results to return (1-100). Default: 10.",
    )


class TimeRange(ToolParams):
    start: Optional[str] = Field(None, description="Start date-time (ISO 8601)")
    end: Optional[str] = Field(None, description="End date-time (ISO 8601)")

    @field_validator("start", "end")
    @classmethod
    def _iso_datetime(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            parse_timestamp(value)
        except ParseError:
            raise ValueError(f"not an ISO 8601 date-time: {value!r}") from None
        return value

    @model_validator(mode="after")
    def _ordered(self) -> TimeRange:
        if self.start and self.end and self.start_at > self.end_at:
            raise ValueError("start must not be after end")
        return self

    @property
    def start_at(self) -> datetime | None:
        return parse_timestamp(self.start)

    @property
    def end_at(self) -> datetime | None:
        return parse_timestamp(self.end)


class GetMemoriesParams(ToolParams):
    memory_type: Optional[str] = Field(
        None, alias="memoryType", description="Filter by memory type",
    )
    time_range: Optional[TimeRange] = Field(
        None, alias="timeRange", description="Time range filter",
    )


class UpdateMemoryImportanceParams(ToolParams):
    memory_id: str = Field(alias="memoryId", min_length=1, description="ID of the memory to update")
    importance: int = Field(
        ge=IMPORTANCE_MIN, le=IMPORTANCE_MAX, strict=True,
        description="New importance level (1-10)",
    )


class CreateProjectParams(ToolParams):
    name: NonBlankStr = Field(min_length=1, max_length=MAX_PROJECT_NAME, description="Project name")
    description: Optional[str] = Field(None, description="Project description")
    metadata: Optional[dict[str, Any]] = Field(
        None, description="Optional key/value metadata for the project",
    )


class SetCurrentProjectParams(ToolParams):
    project_id: str = Field(alias="projectId", min_length=1, description="Project ID to switch to")


class NoParams(ToolParams):
    pass


class ProjectContextParams(ToolParams):
    project_id: Optional[str] = Field(
        None, alias="projectId", description="Project ID (uses current if not provided)",
    )


class CreateTaskParams(ToolParams):
    title: NonBlankStr = Field(min_length=1, description="Task title")
    description: Optional[str] = Field(None, description="Task description (optional)")
    priority: PriorityLiteral = Field("medium", description="Task priority (optional)")
    dependencies: Optional[list[str]] = Field(
        None, description="Task IDs this depends on (optional)",
    )


class ListTasksParams(ToolParams):
    status: Optional[StatusLiteral] = Field(None, description="Filter by task status")
    priority: Optional[PriorityLiteral] = Field(None, description="Filter by priority")
    assignee: Optional[str] = Field(None, description="Filter by assignee")


class UpdateTaskStatusParams(ToolParams):
    task_id: str = Field(alias="taskId", min_length=1, description="Task ID")
    status: StatusLiteral = Field(description="New task status")
    notes: Optional[str] = Field(None, description="Optional notes about the update")


class SuggestNextTaskParams(ToolParams):
    context: Optional[str] = Field(None, description="Optional context for the suggestion")


class BreakDownTaskParams(ToolParams):
    task_id: str = Field(alias="taskId", min_length=1, description="Task ID to break down")
    target_complexity: Optional[int] = Field(
        None,
        alias="targetComplexity",
        ge=COMPLEXITY_MIN,
        le=COMPLEXITY_MAX,
        strict=True,
        description="Target complexity level 1-10 (optional)",
    )


# ============================================================
# Memory tools
# ============================================================

def store_memory(session: Session, params: StoreMemoryParams) -> str:
    project_id = session.get_current()
    memory = session.backend.store_memory(
        project_id, params.content.strip(), params.memory_type, params.importance,
    )
    return formatting.memory_stored(memory)


def search_memory(session: Session, params: SearchMemoryParams) -> str:
    project_id = session.get_current()
    results = session.backend.search_memory(project_id, params.query.strip(), params.limit)
    return formatting.render_json([m.to_dict() for m in results])


def get_memories(session: Session, params: GetMemoriesParams) -> str:
    project_id = session.get_current()
    time_range = params.time_range or TimeRange()
    memories = session.backend.list_memories(
        project_id,
        memory_type=params.memory_type,
        start=time_range.start_at,
        end=time_range.end_at,
        limit=LIST_MEMORIES_LIMIT,
    )
    return formatting.render_json([m.to_dict() for m in memories])


def update_memory_importance(session: Session, params: UpdateMemoryImportanceParams) -> str:
    memory = session.backend.update_memory_importance(params.memory_id, params.importance)
    return formatting.memory_importance_updated(memory)


# ============================================================
# Project tools
# ============================================================

def create_project(session: Session, params: CreateProjectParams) -> str:
    project = session.backend.create_project(
        params.name.strip(), params.description, params.metadata,
    )
    session.set_current(project.id)
    return formatting.project_created(project)


def set_current_project(session: Session, params: SetCurrentProjectParams) -> str:
    project = session.backend.get_project(params.project_id)
    session.set_current(project.id)
    return formatting.project_switched(project)


def _project_stats(session: Session, project) -> dict:
    memories = project.memory_count
    if memories is None:
        memories = len(session.backend.list_memories(project.id))
    tasks = project.task_count
    if tasks is None:
        tasks = len(session.backend.list_tasks(project.id))
    return {"memories": memories, "tasks": tasks}


def get_current_project(session: Session, params: NoParams) -> str:
    project = session.backend.get_project(session.get_current())
    return formatting.render_json({
        "project": project.to_dict(),
        "stats": _project_stats(session, project),
    })


def list_projects(session: Session, params: NoParams) -> str:
    return formatting.render_json([p.to_dict() for p in session.backend.list_projects()])


def get_project_context(session: Session, params: ProjectContextParams) -> str:
    project_id = params.project_id or session.get_current()
    backend = session.backend
    project = backend.get_project(project_id)
    memories = backend.list_memories(project_id, limit=CONTEXT_RECENT_MEMORIES)
    tasks = backend.list_tasks(project_id)

    summary = {"total": len(tasks)}
    for status in TaskStatus.ALL:
        summary[status] = sum(1 for t in tasks if t.status == status)

    return formatting.render_json({
        "project": project.to_dict(),
        "recentMemories": [m.to_dict() for m in memories[:CONTEXT_RECENT_MEMORIES]],
        "taskSummary": summary,
        "activeTasks": [t.to_dict() for t in tasks if t.status == TaskStatus.IN_PROGRESS],
    })


# ============================================================
# Task tools
# ============================================================

def create_task(session: Session, params: CreateTaskParams) -> str:
    project_id = session.get_current()
    task = session.backend.create_task(
        project_id,
        params.title.strip(),
        description=params.description,
        priority=params.priority,
        dependencies=params.dependencies,
    )
    return formatting.task_created(task)


def list_tasks(session: Session, params: ListTasksParams) -> str:
    project_id = session.get_current()
    tasks = session.backend.list_tasks(
        project_id, status=params.status, priority=params.priority, assignee=params.assignee,
    )
    return formatting.render_json([t.to_dict() for t in tasks])


def update_task_status(session: Session, params: UpdateTaskStatusParams) -> str:
    task = session.backend.update_task_status(params.task_id, params.status, params.notes)
    return formatting.task_status_updated(task)


def suggest_next_task(session: Session, params: SuggestNextTaskParams) -> str:
    project_id = session.get_current()
    if params.context:
        logger.debug("Suggestion context: %s", params.context)
    return formatting.task_suggestion(session.backend.suggest_next_task(project_id))


def break_down_task(session: Session, params: BreakDownTaskParams) -> str:
    project_id = session.get_current()
    subtasks = session.backend.breakdown_task(
        project_id, params.task_id, params.target_complexity,
    )
    return formatting.task_breakdown(params.task_id, subtasks)


TOOLS: list[ToolSpec] = [
    ToolSpec(
        "store_memory",
        "Store important information in persistent memory for later retrieval. Use this to "
        "remember key facts, decisions, code patterns, or any information that might be "
        "useful in future conversations.",
        StoreMemoryParams, store_memory,
    ),
    ToolSpec(
        "search_memory",
        "Search through stored memories using semantic search. Finds memories related to "
        "your query even if they don't contain exact keywords.",
        SearchMemoryParams, search_memory, read_only=True,
    ),
    ToolSpec(
        "get_memories",
        "Retrieve memories with optional filtering by type and date range. Returns memories "
        "in reverse chronological order (newest first).",
        GetMemoriesParams, get_memories, read_only=True,
    ),
    ToolSpec(
        "update_memory_importance",
        "Update the importance level of an existing memory. Use this to prioritize critical "
        "information or de-prioritize outdated content.",
        UpdateMemoryImportanceParams, update_memory_importance,
    ),
    ToolSpec(
        "create_project",
        "Create a new project to organize memories and tasks. Projects help separate "
        "different work contexts and make it easier to find relevant information. The new "
        "project becomes the current project.",
        CreateProjectParams, create_project,
    ),
    ToolSpec(
        "set_current_project",
        "Switch the active project context. All memory and task operations will use this "
        "project until changed.",
        SetCurrentProjectParams, set_current_project,
    ),
    ToolSpec(
        "get_current_project",
        "Get information about the currently active project, including stats on memories "
        "and tasks.",
        NoParams, get_current_project, read_only=True,
    ),
    ToolSpec(
        "list_projects",
        "List all available projects with their basic information and statistics.",
        NoParams, list_projects, read_only=True,
    ),
    ToolSpec(
        "get_project_context",
        "Get comprehensive project overview including recent memories, active tasks, and "
        "project statistics.",
        ProjectContextParams, get_project_context, read_only=True,
    ),
    ToolSpec(
        "create_task",
        "Create a new task within the current project. Tasks help organize work and track "
        "progress on specific objectives.",
        CreateTaskParams, create_task,
    ),
    ToolSpec(
        "list_tasks",
        "List tasks in the current project with optional filtering by status, priority, or "
        "assignee.",
        ListTasksParams, list_tasks, read_only=True,
    ),
    ToolSpec(
        "update_task_status",
        "Update the status of an existing task. Use this to track progress and mark tasks "
        "as completed.",
        UpdateTaskStatusParams, update_task_status,
    ),
    ToolSpec(
        "suggest_next_task",
        "Suggest the next task to work on: the highest-priority pending or in-progress task "
        "in the current project, oldest first on ties.",
        SuggestNextTaskParams, suggest_next_task, read_only=True,
    ),
    ToolSpec(
        "break_down_task",
        "Break down a complex task into smaller, manageable subtasks (research, implement, "
        "test). Helps with project planning and execution.",
        BreakDownTaskParams, break_down_task,
    ),
]
