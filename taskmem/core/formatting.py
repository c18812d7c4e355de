"""Text renderings for tool results.

Mutation tools answer with a short human-readable summary; listing and
inspection tools answer with indented JSON.
"""

from __future__ import annotations

import json
from typing import Any

from taskmem.core.constants import IMPORTANCE_MAX, MEMORY_TYPE_FALLBACK, STATUS_NOTE_KEY
from taskmem.core.models import Memory, Project, Task


def render_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def memory_stored(memory: Memory) -> str:
    return (
        "Memory stored successfully\n"
        f"ID: {memory.id}\n"
        f"Type: {memory.memory_type or MEMORY_TYPE_FALLBACK}\n"
        f"Importance: {memory.importance}/{IMPORTANCE_MAX}"
    )


def memory_importance_updated(memory: Memory) -> str:
    return f"Memory importance updated successfully: {memory.id} (importance: {memory.importance})"


def project_created(project: Project) -> str:
    lines = [
        "Project created successfully and set as current",
        f"ID: {project.id}",
        f"Name: {project.name}",
    ]
    if project.description:
        lines.append(f"Description: {project.description}")
    return "\n".join(lines)


def project_switched(project: Project) -> str:
    return f"Current project set to: {project.name} ({project.id})"


def task_created(task: Task) -> str:
    lines = [
        "Task created successfully",
        f"ID: {task.id}",
        f"Title: {task.title}",
        f"Priority: {task.priority}",
        f"Status: {task.status}",
    ]
    if task.dependencies:
        lines.append(f"Depends on: {', '.join(task.dependencies)}")
    return "\n".join(lines)


def task_status_updated(task: Task) -> str:
    text = f"Task status updated successfully: {task.id} (status: {task.status})"
    note = task.metadata.get(STATUS_NOTE_KEY)
    if note:
        text += f"\nNotes: {note}"
    return text


def task_suggestion(task: Task | None) -> str:
    if task is None:
        return "No pending tasks found. Use create_task to add work to this project."
    lines = [
        "Suggested next task:",
        f"ID: {task.id}",
        f"Title: {task.title}",
        f"Priority: {task.priority}",
        f"Status: {task.status}",
    ]
    if task.description:
        lines.append(f"Description: {task.description}")
    return "\n".join(lines)


def task_breakdown(parent_id: str, subtasks: list[Task]) -> str:
    lines = [f"Task {parent_id} broken down into {len(subtasks)} subtasks:"]
    for i, task in enumerate(subtasks, 1):
        lines.append(f"{i}. {task.title} (ID: {task.id}, priority: {task.priority})")
    return "\n".join(lines)
