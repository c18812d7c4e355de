"""Centralized constants and enums for taskmem core modules."""

from __future__ import annotations


# ============================================================
# Memory
# ============================================================

IMPORTANCE_MIN = 1
IMPORTANCE_MAX = 10
IMPORTANCE_DEFAULT = 5

SEARCH_LIMIT_DEFAULT = 10
SEARCH_LIMIT_MAX = 100
LIST_MEMORIES_LIMIT = 100
CONTEXT_RECENT_MEMORIES = 5

MEMORY_TYPE_FALLBACK = "general"  # display label for untyped memories

# ============================================================
# Projects
# ============================================================

MAX_PROJECT_NAME = 100

# Settings key under which the direct store persists the current project.
CURRENT_PROJECT_KEY = "current_project_id"


# ============================================================
# Tasks
# ============================================================

class TaskStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (PENDING, IN_PROGRESS, COMPLETED, CANCELLED)
    OPEN = (PENDING, IN_PROGRESS)


class TaskPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)
    RANK = {LOW: 1, MEDIUM: 2, HIGH: 3}


STATUS_NOTE_KEY = "statusNote"
TARGET_COMPLEXITY_KEY = "targetComplexity"
COMPLEXITY_MIN = 1
COMPLEXITY_MAX = 10

# (title prefix, description template, inherit parent priority?)
BREAKDOWN_STEPS = (
    ("Research", "Research and gather requirements for {title}", True),
    ("Implement", "Core implementation of {title}", True),
    ("Test", "Test and validate {title}", False),
)
