"""Error taxonomy shared by the dispatcher, session and backends.

Backends translate their native failures (psycopg errors, HTTP statuses,
socket errors) into these types at their boundary. The dispatcher renders
any of them into the tool response envelope.
"""

from __future__ import annotations


class TaskmemError(Exception):
    """Base class for all errors rendered back to the host."""


class ConfigError(TaskmemError):
    """Raised at startup when required configuration is missing or invalid."""


class ValidationError(TaskmemError):
    """Raised when tool arguments fail validation, before any backend call."""


class NoCurrentProjectError(TaskmemError):
    """Raised when a project-scoped operation has no project to act on."""


class NoProjectAvailable(NoCurrentProjectError):
    """Raised when resolution finds no project to adopt as current."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "No project available. Please create a project first using create_project."
        )


class NotFoundError(TaskmemError):
    """Raised when a referenced project, memory or task does not exist."""


class UpstreamError(TaskmemError):
    """Raised when the store or remote service rejects an operation."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class NetworkError(TaskmemError):
    """Raised when the backend cannot be reached at all."""


class ParseError(TaskmemError):
    """Raised when a backend response cannot be interpreted."""
