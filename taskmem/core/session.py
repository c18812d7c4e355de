"""Session state: the current project for one protocol connection."""

from __future__ import annotations

import logging
import threading

from taskmem.backends.interface import Backend
from taskmem.core.errors import (
    NetworkError,
    NoProjectAvailable,
    NotFoundError,
    ParseError,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class Session:
    """Holds the current project id and resolves it lazily.

    Resolution order when nothing is held:
      1. the project the backend has marked current
      2. the most recently created project (which is then marked current)
      3. NoProjectAvailable

    Resolution is single-flight: concurrent callers wait on one lock and
    re-check before asking the backend again.
    """

    def __init__(self, backend: Backend):
        self.backend = backend
        self._current_project_id: str | None = None
        self._lock = threading.Lock()

    @property
    def current_project_id(self) -> str | None:
        return self._current_project_id

    def get_current(self) -> str:
        held = self._current_project_id
        if held:
            return held
        with self._lock:
            if self._current_project_id:
                return self._current_project_id
            return self._resolve()

    def set_current(self, project_id: str) -> None:
        """Switch this session to ``project_id`` and try to mark it current in the backend.

        The marker only seeds other sessions, so a failed write is logged
        and the local switch stands.
        """
        self._current_project_id = project_id
        try:
            self.backend.set_current_project_marker(project_id)
        except (UpstreamError, NetworkError, ParseError) as e:
            logger.warning("Could not mark project %s current in the backend: %s", project_id, e)
        logger.info("Current project set to %s", project_id)

    def _resolve(self) -> str:
        try:
            marked = self.backend.get_current_project_marker()
        except (NotFoundError, UpstreamError, ParseError) as e:
            logger.debug("No usable current-project marker: %s", e)
            marked = None
        if marked is not None:
            self._current_project_id = marked.id
            logger.info("Resumed current project %s (%s)", marked.name, marked.id)
            return marked.id

        projects = self.backend.list_projects()
        if not projects:
            raise NoProjectAvailable()

        newest = projects[0]
        self.set_current(newest.id)
        return newest.id
