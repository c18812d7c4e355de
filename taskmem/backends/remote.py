"""Remote backend: the hosted taskmem API over authenticated HTTP.

No SDK dependency: urllib with JSON bodies and a bearer credential.
Every successful call is followed by a fire-and-forget usage event.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from typing import Any

from taskmem.backends.interface import Backend, require_project
from taskmem.config import AnalyticsConfig, RemoteConfig
from taskmem.core.analytics import UsageEvent, UsageTracker
from taskmem.core.constants import STATUS_NOTE_KEY
from taskmem.core.errors import (
    NetworkError,
    NotFoundError,
    ParseError,
    UpstreamError,
)
from taskmem.core.models import Memory, Project, Task, newest_first, pick_next_task

logger = logging.getLogger(__name__)

USAGE_ENDPOINT = "/usage/track"


def _unwrap_list(data: Any, key: str) -> list:
    """Accept either a bare list or ``{key: [...]}``."""
    if isinstance(data, dict):
        data = data.get(key, data.get("data"))
    if data is None:
        return []
    if not isinstance(data, list):
        raise ParseError(f"Expected a list of {key}, got {type(data).__name__}")
    return data


def _unwrap_one(data: Any, key: str) -> Any:
    """Accept either a bare object or ``{key: {...}}``."""
    if isinstance(data, dict) and key in data and (data[key] is None or isinstance(data[key], dict)):
        return data[key]
    return data


class RemoteBackend(Backend):
    """Client for the hosted API."""

    name = "remote"

    def __init__(self, config: RemoteConfig, analytics: AnalyticsConfig | None = None):
        self._api_key = config.api_key
        self._base_url = config.api_url.rstrip("/")
        self._timeout = config.timeout
        analytics = analytics or AnalyticsConfig()
        self.tracker: UsageTracker | None = None
        if analytics.enabled:
            self.tracker = UsageTracker(
                self._send_usage,
                queue_max=analytics.queue_max,
                flush_interval=analytics.flush_interval,
            )

    # -- transport -------------------------------------------------------

    def _build_request(self, method: str, endpoint: str, body: Any = None,
                       params: dict | None = None) -> urllib.request.Request:
        url = f"{self._base_url}{endpoint}"
        if params:
            query = {k: v for k, v in params.items() if v is not None}
            if query:
                url = f"{url}?{urllib.parse.urlencode(query)}"
        return urllib.request.Request(
            url,
            data=json.dumps(body).encode() if body is not None else None,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            method=method,
        )

    def _open(self, req: urllib.request.Request) -> bytes:
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            raise self._http_error(e) from e
        except urllib.error.URLError as e:
            raise NetworkError(f"Network error: {e.reason}") from e
        except (TimeoutError, ConnectionError) as e:
            raise NetworkError(f"Network error: {e}") from e

    @staticmethod
    def _http_error(e: urllib.error.HTTPError) -> Exception:
        """Prefer the body's ``message`` field, fall back to the status line."""
        message = f"API request failed: {e.code} {e.reason}"
        try:
            payload = json.loads(e.read() or b"null")
            if isinstance(payload, dict) and payload.get("message"):
                message = str(payload["message"])
        except (ValueError, OSError, AttributeError):
            pass  # unparseable body: keep the status line
        if e.code == 404:
            return NotFoundError(message)
        return UpstreamError(message, status=e.code)

    def request(self, method: str, endpoint: str, body: Any = None,
                params: dict | None = None) -> Any:
        """Issue one API call and return the decoded JSON body."""
        raw = self._open(self._build_request(method, endpoint, body, params))

        data = None
        if raw and raw.strip():
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise ParseError(f"API returned invalid JSON: {raw[:200]!r}") from e

        if self.tracker:
            self.tracker.track(UsageEvent(endpoint=endpoint, method=method))
        return data

    def _send_usage(self, event: UsageEvent) -> None:
        # Bypasses request() so tracking never tracks itself
        self._open(self._build_request("POST", USAGE_ENDPOINT, event.to_payload()))

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self.tracker:
            self.tracker.start()

    def close(self) -> None:
        if self.tracker:
            self.tracker.stop()

    def validate(self) -> None:
        projects = self.list_projects()
        logger.info("Connected to %s (%d projects)", self._base_url, len(projects))

    # -- projects --------------------------------------------------------

    def create_project(self, name, description=None, metadata=None) -> Project:
        data = self.request("POST", "/projects", {
            "name": name,
            "description": description,
            "metadata": metadata or {},
        })
        return Project.from_record(_unwrap_one(data, "project"))

    def list_projects(self) -> list[Project]:
        data = self.request("GET", "/projects")
        return newest_first(Project.from_record(r) for r in _unwrap_list(data, "projects"))

    def get_current_project_marker(self) -> Project | None:
        try:
            data = self.request("GET", "/projects/current")
        except NotFoundError:
            return None
        record = _unwrap_one(data, "project")
        if not record:
            return None
        return Project.from_record(record)

    def set_current_project_marker(self, project_id: str) -> None:
        self.request("PUT", "/projects/current", {"projectId": project_id})

    # -- memories --------------------------------------------------------

    def store_memory(self, project_id, content, memory_type, importance) -> Memory:
        project_id = require_project(project_id)
        data = self.request("POST", f"/projects/{project_id}/memories", {
            "content": content,
            "memoryType": memory_type,
            "importance": importance,
        })
        memory = Memory.from_record(_unwrap_one(data, "memory"))
        memory.project_id = memory.project_id or project_id
        return memory

    def search_memory(self, project_id, query, limit) -> list[Memory]:
        project_id = require_project(project_id)
        data = self.request("POST", f"/projects/{project_id}/memories/search", {
            "query": query,
            "limit": limit,
        })
        results = [Memory.from_record(r) for r in _unwrap_list(data, "memories")]
        for memory in results:
            memory.similarity = min(1.0, max(0.0, memory.similarity or 0.0))
        results.sort(key=lambda m: m.similarity, reverse=True)
        return results[:limit]

    def list_memories(self, project_id, memory_type=None, start=None, end=None,
                      limit=None) -> list[Memory]:
        project_id = require_project(project_id)
        data = self.request("GET", f"/projects/{project_id}/memories", params={
            "limit": limit,
            "memoryType": memory_type,
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        })
        memories = [Memory.from_record(r) for r in _unwrap_list(data, "memories")]
        memories = [m for m in memories if _matches(m, memory_type, start, end)]
        memories = newest_first(memories)
        return memories[:limit] if limit else memories

    def update_memory_importance(self, memory_id, importance) -> Memory:
        data = self.request("PUT", f"/memories/{memory_id}", {"importance": importance})
        return Memory.from_record(_unwrap_one(data, "memory"))

    # -- tasks -----------------------------------------------------------

    def create_task(self, project_id, title, description=None, priority="medium",
                    dependencies=None) -> Task:
        project_id = require_project(project_id)
        data = self.request("POST", f"/projects/{project_id}/tasks", {
            "title": title,
            "description": description,
            "priority": priority,
            "dependencies": dependencies or [],
        })
        task = Task.from_record(_unwrap_one(data, "task"))
        task.project_id = task.project_id or project_id
        return task

    def list_tasks(self, project_id, status=None, priority=None, assignee=None) -> list[Task]:
        project_id = require_project(project_id)
        data = self.request("GET", f"/projects/{project_id}/tasks", params={
            "status": status,
            "priority": priority,
            "assignee": assignee,
        })
        tasks = [Task.from_record(r) for r in _unwrap_list(data, "tasks")]
        tasks = [
            t for t in tasks
            if (status is None or t.status == status)
            and (priority is None or t.priority == priority)
            and (assignee is None or t.assignee == assignee)
        ]
        return newest_first(tasks)

    def update_task_status(self, task_id, status, notes=None) -> Task:
        body: dict[str, Any] = {"status": status}
        if notes:
            body["notes"] = notes
        data = self.request("PUT", f"/tasks/{task_id}", body)
        task = Task.from_record(_unwrap_one(data, "task"))
        if notes:
            task.metadata.setdefault(STATUS_NOTE_KEY, notes)
        return task

    def breakdown_task(self, project_id, task_id, target_complexity=None) -> list[Task]:
        project_id = require_project(project_id)
        body = {"targetComplexity": target_complexity} if target_complexity is not None else None
        data = self.request("POST", f"/tasks/{task_id}/breakdown", body)
        if isinstance(data, dict) and "subtasks" not in data:
            data = data.get("tasks", data)
        subtasks = [Task.from_record(r) for r in _unwrap_list(data, "subtasks")]
        for subtask in subtasks:
            subtask.parent_id = subtask.parent_id or task_id
            subtask.project_id = subtask.project_id or project_id
            if not subtask.dependencies:
                subtask.dependencies = [task_id]
        return subtasks

    def suggest_next_task(self, project_id) -> Task | None:
        project_id = require_project(project_id)
        data = self.request("POST", "/tasks/suggest", {"projectId": project_id})
        if isinstance(data, dict) and "id" not in data:
            data = data.get("task", data.get("suggestion"))
        suggested = Task.from_record(data) if data else None

        # The service pick competes with the listed tasks under the local ordering rule
        candidates = {t.id: t for t in self.list_tasks(project_id)}
        if suggested is not None:
            candidates.setdefault(suggested.id, suggested)
        choice = pick_next_task(candidates.values())
        if suggested is not None and (choice is None or choice.id != suggested.id):
            logger.debug("Replacing service suggestion %s with %s", suggested.id,
                         choice.id if choice else None)
        return choice


def _matches(memory: Memory, memory_type: str | None,
             start: datetime | None, end: datetime | None) -> bool:
    if memory_type is not None and memory.memory_type != memory_type:
        return False
    if memory.created_at is not None:
        if start is not None and memory.created_at < start:
            return False
        if end is not None and memory.created_at > end:
            return False
    return True
