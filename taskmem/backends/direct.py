"""Direct backend: PostgreSQL + pgvector store and an embedding service."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg
import psycopg.errors

from taskmem.backends.interface import Backend, require_project
from taskmem.core.constants import (
    BREAKDOWN_STEPS,
    CURRENT_PROJECT_KEY,
    STATUS_NOTE_KEY,
    TARGET_COMPLEXITY_KEY,
    TaskPriority,
    TaskStatus,
)
from taskmem.core.errors import NetworkError, NotFoundError, UpstreamError
from taskmem.core.models import Memory, Project, Task
from taskmem.embedding.interface import EmbeddingInterface
from taskmem.storage import settings_store
from taskmem.storage.database import Database

logger = logging.getLogger(__name__)

PROJECT_SELECT = """
    SELECT p.id, p.name, p.description, p.metadata, p.created_at,
           (SELECT COUNT(*) FROM memories m WHERE m.project_id = p.id) AS memory_count,
           (SELECT COUNT(*) FROM tasks t WHERE t.project_id = p.id) AS task_count
    FROM projects p
"""
MEMORY_COLUMNS = "id, project_id, content, memory_type, importance, created_at"
TASK_COLUMNS = (
    "id, project_id, title, description, status, priority, dependencies, "
    "parent_id, assignee, metadata, created_at"
)
PRIORITY_RANK_SQL = "CASE priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END"


class DirectBackend(Backend):
    """Talks to the store with SQL and to the embedding service for vectors."""

    name = "direct"

    def __init__(self, db: Database, embedding: EmbeddingInterface):
        self.db = db
        self.embedding = embedding

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        self.db.connect()
        self.db.run_migrations()
        self.db.reconcile_vector_dimensions(self.embedding.dimensions)

    def close(self) -> None:
        self.db.close()

    def release(self) -> None:
        self.db.release_if_held()

    def validate(self) -> None:
        with self._store_errors("validating connection"):
            self.db.execute_one("SELECT 1 AS ok")
            self.db.rollback()
        logger.info(
            "Direct store ready: %s:%s/%s (embedding dimensions=%d)",
            self.db.config.host, self.db.config.port, self.db.config.name,
            self.embedding.dimensions,
        )

    # -- error translation -----------------------------------------------

    def _rollback_quietly(self) -> None:
        try:
            self.db.rollback()
        except (psycopg.Error, RuntimeError):
            logger.warning("Rollback failed", exc_info=True)

    @contextmanager
    def _store_errors(
        self, action: str, not_found: str | None = None, duplicate: str | None = None,
    ) -> Iterator[None]:
        """Translate psycopg failures into the taskmem error taxonomy."""
        try:
            yield
        except psycopg.errors.UniqueViolation as e:
            self._rollback_quietly()
            raise UpstreamError(duplicate or f"Error {action}: {e}") from e
        except (psycopg.errors.InvalidTextRepresentation, psycopg.errors.ForeignKeyViolation) as e:
            # Malformed UUIDs and dangling project references both mean "no such entity"
            self._rollback_quietly()
            raise NotFoundError(not_found or f"Error {action}: referenced entity not found") from e
        except psycopg.OperationalError as e:
            self._rollback_quietly()
            raise NetworkError(f"Store unreachable while {action}: {e}") from e
        except psycopg.Error as e:
            self._rollback_quietly()
            raise UpstreamError(f"Error {action}: {e}") from e

    # -- projects --------------------------------------------------------

    def create_project(self, name, description=None, metadata=None) -> Project:
        with self._store_errors(
            "creating project",
            duplicate=f'A project named "{name}" already exists. Please choose a different name.',
        ):
            row = self.db.execute_one(
                """
                INSERT INTO projects (name, description, metadata)
                VALUES (%s, %s, %s::jsonb)
                RETURNING id, name, description, metadata, created_at
                """,
                (name, description, json.dumps(metadata or {})),
            )
            self.db.commit()
        logger.info("Created project %s (id=%s)", name, row["id"])
        return Project.from_record({**row, "memory_count": 0, "task_count": 0})

    def list_projects(self) -> list[Project]:
        with self._store_errors("listing projects"):
            rows = self.db.execute(PROJECT_SELECT + " ORDER BY p.created_at DESC")
        return [Project.from_record(r) for r in rows]

    def get_project(self, project_id: str) -> Project:
        not_found = (
            f'Project with ID "{project_id}" not found. '
            "Use list_projects to see available projects."
        )
        with self._store_errors("loading project", not_found=not_found):
            row = self.db.execute_one(PROJECT_SELECT + " WHERE p.id = %s", (project_id,))
        if row is None:
            raise NotFoundError(not_found)
        return Project.from_record(row)

    def get_current_project_marker(self) -> Project | None:
        with self._store_errors("reading current project"):
            project_id = settings_store.get(self.db, CURRENT_PROJECT_KEY)
        if not project_id:
            return None
        try:
            return self.get_project(project_id)
        except NotFoundError:
            logger.info("Current project %s no longer exists; clearing marker", project_id)
            with self._store_errors("clearing current project"):
                settings_store.delete(self.db, CURRENT_PROJECT_KEY)
            return None

    def set_current_project_marker(self, project_id: str) -> None:
        with self._store_errors("saving current project"):
            settings_store.save(self.db, CURRENT_PROJECT_KEY, project_id)

    # -- memories --------------------------------------------------------

    def store_memory(self, project_id, content, memory_type, importance) -> Memory:
        project_id = require_project(project_id)
        content = content.strip()
        vector = self.embedding.embed(content)

        with self._store_errors(
            "storing memory",
            not_found=f'Project with ID "{project_id}" not found.',
        ):
            row = self.db.execute_one(
                f"""
                INSERT INTO memories (project_id, content, memory_type, importance, embedding)
                VALUES (%s, %s, %s, %s, %s::vector)
                RETURNING {MEMORY_COLUMNS}
                """,
                (project_id, content, memory_type, importance, str(vector)),
            )
            self.db.commit()
        return Memory.from_record(row)

    def search_memory(self, project_id, query, limit) -> list[Memory]:
        project_id = require_project(project_id)
        vector = self.embedding.embed(query.strip())

        with self._store_errors("searching memories"):
            rows = self.db.execute(
                "SELECT * FROM search_memories(%s::vector, %s, %s::uuid)",
                (str(vector), limit, project_id),
            )

        results = [Memory.from_record(r) for r in rows]
        for memory in results:
            memory.similarity = min(1.0, max(0.0, memory.similarity or 0.0))
        results.sort(key=lambda m: m.similarity, reverse=True)
        return results[:limit]

    def list_memories(self, project_id, memory_type=None, start=None, end=None,
                      limit=None) -> list[Memory]:
        project_id = require_project(project_id)
        where = ["project_id = %s"]
        params: list = [project_id]
        if memory_type:
            where.append("memory_type = %s")
            params.append(memory_type)
        if start:
            where.append("created_at >= %s")
            params.append(start)
        if end:
            where.append("created_at <= %s")
            params.append(end)

        query = (
            f"SELECT {MEMORY_COLUMNS} FROM memories WHERE {' AND '.join(where)} "
            "ORDER BY created_at DESC"
        )
        if limit:
            query += " LIMIT %s"
            params.append(limit)

        with self._store_errors("retrieving memories"):
            rows = self.db.execute(query, tuple(params))
        return [Memory.from_record(r) for r in rows]

    def update_memory_importance(self, memory_id, importance) -> Memory:
        not_found = (
            f'Memory with ID "{memory_id}" not found. Use get_memories to find valid memory IDs.'
        )
        with self._store_errors("updating memory importance", not_found=not_found):
            row = self.db.execute_one(
                f"""
                UPDATE memories SET importance = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING {MEMORY_COLUMNS}
                """,
                (importance, memory_id),
            )
            if row is None:
                self.db.rollback()
                raise NotFoundError(not_found)
            self.db.commit()
        return Memory.from_record(row)

    # -- tasks -----------------------------------------------------------

    def create_task(self, project_id, title, description=None, priority=TaskPriority.MEDIUM,
                    dependencies=None) -> Task:
        project_id = require_project(project_id)
        with self._store_errors(
            "creating task",
            not_found=f'Project with ID "{project_id}" not found.',
        ):
            row = self.db.execute_one(
                f"""
                INSERT INTO tasks (project_id, title, description, priority, dependencies, status)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {TASK_COLUMNS}
                """,
                (project_id, title, description, priority, list(dependencies or []),
                 TaskStatus.PENDING),
            )
            self.db.commit()
        logger.info("Created task %s for project %s", row["id"], project_id)
        return Task.from_record(row)

    def list_tasks(self, project_id, status=None, priority=None, assignee=None) -> list[Task]:
        project_id = require_project(project_id)
        where = ["project_id = %s"]
        params: list = [project_id]
        for column, value in (("status", status), ("priority", priority), ("assignee", assignee)):
            if value:
                where.append(f"{column} = %s")
                params.append(value)

        with self._store_errors("listing tasks"):
            rows = self.db.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE {' AND '.join(where)} "
                "ORDER BY created_at DESC",
                tuple(params),
            )
        return [Task.from_record(r) for r in rows]

    def update_task_status(self, task_id, status, notes=None) -> Task:
        not_found = f'Task with ID "{task_id}" not found. Use list_tasks to find valid task IDs.'
        with self._store_errors("updating task status", not_found=not_found):
            if notes:
                row = self.db.execute_one(
                    f"""
                    UPDATE tasks
                    SET status = %s,
                        metadata = metadata || jsonb_build_object(%s::text, %s::text),
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING {TASK_COLUMNS}
                    """,
                    (status, STATUS_NOTE_KEY, notes, task_id),
                )
            else:
                row = self.db.execute_one(
                    f"""
                    UPDATE tasks SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {TASK_COLUMNS}
                    """,
                    (status, task_id),
                )
            if row is None:
                self.db.rollback()
                raise NotFoundError(not_found)
            self.db.commit()
        return Task.from_record(row)

    def breakdown_task(self, project_id, task_id, target_complexity=None) -> list[Task]:
        not_found = f'Task with ID "{task_id}" not found. Use list_tasks to find valid task IDs.'
        with self._store_errors("breaking down task", not_found=not_found):
            parent_row = self.db.execute_one(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = %s", (task_id,),
            )
            if parent_row is None:
                self.db.rollback()
                raise NotFoundError(not_found)
            parent = Task.from_record(parent_row)

            metadata = {}
            if target_complexity is not None:
                metadata[TARGET_COMPLEXITY_KEY] = target_complexity

            rows = []
            for prefix, description, inherit_priority in BREAKDOWN_STEPS:
                rows.append(self.db.execute_one(
                    f"""
                    INSERT INTO tasks
                        (project_id, title, description, priority, status,
                         dependencies, parent_id, metadata)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb)
                    RETURNING {TASK_COLUMNS}
                    """,
                    (
                        parent.project_id,
                        f"{prefix}: {parent.title}",
                        description.format(title=parent.title),
                        parent.priority if inherit_priority else TaskPriority.MEDIUM,
                        TaskStatus.PENDING,
                        [parent.id],
                        parent.id,
                        json.dumps(metadata),
                    ),
                ))
            self.db.commit()

        logger.info("Broke down task %s into %d subtasks", parent.id, len(rows))
        return [Task.from_record(r) for r in rows]

    def suggest_next_task(self, project_id) -> Task | None:
        project_id = require_project(project_id)
        with self._store_errors("suggesting next task"):
            row = self.db.execute_one(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE project_id = %s AND status = ANY(%s)
                ORDER BY {PRIORITY_RANK_SQL} DESC, created_at ASC
                LIMIT 1
                """,
                (project_id, list(TaskStatus.OPEN)),
            )
        return Task.from_record(row) if row else None
