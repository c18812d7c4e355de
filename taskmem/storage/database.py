"""PostgreSQL access for the direct backend.

One psycopg_pool.ConnectionPool per process. Tool calls run on worker
threads, and each thread borrows at most one connection at a time:

  - the first query on a thread checks a connection out
  - commit() or rollback() ends the transaction and hands it back
  - release_if_held() hands back whatever a read-only call left open

The dispatcher calls release_if_held() (through Backend.release) after
every tool call, so a pool of a few connections is enough.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import psycopg
from psycopg.pq import TransactionStatus
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from taskmem.config import DatabaseConfig

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
EMBEDDING_INDEX = "idx_memories_embedding"

POOL_MIN_SIZE = 1
POOL_MAX_SIZE = 4

_OPEN_TRANSACTION = (TransactionStatus.INTRANS, TransactionStatus.INERROR)


class Database:
    """Connection pool plus the per-thread borrowed connection."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: ConnectionPool | None = None
        self._borrowed = threading.local()

    # -- pool lifecycle --------------------------------------------------

    def connect(self) -> None:
        pool = ConnectionPool(
            self.config.dsn,
            min_size=POOL_MIN_SIZE,
            max_size=POOL_MAX_SIZE,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=True,
        )
        pool.wait()
        self._pool = pool
        logger.info(
            "Store pool open: %s:%s/%s (%d-%d connections)",
            self.config.host, self.config.port, self.config.name,
            POOL_MIN_SIZE, POOL_MAX_SIZE,
        )

    def close(self) -> None:
        self._give_back()
        if self._pool is not None:
            self._pool.close()
            self._pool = None
            logger.info("Store pool closed")

    # -- per-thread connection -------------------------------------------

    @property
    def conn(self) -> psycopg.Connection:
        """This thread's connection, borrowed from the pool on first use."""
        held = getattr(self._borrowed, "conn", None)
        if held is not None and not held.closed:
            if held.info.transaction_status == TransactionStatus.INERROR:
                # A previous call died mid-transaction on this thread
                logger.warning("Discarding failed transaction left on borrowed connection")
                held.rollback()
            return held

        if self._pool is None:
            raise RuntimeError("Database pool is not open; call connect() first")
        self._borrowed.conn = self._pool.getconn()
        return self._borrowed.conn

    def _give_back(self) -> None:
        held = getattr(self._borrowed, "conn", None)
        self._borrowed.conn = None
        if held is None or self._pool is None:
            return
        try:
            self._pool.putconn(held)
        except psycopg.Error:
            logger.warning("Could not return connection to pool", exc_info=True)

    def release_if_held(self) -> None:
        """Roll back anything left open on this thread and return the connection."""
        held = getattr(self._borrowed, "conn", None)
        if held is None:
            return
        if not held.closed and held.info.transaction_status in _OPEN_TRANSACTION:
            try:
                held.rollback()
            except psycopg.Error:
                logger.warning("Rollback failed while releasing connection", exc_info=True)
        self._give_back()

    # -- queries ---------------------------------------------------------

    def _run(self, query: str, params, fetch: str) -> list[dict] | dict | None:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return [] if fetch == "all" else None
            return cur.fetchall() if fetch == "all" else cur.fetchone()

    def execute(self, query: str, params: tuple | list | None = None) -> list[dict]:
        """Run a statement and return every row (empty for statements without results)."""
        return self._run(query, params, "all")

    def execute_one(self, query: str, params: tuple | list | None = None) -> dict | None:
        """Run a statement and return its first row, or None."""
        return self._run(query, params, "one")

    def commit(self) -> None:
        self.conn.commit()
        self._give_back()

    def rollback(self) -> None:
        self.conn.rollback()
        self._give_back()

    # -- schema ----------------------------------------------------------

    def run_migrations(self) -> None:
        """Apply every migrations/*.sql file not yet recorded, in filename order."""
        self.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                filename VARCHAR(255) PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        self.commit()

        done = {row["filename"] for row in self.execute("SELECT filename FROM _migrations")}
        pending = [p for p in sorted(MIGRATIONS_DIR.glob("*.sql")) if p.name not in done]
        self.rollback()

        for path in pending:
            logger.info("Applying migration %s", path.name)
            try:
                self.execute(path.read_text())
                self.execute("INSERT INTO _migrations (filename) VALUES (%s)", (path.name,))
                self.commit()
            except psycopg.Error:
                self.rollback()
                logger.error("Migration %s failed", path.name)
                raise

        logger.info("Schema up to date (%d migrations applied now)", len(pending))

    def reconcile_vector_dimensions(self, dimensions: int) -> None:
        """Match memories.embedding to the configured embedding size.

        A size change invalidates every stored vector: they are cleared and
        the HNSW index is rebuilt. Memories keep their text and can be
        re-embedded later.
        """
        row = self.execute_one("""
            SELECT atttypmod AS dims FROM pg_attribute
            WHERE attrelid = 'memories'::regclass AND attname = 'embedding'
        """)
        current = row["dims"] if row else None
        if current is None or current == dimensions:
            self.rollback()
            if current is None:
                logger.warning("memories.embedding not found; skipping dimension check")
            return

        logger.warning(
            "Embedding size changed from %d to %d; clearing stored vectors", current, dimensions,
        )
        self.execute(f"DROP INDEX IF EXISTS {EMBEDDING_INDEX}")
        self.execute("UPDATE memories SET embedding = NULL")
        self.execute(f"ALTER TABLE memories ALTER COLUMN embedding TYPE vector({int(dimensions)})")
        self.execute(
            f"CREATE INDEX {EMBEDDING_INDEX} ON memories USING hnsw (embedding vector_cosine_ops)"
        )
        self.commit()
