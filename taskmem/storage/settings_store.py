"""Small key/value table (``app_settings``) inside the taskmem store.

Only the direct backend's current-project marker lives here today.
Writes commit immediately. Reads leave the connection for
``Database.release_if_held`` to return.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskmem.storage.database import Database

logger = logging.getLogger(__name__)

_UPSERT = """
    INSERT INTO app_settings (key, value, updated_at) VALUES (%s, %s, NOW())
    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
"""


def get(db: Database, key: str) -> str | None:
    row = db.execute_one("SELECT value FROM app_settings WHERE key = %s", (key,))
    return None if row is None else row["value"]


def save(db: Database, key: str, value: str) -> None:
    db.execute(_UPSERT, (key, value))
    db.commit()
    logger.debug("app_settings[%s] updated", key)


def delete(db: Database, key: str) -> bool:
    """Drop ``key``. True when a row was actually removed."""
    removed = db.execute_one("DELETE FROM app_settings WHERE key = %s RETURNING key", (key,))
    db.commit()
    if removed is None:
        return False
    logger.info("app_settings[%s] removed", key)
    return True
