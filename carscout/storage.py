"""
Object storage sink backed by the local SQLite database.
"""
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .database import db_connect, db_get_blob, db_init, db_insert_executions, db_put_blob
from .models import ExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    key: str
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


class SqliteObjectStorage:
    """Stores JSON objects by key. Failures are reported, never raised."""

    def __init__(self, path: str):
        self.path = path
        self.conn = db_connect(path)
        db_init(self.conn)

    async def store(self, obj: Any, key: str) -> StoreResult:
        try:
            db_put_blob(self.conn, key, obj)
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"Error storing object {key}: {e}")
            return StoreResult(key=key, error_code=f"StorageError: {e}")
        logger.info(f"Object stored successfully: {key}")
        return StoreResult(key=key)

    async def fetch(self, key: str) -> Optional[Any]:
        try:
            return db_get_blob(self.conn, key)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Error fetching object {key}: {e}")
            return None

    def record_executions(self, results: Iterable[ExecutionResult]) -> int:
        count = db_insert_executions(self.conn, results)
        logger.info(f">>> Recorded {count} execution rows in {self.path}")
        return count

    def close(self):
        self.conn.close()
