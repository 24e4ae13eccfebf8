"""
SQLite persistence for stored result blobs and execution rows.
"""
import json
import os
import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from .models import ExecutionResult
from .utils import now_iso


DDL_BLOBS = """
CREATE TABLE IF NOT EXISTS result_blobs (
  key TEXT PRIMARY KEY,
  body TEXT NOT NULL,
  size INTEGER,
  created_at TEXT
);
"""

DDL_EXECUTIONS = """
CREATE TABLE IF NOT EXISTS executions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  execution_id INTEGER,
  market_id INTEGER,
  script TEXT,
  success INTEGER,
  started_at TEXT,
  ended_at TEXT,
  execution_status TEXT,
  execution_message TEXT,
  total_vehicles INTEGER,
  skipped_vehicles INTEGER,
  valid_vehicles INTEGER,
  results_link TEXT,
  recorded_at TEXT
);
"""

DDL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_executions_execution ON executions(execution_id);",
    "CREATE INDEX IF NOT EXISTS idx_executions_started ON executions(started_at);",
]


def db_connect(path: str) -> sqlite3.Connection:
    """Create database connection with optimized settings."""
    if path != ":memory:":
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def db_init(conn: sqlite3.Connection):
    """Initialize database schema with tables and indexes."""
    conn.execute(DDL_BLOBS)
    conn.execute(DDL_EXECUTIONS)
    for ddl in DDL_INDEXES:
        conn.execute(ddl)
    conn.commit()


def db_put_blob(conn: sqlite3.Connection, key: str, obj: Any):
    """Store a JSON-serializable object under ``key``, replacing any previous body."""
    body = json.dumps(obj, ensure_ascii=False)
    conn.execute(
        "INSERT OR REPLACE INTO result_blobs (key, body, size, created_at) VALUES (?, ?, ?, ?)",
        (key, body, len(body), now_iso()),
    )
    conn.commit()


def db_get_blob(conn: sqlite3.Connection, key: str) -> Optional[Any]:
    cur = conn.execute("SELECT body FROM result_blobs WHERE key = ?", (key,))
    row = cur.fetchone()
    if not row:
        return None
    return json.loads(row[0])


def db_insert_executions(conn: sqlite3.Connection, results: Iterable[ExecutionResult]) -> int:
    """Append execution rows; returns how many were written."""
    recorded_at = now_iso()
    rows = [
        (
            r.execution_id, r.market_id, r.script, int(bool(r.success)), r.started_at, r.ended_at,
            r.execution_status.value, r.execution_message, r.total_vehicles, r.skipped_vehicles,
            r.valid_vehicles, r.results_link, recorded_at,
        )
        for r in results
    ]
    conn.executemany("""
    INSERT INTO executions (
      execution_id, market_id, script, success, started_at, ended_at, execution_status,
      execution_message, total_vehicles, skipped_vehicles, valid_vehicles, results_link, recorded_at
    ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
    """, rows)
    conn.commit()
    return len(rows)


def db_list_executions(conn: sqlite3.Connection, execution_id: Optional[int] = None) -> List[Dict]:
    if execution_id is None:
        cur = conn.execute("SELECT * FROM executions ORDER BY id ASC")
    else:
        cur = conn.execute("SELECT * FROM executions WHERE execution_id = ? ORDER BY id ASC", (execution_id,))
    columns = [d[0] for d in cur.description]
    return [dict(zip(columns, row)) for row in cur.fetchall()]
