"""
Read-only queries over the scraper database.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from itertools import groupby
from typing import Any, Dict, List, Optional, Tuple

from .config import config

logger = logging.getLogger(__name__)


@contextmanager
def get_db_connection():
    """Get a database connection with proper error handling."""
    conn = None
    try:
        if not config.DB_PATH:
            raise ValueError("Database path not configured")

        conn = sqlite3.connect(config.DB_PATH)
        conn.row_factory = sqlite3.Row
        yield conn
    except sqlite3.Error as e:
        logger.error(f"Database error: {e}")
        raise
    finally:
        if conn is not None:
            conn.close()


def build_where_clause(filters: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """Build WHERE clause and parameters from filters."""
    where_conditions = []
    parameters: List[Any] = []

    for column in ("execution_id", "market_id", "script", "execution_status"):
        value = filters.get(column)
        if value is not None:
            where_conditions.append(f"{column} = ?")
            parameters.append(value)

    since = filters.get("since")
    if since:
        where_conditions.append("started_at >= ?")
        parameters.append(since)

    where_clause = " WHERE " + " AND ".join(where_conditions) if where_conditions else ""
    return where_clause, parameters


def _row_dict(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["success"] = bool(data.get("success"))
    return data


def get_executions_count(filters: Dict[str, Any]) -> int:
    with get_db_connection() as conn:
        where_clause, parameters = build_where_clause(filters)
        result = conn.execute(f"SELECT COUNT(*) FROM executions {where_clause}", parameters).fetchone()
        return result[0] if result else 0


def get_executions(filters: Dict[str, Any], limit: int = 50, offset: int = 0) -> List[Dict]:
    """Execution rows matching filters, newest first."""
    with get_db_connection() as conn:
        where_clause, parameters = build_where_clause(filters)
        sql = f"SELECT * FROM executions {where_clause} ORDER BY datetime(started_at) DESC, id DESC LIMIT ? OFFSET ?"
        parameters.extend([limit, offset])
        return [_row_dict(row) for row in conn.execute(sql, parameters).fetchall()]


def get_execution_row(row_id: int) -> Optional[Dict]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM executions WHERE id = ?", (row_id,)).fetchone()
        return _row_dict(row) if row else None


def get_result_vehicles(key: str) -> Optional[List[Dict[str, Any]]]:
    """Stored vehicles for a results link, or None when the key is unknown."""
    with get_db_connection() as conn:
        row = conn.execute("SELECT body FROM result_blobs WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return json.loads(row[0])


def get_latest_execution() -> Optional[Dict]:
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT * FROM executions ORDER BY datetime(started_at) DESC, id DESC LIMIT 1"
        ).fetchone()
        return _row_dict(row) if row else None


def get_script_health(failing_streak: int) -> List[Dict[str, Any]]:
    """
    Health summary per script, ordered by script name.

    consecutive_failures counts the unbroken run of non-success rows back from the
    latest one; a script is failing once that reaches failing_streak.
    """
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT script, success, started_at, execution_status, execution_message, valid_vehicles "
            "FROM executions ORDER BY script, datetime(started_at) DESC, id DESC"
        ).fetchall()

    scripts = []
    for script, group in groupby(rows, key=lambda r: r["script"]):
        runs = list(group)
        successful = sum(1 for r in runs if r["success"])
        streak = 0
        for r in runs:
            if r["success"]:
                break
            streak += 1
        latest = runs[0]
        scripts.append({
            "script": script or "",
            "runs": len(runs),
            "successful_runs": successful,
            "success_rate": round(successful / len(runs), 3),
            "valid_vehicles": sum(r["valid_vehicles"] or 0 for r in runs),
            "last_started_at": latest["started_at"],
            "last_status": latest["execution_status"] or "",
            "last_message": latest["execution_message"] or "",
            "consecutive_failures": streak,
            "failing": streak >= failing_streak,
        })
    return scripts


def get_top_failures(limit: int = 10, script: Optional[str] = None) -> List[Dict[str, Any]]:
    """Error messages of failed runs grouped per script, most frequent first."""
    where_clause, parameters = build_where_clause({"script": script})
    condition = f"{where_clause} AND success = 0" if where_clause else " WHERE success = 0"
    with get_db_connection() as conn:
        rows = conn.execute(
            "SELECT script, execution_message AS message, COUNT(*) AS occurrences, MAX(started_at) AS last_seen "
            f"FROM executions {condition} "
            "GROUP BY script, execution_message ORDER BY occurrences DESC, last_seen DESC LIMIT ?",
            [*parameters, limit],
        ).fetchall()
        return [dict(row) for row in rows]


def get_statistics() -> Dict[str, Any]:
    """Get aggregate statistics about recorded executions."""
    with get_db_connection() as conn:
        totals = conn.execute(
            "SELECT COUNT(*), SUM(success), SUM(total_vehicles), SUM(valid_vehicles), SUM(skipped_vehicles) "
            "FROM executions"
        ).fetchone()
        total_executions, successful, total_vehicles, valid_vehicles, skipped_vehicles = totals

        by_status = conn.execute(
            "SELECT execution_status, COUNT(*) FROM executions GROUP BY execution_status"
        ).fetchall()
        by_script = conn.execute(
            "SELECT script, COUNT(*) FROM executions GROUP BY script ORDER BY COUNT(*) DESC"
        ).fetchall()
        last_7d = conn.execute(
            "SELECT COUNT(*) FROM executions WHERE datetime(started_at) >= datetime('now','-7 day')"
        ).fetchone()[0]
        stored = conn.execute(
            "SELECT COUNT(*) FROM result_blobs WHERE key LIKE ?", (f"{config.RESULTS_KEY_PREFIX}%",)
        ).fetchone()[0]

        return {
            "total_executions": total_executions or 0,
            "successful_executions": successful or 0,
            "failed_executions": (total_executions or 0) - (successful or 0),
            "success_rate": round((successful or 0) / total_executions, 3) if total_executions else 0.0,
            "executions_last_days": last_7d,
            "total_vehicles": total_vehicles or 0,
            "valid_vehicles": valid_vehicles or 0,
            "skipped_vehicles": skipped_vehicles or 0,
            "stored_results": stored,
            "by_script": {script: count for script, count in by_script},
            "by_status": {status: count for status, count in by_status},
        }
