"""
Export utilities for scraped vehicles and execution rows.
"""
import sqlite3
from typing import List, Optional

import pandas as pd

from .models import ExecutionResult, ScrapedVehicle


def vehicles_frame(vehicles: List[ScrapedVehicle]) -> pd.DataFrame:
    rows = []
    for v in vehicles:
        row = v.to_dict()
        row["images"] = "|".join(v.images) if v.images else ""
        rows.append(row)
    return pd.DataFrame(rows)


def executions_frame(results: List[ExecutionResult]) -> pd.DataFrame:
    return pd.DataFrame([r.to_dict() for r in results])


def export_executions(conn: sqlite3.Connection, execution_id: Optional[int] = None) -> pd.DataFrame:
    """Export recorded execution rows, optionally for one execution id."""
    if execution_id is not None:
        q = "SELECT * FROM executions WHERE execution_id=? ORDER BY id ASC"
        return pd.read_sql_query(q, conn, params=(execution_id,))
    return pd.read_sql_query("SELECT * FROM executions ORDER BY id ASC", conn)


def write_frame(df: pd.DataFrame, out_path: str):
    if out_path.lower().endswith(".xlsx"):
        df.to_excel(out_path, index=False)
    else:
        df.to_csv(out_path, index=False)


def save_output_rows(vehicles: List[ScrapedVehicle], out_path: str, logger=None):
    """Save vehicles to CSV or Excel file."""
    df = vehicles_frame(vehicles)
    write_frame(df, out_path)
    if logger:
        logger.info(f">>> Saved {len(df)} rows to {out_path}")
    else:
        print(f">>> Saved {len(df)} rows to {out_path}")
