"""
API route handlers for executions and stored results.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Query, HTTPException, Depends
from fastapi.responses import StreamingResponse
import pandas as pd

from ..models import ExecutionOut, ExecutionsResponse, VehicleOut
from ..database import get_executions_count, get_executions, get_execution_row, get_result_vehicles
from ..config import config

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["executions"])

EXPORT_COLUMNS = [
    "execution_id", "market_id", "script", "success", "started_at", "ended_at",
    "execution_status", "execution_message", "total_vehicles", "skipped_vehicles",
    "valid_vehicles", "results_link",
]


def get_execution_filters(
    execution_id: Optional[int] = None,
    market_id: Optional[int] = None,
    script: Optional[str] = None,
    status: Optional[str] = None,
    since: Optional[str] = None,
) -> dict:
    """Dependency to extract execution filters."""
    return {
        'execution_id': execution_id,
        'market_id': market_id,
        'script': script,
        'execution_status': status,
        'since': since,
    }


@router.get("/executions", response_model=ExecutionsResponse)
async def get_api_executions(
    filters: dict = Depends(get_execution_filters),
    limit: int = Query(config.DEFAULT_API_LIMIT, ge=1, le=config.MAX_API_LIMIT),
    offset: int = Query(0, ge=0)
):
    """Get recorded executions with filtering and pagination."""
    try:
        total = get_executions_count(filters)
        items = [ExecutionOut(**row) for row in get_executions(filters, limit, offset)]
        return ExecutionsResponse(total=total, items=items)

    except Exception as e:
        logger.error(f"Error fetching executions: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/executions/export/csv")
async def export_executions_csv(filters: dict = Depends(get_execution_filters)):
    """Export filtered executions as CSV."""
    try:
        rows = get_executions(filters, limit=config.MAX_EXPORT_ROWS, offset=0)
        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS) if rows else pd.DataFrame(columns=EXPORT_COLUMNS)
        csv_content = df.to_csv(index=False).encode('utf-8')

        return StreamingResponse(
            iter([csv_content]),
            media_type='text/csv',
            headers={'Content-Disposition': 'attachment; filename="carscout_executions.csv"'}
        )

    except Exception as e:
        logger.error(f"Error exporting CSV: {e}")
        raise HTTPException(status_code=500, detail="Error generating CSV export")


@router.get("/executions/{row_id}", response_model=ExecutionOut)
async def get_api_execution(row_id: int):
    try:
        row = get_execution_row(row_id)
        if not row:
            raise HTTPException(status_code=404, detail="Execution not found")
        return ExecutionOut(**row)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching execution {row_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/results/{key}", response_model=List[VehicleOut])
async def get_api_results(key: str):
    """Get the vehicles stored under a results link; other stored objects are not served."""
    try:
        vehicles = get_result_vehicles(key) if key.startswith(config.RESULTS_KEY_PREFIX) else None
        if vehicles is None:
            raise HTTPException(status_code=404, detail="Results not found")
        return [VehicleOut(**vehicle) for vehicle in vehicles]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching results {key}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
