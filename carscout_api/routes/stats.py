"""
Run health route handlers: totals, per-script health and recurring failures.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query

from ..config import config
from ..database import get_script_health, get_statistics, get_top_failures
from ..models import FailureOut, ScriptHealthOut, StatsOut

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stats", tags=["statistics"])


@router.get("", response_model=StatsOut)
async def get_api_stats():
    """Execution and vehicle totals with a breakdown per status and per script."""
    try:
        return StatsOut(**get_statistics())

    except Exception as e:
        logger.error(f"Error fetching statistics: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/scripts", response_model=List[ScriptHealthOut])
async def get_api_script_health(failing_only: bool = False):
    """
    Success rate, latest run and current failure streak of every script.

    A script is failing when its latest FAILING_STREAK runs all ended in error,
    which is how a blocked account pool or a markup change shows up.
    """
    try:
        scripts = [ScriptHealthOut(**s) for s in get_script_health(config.FAILING_STREAK)]
        if failing_only:
            scripts = [s for s in scripts if s.failing]
        return scripts

    except Exception as e:
        logger.error(f"Error fetching script health: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/failures", response_model=List[FailureOut])
async def get_api_failures(
    script: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
):
    try:
        return [FailureOut(**row) for row in get_top_failures(limit, script)]

    except Exception as e:
        logger.error(f"Error fetching failures: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
