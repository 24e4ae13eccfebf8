"""
Route package initialization.
"""
from .executions import router as executions_router
from .stats import router as stats_router

__all__ = ["executions_router", "stats_router"]
