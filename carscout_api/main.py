"""
carscout API - main application.

Serves the execution history written by the scraper, the vehicles stored under
each results link, and the run health derived from both.
"""
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import config
from .database import get_latest_execution, get_script_health, get_statistics
from .routes import executions_router, stats_router

logger = logging.getLogger(__name__)


def configure_logging():
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.LOG_FILE_PATH:
        handlers.append(logging.FileHandler(config.LOG_FILE_PATH))
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    config.validate()
    logger.info(f">>> carscout API serving {config.DB_PATH}")
    try:
        failing = [s["script"] for s in get_script_health(config.FAILING_STREAK) if s["failing"]]
        if failing:
            logger.warning(f"Scripts failing on their last {config.FAILING_STREAK} runs: {', '.join(failing)}")
    except Exception as e:
        logger.warning(f"Could not read run history at startup: {e}")
    yield
    logger.info("carscout API stopped")


app = FastAPI(
    title=config.API_TITLE,
    version=config.API_VERSION,
    description=config.API_DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=config.CORS_ALLOW_CREDENTIALS,
    allow_methods=config.CORS_ALLOW_METHODS,
    allow_headers=config.CORS_ALLOW_HEADERS,
)

app.include_router(executions_router)
app.include_router(stats_router)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
async def health_check():
    """
    Database reachability plus run health.

    Reports "degraded" while any script has failed its last FAILING_STREAK runs;
    an unreadable database is a 503.
    """
    try:
        latest = get_latest_execution()
        failing = [s["script"] for s in get_script_health(config.FAILING_STREAK) if s["failing"]]
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")

    last_execution = None
    if latest:
        last_execution = {
            "script": latest["script"],
            "market_id": latest["market_id"],
            "started_at": latest["started_at"],
            "status": latest["execution_status"],
        }
    return {
        "status": "degraded" if failing else "healthy",
        "version": config.API_VERSION,
        "database": "connected",
        "failing_scripts": failing,
        "last_execution": last_execution,
    }


@app.get("/metrics")
async def metrics():
    """Execution counters for scraping dashboards."""
    try:
        stats = get_statistics()
        scripts = get_script_health(config.FAILING_STREAK)
    except Exception as e:
        logger.error(f"Metrics endpoint failed: {e}")
        raise HTTPException(status_code=503, detail="Unable to fetch metrics")

    return {
        "executions_total": stats["total_executions"],
        "executions_by_status": stats["by_status"],
        "executions_7d": stats["executions_last_days"],
        "success_rate": stats["success_rate"],
        "valid_vehicles_total": stats["valid_vehicles"],
        "skipped_vehicles_total": stats["skipped_vehicles"],
        "stored_results": stats["stored_results"],
        "consecutive_failures": {s["script"]: s["consecutive_failures"] for s in scripts},
        "api_version": config.API_VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("carscout_api.main:app", host="0.0.0.0", port=8000, log_level=config.LOG_LEVEL.lower())
