"""
carscout: multi-source vehicle listing scraper.
"""
from .classifier import Classification, VehicleClassifier, Verdict
from .config import ScraperConfig
from .cookies import CookieGenerator
from .errors import ErrorKind, ScraperError, classify_error
from .loop import SourceRun, filter_duplicates_by_image
from .models import (
    ExecutionResult,
    ExecutionStatus,
    Market,
    MarketParams,
    ScrapedVehicle,
    ScraperResults,
    ScraperType,
)
from .orchestrator import RunOrchestrator
from .pacing import Pacer, random_sleep
from .params import resolve_params, take_nearest_radius
from .payload import CookiePayload, ScraperPayload, parse_payload
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "Classification",
    "VehicleClassifier",
    "Verdict",
    "ScraperConfig",
    "CookieGenerator",
    "ErrorKind",
    "ScraperError",
    "classify_error",
    "SourceRun",
    "filter_duplicates_by_image",
    "ExecutionResult",
    "ExecutionStatus",
    "Market",
    "MarketParams",
    "ScrapedVehicle",
    "ScraperResults",
    "ScraperType",
    "RunOrchestrator",
    "Pacer",
    "random_sleep",
    "resolve_params",
    "take_nearest_radius",
    "ScraperPayload",
    "CookiePayload",
    "parse_payload",
    "init_logger",
    "now_iso",
]
