"""
Pydantic models for API request/response serialization.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ExecutionOut(BaseModel):
    """Output model for one recorded execution row."""
    id: int
    execution_id: Optional[int] = None
    market_id: Optional[int] = None
    script: str = ""
    success: bool = False
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    execution_status: str = ""
    execution_message: str = ""
    total_vehicles: int = 0
    skipped_vehicles: int = 0
    valid_vehicles: int = 0
    results_link: Optional[str] = None
    recorded_at: Optional[str] = None


class ExecutionsResponse(BaseModel):
    """Response model for paginated executions."""
    total: int
    items: List[ExecutionOut]


class VehicleOut(BaseModel):
    """A stored vehicle, kept in the camelCase shape it was uploaded with."""
    model_config = ConfigDict(extra="allow")

    vehicleOriginalId: str = ""
    vin: str = ""
    title: str = ""
    make: str = ""
    model: str = ""
    year: Optional[int] = None
    mileage: Optional[int] = None
    askingPrice: Optional[float] = None
    images: List[str] = []
    listingDate: Optional[str] = None
    link: str = ""


class StatsOut(BaseModel):
    """Model for statistics data."""
    total_executions: int
    successful_executions: int
    failed_executions: int
    success_rate: float
    executions_last_days: int
    total_vehicles: int
    valid_vehicles: int
    skipped_vehicles: int
    stored_results: int
    by_script: Dict[str, int]
    by_status: Dict[str, int]


class ScriptHealthOut(BaseModel):
    """Run health of one scraper or cookie-generation script."""
    script: str
    runs: int
    successful_runs: int
    success_rate: float
    valid_vehicles: int
    last_started_at: Optional[str] = None
    last_status: str = ""
    last_message: str = ""
    consecutive_failures: int = 0
    failing: bool = False


class FailureOut(BaseModel):
    script: Optional[str] = None
    message: Optional[str] = None
    occurrences: int
    last_seen: Optional[str] = None
