"""
Data models for the vehicle listing scraper.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind


class ExecutionStatus(str, Enum):
    SUCCESS = "Success"
    ERROR = "Error"


class ScraperType(str, Enum):
    AUTOTRADER = "autotrader"
    CARGURUS = "cargurus"
    CRAIGSLIST = "craigslist"
    FACEBOOK = "facebook"
    KSL = "ksl"
    CARS_COM = "cars.com"


class CookiePlatform(str, Enum):
    FACEBOOK = "facebook"


class MarketVehiclesType(str, Enum):
    CARS = "cars"
    RV = "rv"


class MarketSettingsType(str, Enum):
    TIER = "tier"
    BOOK_METHODS = "book-methods"
    SEARCH_RADIUS = "search-radius"
    SEARCH_MAX_MILEAGE = "search-max-mileage"
    SEARCH_MAX_PRICE = "search-max-price"
    SEARCH_MIN_YEAR = "search-min-year"
    SEARCH_MAX_YEAR = "search-max-year"
    SEARCH_TERMS = "search-terms"
    SOURCES = "sources"
    CRAIGSLIST_LOCATION = "craigslist-location"
    SEARCH_FB_LINK = "search-fb-link"
    TIME_ZONE = "time-zone"


@dataclass(frozen=True)
class MarketSetting:
    name: str
    value: Optional[str] = None


@dataclass(frozen=True)
class Market:
    """A configured search scope. Immutable for one execution."""

    id: int
    zip_code: str
    location: str
    execution_id: Optional[int] = None
    vehicles_type: MarketVehiclesType = MarketVehiclesType.CARS
    settings: Tuple[MarketSetting, ...] = ()
    dealership_group_id: Optional[int] = None
    dealership_group_name: str = ""
    blocked_users: Tuple[str, ...] = ()

    def setting(self, name: str) -> Optional[str]:
        """Return the first value recorded under ``name``."""
        key = name.value if isinstance(name, Enum) else name
        for s in self.settings:
            if s.name == key:
                return s.value
        return None

    @property
    def is_rv(self) -> bool:
        return self.vehicles_type == MarketVehiclesType.RV

    def describe(self) -> str:
        return f"{self.dealership_group_name} ({self.location})"


@dataclass(frozen=True)
class MarketParams:
    """Resolved numeric search bounds for one market."""

    min_price: float
    max_price: float
    max_mileage: float
    min_year: int
    max_year: int
    search_radius: float
    days_since_listed: int


@dataclass
class ScrapedVehicle:
    """Canonical listing record produced by a source adapter."""

    vehicle_original_id: str = ""
    vin: str = ""
    title: str = ""
    original_title: str = ""
    make: str = ""
    model: str = ""
    trim: str = ""
    year: Optional[int] = None
    mileage: Optional[int] = None
    description: str = ""
    asking_price: Optional[float] = None
    seller_name: str = ""
    seller_phone: str = ""
    seller_email: str = ""
    suspected_dealer: bool = False
    images: List[str] = field(default_factory=list)
    listing_date: Optional[str] = None
    link: str = ""
    total_owners: Optional[int] = None

    @property
    def first_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vehicleOriginalId": self.vehicle_original_id,
            "vin": self.vin,
            "title": self.title,
            "originalTitle": self.original_title,
            "make": self.make,
            "model": self.model,
            "trim": self.trim,
            "year": self.year,
            "mileage": self.mileage,
            "description": self.description,
            "askingPrice": self.asking_price,
            "sellerName": self.seller_name,
            "sellerPhone": self.seller_phone,
            "sellerEmail": self.seller_email,
            "suspectedDealer": self.suspected_dealer,
            "images": list(self.images),
            "listingDate": self.listing_date,
            "link": self.link,
            "totalOwners": self.total_owners,
        }


@dataclass
class ScraperResults:
    """Summary of one source run for one market."""

    success: bool = True
    execution_status: ExecutionStatus = ExecutionStatus.SUCCESS
    execution_message: str = ""
    total_vehicles: int = 0
    skipped_vehicles: int = 0
    valid_vehicles: int = 0
    results: List[ScrapedVehicle] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    screenshots: List[str] = field(default_factory=list)

    @classmethod
    def failure(cls, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> "ScraperResults":
        return cls(
            success=False,
            execution_status=ExecutionStatus.ERROR,
            execution_message=message,
            error_kind=kind,
        )


@dataclass
class ExecutionResult:
    """One row per (market, source) pair."""

    execution_id: Optional[int]
    market_id: Optional[int]
    script: str
    success: bool
    started_at: str
    ended_at: str
    execution_status: ExecutionStatus
    execution_message: str = ""
    total_vehicles: int = 0
    skipped_vehicles: int = 0
    valid_vehicles: int = 0
    results_link: Optional[str] = None
    results: List[ScrapedVehicle] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "marketId": self.market_id,
            "script": self.script,
            "success": self.success,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "executionStatus": self.execution_status.value,
            "executionMessage": self.execution_message,
            "totalVehicles": self.total_vehicles,
            "skippedVehicles": self.skipped_vehicles,
            "validVehicles": self.valid_vehicles,
            "resultsLink": self.results_link,
        }
