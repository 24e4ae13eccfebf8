"""
Job descriptor validation.

The upstream platform sends camelCase JSON; models accept both the camelCase
aliases and the snake_case field names. Two job types exist: "scraper" runs one
source over a list of markets, "cookie-generation" logs in a pool of accounts
and collects their session cookies.
"""
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import CookiePlatform, Market, MarketSetting, MarketVehiclesType, ScraperType

SCRIPT_TYPE_SCRAPER = "scraper"
SCRIPT_TYPE_COOKIES = "cookie-generation"


class MarketSettingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class MarketPayload(BaseModel):
    """One market entry. Fields are optional here; see ``validate_market``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int] = None
    execution_id: Optional[int] = Field(default=None, alias="executionId")
    location: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    dealership_group_id: Optional[int] = Field(default=None, alias="dealershipGroupId")
    vehicles_type: Optional[str] = Field(default=None, alias="vehiclesType")
    market_settings: List[MarketSettingPayload] = Field(default_factory=list, alias="marketSettings")
    blocked_users: List[Dict[str, Any]] = Field(default_factory=list, alias="blockedUsers")
    dealership_group: Optional[Dict[str, Any]] = Field(default=None, alias="dealershipGroup")

    @field_validator("zip_code", mode="before")
    @classmethod
    def _zip_as_text(cls, v):
        return str(v) if isinstance(v, int) else v

    def to_market(self) -> Market:
        try:
            vehicles_type = MarketVehiclesType(self.vehicles_type or "cars")
        except ValueError:
            vehicles_type = MarketVehiclesType.CARS
        return Market(
            id=self.id,
            zip_code=self.zip_code or "",
            location=self.location or "",
            execution_id=self.execution_id,
            vehicles_type=vehicles_type,
            settings=tuple(MarketSetting(s.name, s.value) for s in self.market_settings),
            dealership_group_id=self.dealership_group_id,
            dealership_group_name=(self.dealership_group or {}).get("name") or "",
            blocked_users=tuple(
                u.get("username") for u in self.blocked_users if u.get("username")
            ),
        )


class ScraperPayload(BaseModel):
    """Top-level scraping job."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    type: str
    scraper: ScraperType
    markets: List[MarketPayload]

    @field_validator("type")
    @classmethod
    def _scraper_type(cls, v: str) -> str:
        if v != SCRIPT_TYPE_SCRAPER:
            raise ValueError(f"Type {v} is not supported")
        return v

    @field_validator("scraper", mode="before")
    @classmethod
    def _normalize_scraper(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("markets")
    @classmethod
    def _non_empty(cls, v):
        if not v:
            raise ValueError("No valid markets found")
        return v

    def to_markets(self) -> List[Market]:
        return [m.to_market() for m in self.markets]


class AccountPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    password: str = Field(repr=False)
    two_factor_code: Optional[str] = Field(default=None, alias="twoFactorCode")


class CookiePayload(BaseModel):
    """Session cookie generation job over a pool of accounts."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    type: str
    platform: CookiePlatform
    accounts: List[AccountPayload] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def _cookies_type(cls, v: str) -> str:
        if v != SCRIPT_TYPE_COOKIES:
            raise ValueError(f"Type {v} is not supported")
        return v

    @field_validator("platform", mode="before")
    @classmethod
    def _normalize_platform(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


JobPayload = Union[ScraperPayload, CookiePayload]


def parse_payload(data) -> JobPayload:
    """Validate a decoded job descriptor; failures are configuration errors."""
    if data is None:
        raise ConfigurationError("No parameters found")
    model = ScraperPayload
    if isinstance(data, dict) and data.get("type") == SCRIPT_TYPE_COOKIES:
        model = CookiePayload
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid job payload: {problems}") from e


def load_payload(path: str) -> JobPayload:
    """Read and validate a job descriptor from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Unable to read job payload {path}: {e}") from e
    return parse_payload(data)


def validate_market(market: Market):
    """Reject markets missing id, location, zip code or settings."""
    if not market.id:
        raise ConfigurationError("No valid market id found")
    if not market.location:
        raise ConfigurationError("No valid market name found")
    if not market.zip_code:
        raise ConfigurationError("No valid market zip code found")
    if not market.settings:
        raise ConfigurationError("No valid market settings found")
