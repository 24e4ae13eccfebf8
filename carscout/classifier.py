"""
Vehicle classification: terminate-early, skip or accept.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .ignore_terms import IgnoreTermMatcher
from .models import MarketParams, ScrapedVehicle
from .utils import now_utc, parse_iso


class Verdict(str, Enum):
    TERMINATE = "terminate"
    SKIP = "skip"
    ACCEPT = "accept"


@dataclass(frozen=True)
class Classification:
    verdict: Verdict
    reason: str = ""


class VehicleClassifier:
    """Apply the listing business rules in precedence order."""

    def __init__(
        self,
        params: MarketParams,
        matcher: Optional[IgnoreTermMatcher] = None,
        now: Callable[[], datetime] = now_utc,
    ):
        self.params = params
        self.matcher = matcher or IgnoreTermMatcher()
        self._now = now

    @property
    def expiration_date(self) -> datetime:
        return self._now() - timedelta(days=self.params.days_since_listed)

    def is_expired(self, vehicle: ScrapedVehicle) -> bool:
        """Older than the cutoff. Missing or unparseable dates never expire."""
        listed = parse_iso(vehicle.listing_date)
        if listed is None:
            return False
        return listed < self.expiration_date

    def classify(self, vehicle: ScrapedVehicle) -> Classification:
        if self.is_expired(vehicle):
            return Classification(Verdict.TERMINATE, f"listed {vehicle.listing_date}, out of date")

        if not (vehicle.make or "").strip() or not (vehicle.model or "").strip():
            return Classification(Verdict.SKIP, "missing make or model")

        for text in (vehicle.description, vehicle.original_title, vehicle.seller_name):
            term = self.matcher.find(text)
            if term:
                return Classification(Verdict.SKIP, f"contains ignored term '{term}'")

        return Classification(Verdict.ACCEPT)
