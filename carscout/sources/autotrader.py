"""
Autotrader adapter.

The market zip is resolved to a city/state slug first; search pages are then
fetched over HTTP in 25-record windows and each listing's details come from the
marketplace listing API.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from ..errors import ConfigurationError, ExtractionError
from ..models import Market, MarketParams, ScrapedVehicle, ScraperType
from ..params import take_nearest_radius
from ..utils import to_int
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

BASE_URL = "https://www.autotrader.com"
LOCATION_URL = f"{BASE_URL}/cars-for-sale/bonnet-reference/markets"
DETAIL_URL = f"{BASE_URL}/marketplace/api/listings/{{vin}}"
RADIUSES = [10, 25, 50, 75, 100, 200, 300]
PAGE_SIZE = 25
CITY_PLACEHOLDER = "{location}"


def get_market_payload(market: Market, params: MarketParams) -> Dict[str, Any]:
    return {
        "searchRadius": take_nearest_radius(params.search_radius, RADIUSES),
        "maxPrice": int(params.max_price),
        "minPrice": int(params.min_price),
        "maxMileage": int(params.max_mileage),
        "startYear": params.min_year,
        "endYear": params.max_year,
        "isNewSearch": "true",
        "showAccelerateBanner": "false",
        "sortBy": "datelistedDESC",
        "zip": market.zip_code,
    }


def parse_total_results(html: str) -> int:
    soup = BeautifulSoup(html, "html.parser")
    el = soup.select_one(".results-text-container .text-bold:last-child")
    if el is None or not el.get_text().strip():
        raise ExtractionError("There was an error getting the total results")
    return to_int(el.get_text().split(" ")[0]) or 0


def parse_listing_schemas(html: str) -> List[Dict[str, Any]]:
    soup = BeautifulSoup(html, "html.parser")
    listings = []
    for script in soup.select('script[data-cmp="lstgSchema"]'):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict):
            listings.append(data)
    return listings


def vehicle_from_detail(data: Dict[str, Any]) -> ScrapedVehicle:
    year = data.get("year")
    make = data.get("make") or ""
    model = data.get("model") or ""
    price = data.get("price")
    return ScrapedVehicle(
        vehicle_original_id=str(data.get("id") or ""),
        vin=data.get("vin") or "",
        title=f"{year} {make} {model}".strip(),
        original_title=(data.get("vdp_heading") or "").replace("Used", "").strip(),
        make=make,
        model=model,
        trim=(data.get("trim") or "").replace("Used", "").strip(),
        year=year,
        mileage=data.get("mileage") or 0,
        description=re.sub(r"<br\s*/?>", "\n", data.get("description") or ""),
        asking_price=round(price) if price else 0,
        seller_name=(data.get("public_seller_info") or {}).get("first_name") or "",
        images=[i.get("url") for i in data.get("images") or [] if i.get("url")],
        listing_date=data.get("published"),
        link=data.get("vdp_url") or "",
        total_owners=0,
    )


class AutotraderAdapter(SourceAdapter):
    name = ScraperType.AUTOTRADER

    def __init__(self):
        self.total_results: Optional[int] = None

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        # City/state slug is filled in once prepare() has looked it up
        query = urlencode(get_market_payload(market, params))
        return (
            f"{BASE_URL}/cars-for-sale/all-cars/by-owner/"
            f"cars-between-{int(params.min_price)}-and-{int(params.max_price)}/{CITY_PLACEHOLDER}?{query}"
        )

    async def prepare(self, session: SourceSession):
        zip_code = session.market.zip_code
        response = await session.http.get(LOCATION_URL, params={"zip": zip_code})
        payload = (response.data or {}).get("payload") if isinstance(response.data, dict) else None
        if not payload or not payload.get("city") or not payload.get("state"):
            raise ConfigurationError(f"Autotrader location not found for zip {zip_code}")
        session.state["location"] = f"{payload['city'].lower()}-{payload['state'].lower()}".replace(" ", "-")
        logger.info(f"Got location info for {zip_code}: {payload['city']}, {payload['state']}")

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        start_at = (page_number - 1) * PAGE_SIZE
        target = url.replace(CITY_PLACEHOLDER, session.state["location"])
        if start_at > 0:
            target = f"{target}&firstRecord={start_at}"
        logger.info(f"Executing get to {target}")
        response = await session.http.get(target)

        if self.total_results is None:
            self.total_results = parse_total_results(response.text)
            logger.info(f"Total results: {self.total_results}")
        listings = parse_listing_schemas(response.text)
        return SourcePage(
            candidates=listings,
            total=self.total_results,
            has_more=start_at + PAGE_SIZE < self.total_results,
        )

    async def extract_listing(self, session: SourceSession, candidate: Dict[str, Any]) -> Optional[ScrapedVehicle]:
        vin = candidate.get("vehicleIdentificationNumber")
        if not vin:
            raise ExtractionError(f"Listing {candidate.get('url')} has no VIN")
        response = await session.http.get(DETAIL_URL.format(vin=vin))
        if not isinstance(response.data, dict):
            raise ExtractionError(f"Unexpected detail response for {vin}")
        return vehicle_from_detail(response.data)

    def describe_candidate(self, candidate: Any) -> str:
        if isinstance(candidate, dict):
            return f"{candidate.get('vehicleIdentificationNumber')} ({candidate.get('url')})"
        return str(candidate)
