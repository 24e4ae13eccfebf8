"""
CarGurus adapter: preflight page for the total, offset pagination over the
search-results endpoint and a detail request per listing.
"""
import json
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..errors import ExtractionError, HttpError
from ..models import Market, MarketParams, ScrapedVehicle, ScraperType
from ..params import take_nearest_radius
from ..utils import parse_iso
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

MAIN_URL = "https://www.cargurus.com/Cars/inventorylisting/viewDetailsFilterViewInventoryListing.action"
SEARCH_URL = "https://www.cargurus.com/Cars/searchResults.action"
DETAIL_API_URL = "https://www.cargurus.com/Cars/detailListingJson.action"
DETAIL_PAGE_URL = "https://www.cargurus.com/Cars/inventorylisting/vdp.action"
RADIUSES = [10, 25, 50, 75, 100]
PAGE_SIZE = 50
PREFLIGHT_RE = re.compile(r"window\.__PREFLIGHT__ = (\{.*?\});", re.DOTALL)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Accept-Language": "en-US,en;q=0.9",
}


def get_search_params(market: Market, params: MarketParams) -> Dict[str, Any]:
    return {
        "distance": take_nearest_radius(params.search_radius, RADIUSES),
        "maxPrice": int(params.max_price),
        "minPrice": int(params.min_price),
        "maxMileage": int(params.max_mileage),
        "startYear": params.min_year,
        "endYear": params.max_year,
        "zip": market.zip_code,
        "sortDir": "ASC",
        "sortType": "AGE_IN_DAYS",
        "daysOnMarketMax": 10,
        "sourceContext": "carGurusHomePageFSBO",
        "inventorySearchWidgetType": "PRICE",
        "sellerHierarchyTypes": "PRIVATE",
    }


def parse_preflight(html: str) -> Dict[str, Any]:
    m = PREFLIGHT_RE.search(html or "")
    if not m:
        raise ExtractionError("CarGurus preflight data not found")
    try:
        return json.loads(m.group(1))
    except ValueError as e:
        raise ExtractionError(f"CarGurus preflight data is not valid JSON: {e}") from e


def vehicle_from_detail(listing: Dict[str, Any], summary: Dict[str, Any]) -> ScrapedVehicle:
    listing_id = summary.get("id")
    history = listing.get("vehicleHistory") or {}
    reported = parse_iso(history.get("reportDate"))
    price = listing.get("price")
    year = listing.get("year")
    make = listing.get("makeName") or ""
    model = (listing.get("modelName") or "").replace("Used", "").strip()
    return ScrapedVehicle(
        vehicle_original_id=str(listing_id or ""),
        vin=listing.get("vin") or "",
        title=f"{year} {make} {model}".strip(),
        original_title=listing.get("listingTitle") or "",
        make=make,
        model=model,
        trim=(listing.get("trimName") or "").replace("Used", "").strip(),
        year=year,
        mileage=listing.get("mileage"),
        description=listing.get("description") or "",
        asking_price=round(price) if price is not None else None,
        seller_name=summary.get("sellerFirstName") or "",
        images=[p.get("url") for p in listing.get("pictures") or [] if p.get("url")],
        listing_date=reported.isoformat() if reported else None,
        link=f"{DETAIL_PAGE_URL}?listingId={listing_id}#listing={listing_id}",
        total_owners=history.get("ownerCount"),
    )


def _cookie_header(headers) -> str:
    if hasattr(headers, "get_list"):
        cookies = headers.get_list("set-cookie")
    else:
        value = headers.get("set-cookie") if headers else None
        cookies = [value] if value else []
    return "; ".join(c.split(";", 1)[0] for c in cookies)


class CarGurusAdapter(SourceAdapter):
    name = ScraperType.CARGURUS

    def __init__(self):
        self.search_params: Dict[str, Any] = {}
        self.total_listings = 0
        self.headers = dict(HEADERS)

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        self.search_params = get_search_params(market, params)
        return f"{MAIN_URL}?{urlencode(self.search_params)}"

    async def prepare(self, session: SourceSession):
        url = f"{MAIN_URL}?{urlencode(self.search_params)}"
        try:
            response = await session.http.get(url, headers=self.headers)
        except HttpError as e:
            cookie = _cookie_header(e.headers)
            if not cookie:
                raise
            logger.info("Retrieved cookies from first request, retrying")
            self.headers["Cookie"] = cookie
            response = await session.http.get(url, headers=self.headers)

        preflight = parse_preflight(response.text)
        if preflight.get("droppedFilterCriteria"):
            logger.info(f"- Cargurus: filters dropped for market {session.market.id}, no matching vehicles")
            self.total_listings = 0
        else:
            self.total_listings = int(preflight.get("totalListings") or 0)
        logger.info(
            f"- Cargurus: processing {session.market.describe()} market with {self.total_listings} vehicles"
        )

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        if self.total_listings == 0:
            return SourcePage(candidates=[], total=0, has_more=False)
        offset = (page_number - 1) * PAGE_SIZE
        params = {**self.search_params, "filtersModified": "true", "maxResults": PAGE_SIZE, "offset": offset}
        response = await session.http.get(SEARCH_URL, headers=self.headers, params=params)
        listings = response.data if isinstance(response.data, list) else []
        return SourcePage(
            candidates=listings,
            total=self.total_listings,
            has_more=offset + PAGE_SIZE < self.total_listings,
        )

    async def extract_listing(self, session: SourceSession, candidate: Dict[str, Any]) -> Optional[ScrapedVehicle]:
        params = {**self.search_params, "inclusionType": "DEFAULT", "inventoryListing": candidate.get("id")}
        response = await session.http.get(DETAIL_API_URL, headers=self.headers, params=params)
        if isinstance(response.data, str) and "no longer available" in response.data:
            logger.info(f"- Cargurus: vehicle {candidate.get('id')} is not available anymore")
            return None
        listing = response.data.get("listing") if isinstance(response.data, dict) else None
        if not listing:
            raise ExtractionError(f"CarGurus detail for {candidate.get('id')} has no listing")
        return vehicle_from_detail(listing, candidate)

    def describe_candidate(self, candidate: Any) -> str:
        if isinstance(candidate, dict):
            return f"{DETAIL_PAGE_URL}?listingId={candidate.get('id')}"
        return str(candidate)
