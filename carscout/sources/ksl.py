"""
KSL Cars adapter: JSON search API, page-number pagination.
"""
import logging
from typing import Any, Dict, List, Optional

from ..errors import ExtractionError
from ..models import Market, MarketParams, ScrapedVehicle, ScraperType
from ..params import take_nearest_radius
from ..utils import epoch_to_iso
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

API_URL = "https://cars.ksl.com/nextjs-api/proxy?"
SEARCH_ENDPOINT = "/classifieds/cars/search/searchByUrlParams"
PER_PAGE = 24
MAX_ITEMS_PER_PAGE = 500
RADIUSES = [10, 25, 50, 100, 150, 200]
NON_SELLABLE_TITLE = "Rebuilt/Reconstructed Title"

HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "cars-node",
    "X-App-Source": "frontline",
    "X-DDM-EVENT-ACCEPT-LANGUAGE": "en-US",
}


def build_request_body(params: MarketParams, market: Market, page: int) -> List[Any]:
    """Flat key/value list understood by the search endpoint."""
    return [
        "perPage", PER_PAGE,
        "page", page,
        "yearFrom", int(params.min_year or 1990),
        "yearTo", int(params.max_year or 2024),
        "mileageFrom", 0,
        "mileageTo", int(params.max_mileage or 120000),
        "priceTo", int(params.max_price or 13000),
        "newUsed", "Used",
        "sellerType", "For Sale By Owner",
        "zip", market.zip_code,
        "miles", take_nearest_radius(params.search_radius or 60, RADIUSES),
        "includeFacetCounts", 1,
        "sort", 0,
    ]


def build_payload(body: List[Any]) -> Dict[str, Any]:
    return {
        "endpoint": SEARCH_ENDPOINT,
        "options": {
            "query": {"returnCount": PER_PAGE},
            "body": body,
            "headers": {},
        },
    }


def process_vehicle_data(data: Dict[str, Any]) -> Optional[ScrapedVehicle]:
    """Map one API item to a vehicle; rebuilt titles are declined."""
    if data.get("titleType") == NON_SELLABLE_TITLE:
        return None

    make = data.get("make") or ""
    model = data.get("model") or ""
    trim = data.get("trim") or ""
    year = data.get("makeYear")
    photos = data.get("photo") or []
    paint = " ".join(data.get("paint") or [])
    price = data.get("price")

    return ScrapedVehicle(
        vehicle_original_id=str(data.get("id", "")),
        vin=data.get("vin") or "",
        title=f"{year} {make} {model} {trim}".strip(),
        original_title=f"{year} {make} {model}{trim}".strip(),
        make=make,
        model=model,
        trim=trim,
        year=year,
        mileage=data.get("mileage"),
        description=f"City: {data.get('city')} | Body: {data.get('body')} | {paint}",
        asking_price=float(price) if price is not None else None,
        seller_name=data.get("firstName") or "",
        seller_phone=data.get("primaryPhone") or "",
        seller_email=data.get("email") or "",
        images=[p.get("id") for p in photos if isinstance(p, dict) and p.get("id")],
        listing_date=epoch_to_iso(data.get("displayTime")),
        link=f"https://cars.ksl.com/listing/{data.get('id')}",
        total_owners=1,
    )


class KslAdapter(SourceAdapter):
    name = ScraperType.KSL
    pace_listings = False

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        return API_URL

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        body = build_request_body(session.params, session.market, page_number)
        response = await session.http.post(url, json_body=build_payload(body), headers=HEADERS)
        data = response.data.get("data") if isinstance(response.data, dict) else None
        if not isinstance(data, dict):
            raise ExtractionError(f"Unexpected KSL response for page {page_number}")

        count = int(data.get("count") or 0)
        items = (data.get("items") or [])[:MAX_ITEMS_PER_PAGE]
        return SourcePage(
            candidates=items,
            total=count,
            has_more=page_number * PER_PAGE < count,
        )

    async def extract_listing(self, session: SourceSession, candidate: Dict[str, Any]) -> Optional[ScrapedVehicle]:
        return process_vehicle_data(candidate)

    def describe_candidate(self, candidate: Any) -> str:
        if isinstance(candidate, dict):
            return f"https://cars.ksl.com/listing/{candidate.get('id')}"
        return str(candidate)
