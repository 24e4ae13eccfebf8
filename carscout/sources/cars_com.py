"""
Cars.com adapter: one search page, structured data parsed with BeautifulSoup.
"""
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from ..models import Market, MarketParams, ScrapedVehicle, ScraperType
from ..params import take_nearest_radius
from ..utils import clean_text, now_iso, to_float, to_int
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.cars.com/shopping/results"
RADIUSES = [10, 20, 30, 40, 50, 75, 100, 150, 200]


def get_market_url(market: Market, params: MarketParams) -> str:
    query = urlencode({
        "dealer_id": "",
        "keyword": "",
        "maximum_distance": take_nearest_radius(params.search_radius, RADIUSES),
        "list_price_max": int(params.max_price),
        "list_price_min": int(params.min_price),
        "mileage_max": int(params.max_mileage),
        "year_min": params.min_year,
        "year_max": params.max_year,
        "page_size": 100,
        "sort": "listed_at_desc",
        "stock_type": "used",
        "zip": market.zip_code,
    })
    return f"{SEARCH_URL}?{query}&seller_type[]=private_seller&makes[]="


def _json_ld_blocks(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict):
            blocks.append(data)
    return blocks


def _mileage(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("value")
    return to_int(value)


def parse_search_results(html: str) -> List[ScrapedVehicle]:
    """Join the ItemList, Vehicle blocks and vehicle cards of a results page."""
    soup = BeautifulSoup(html, "html.parser")
    blocks = _json_ld_blocks(soup)
    item_list = next((b for b in blocks if b.get("@type") == "ItemList"), None)
    items = (item_list or {}).get("itemListElement") or []
    if not items:
        return []

    vehicles_data = [b for b in blocks if b.get("@type") == "Vehicle"]
    vehicles: List[ScrapedVehicle] = []
    position = 1
    for data in vehicles_data:
        list_item = next((i for i in items if i.get("position") == position), None)
        if not list_item:
            continue

        link = (list_item.get("url") or "").rstrip("/")
        parts = link.split("/")
        vehicle_id = parts[-2] if len(parts) >= 2 else ""
        card = soup.select_one(f'.vehicle-card:not(.inventory-ad)[data-listing-id="{vehicle_id}"]')
        if card is None:
            continue

        name = data.get("name") or ""
        tokens = name.replace("Used", "").strip().split(" ")
        year = to_int(tokens[0]) if tokens else None
        make = tokens[1] if len(tokens) > 1 else ""
        model = tokens[2] if len(tokens) > 2 else ""
        trim = " ".join(tokens[3:])

        price_el = card.select_one(".primary-price")
        seller_el = card.select_one(".seller-name")
        images = [img.get("data-src") for img in card.select("img.vehicle-image") if img.get("data-src")]

        vehicles.append(ScrapedVehicle(
            vehicle_original_id=vehicle_id,
            vin=data.get("vehicleIdentificationNumber") or "",
            title=f"{year or ''} {make} {model} {trim}".strip(),
            original_title=name,
            make=make,
            model=model,
            trim=trim,
            year=year,
            mileage=_mileage(data.get("mileageFromOdometer")),
            description=data.get("description") or "",
            asking_price=to_float(price_el.get_text()) if price_el else None,
            seller_name=clean_text(seller_el.get_text()) if seller_el else "",
            images=images,
            listing_date=now_iso(),
            link=link,
            total_owners=0,
        ))
        position += 1
    return vehicles


class CarsComAdapter(SourceAdapter):
    name = ScraperType.CARS_COM
    pace_listings = False

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        return get_market_url(market, params)

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        logger.info(f"Navigating to {url}")
        response = await session.http.get(url)
        vehicles = parse_search_results(response.text)
        logger.info(f"Found {len(vehicles)} vehicles")
        return SourcePage(candidates=vehicles, total=len(vehicles), has_more=False)

    async def extract_listing(self, session: SourceSession, candidate: ScrapedVehicle) -> Optional[ScrapedVehicle]:
        return candidate

    def describe_candidate(self, candidate: Any) -> str:
        return getattr(candidate, "link", str(candidate))
