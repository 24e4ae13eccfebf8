"""
Craigslist adapter.

Search pages are rendered in the browser and parsed with BeautifulSoup. Each
listing is visited individually; when a CAPTCHA solver is available the reply
button is used to reveal seller contact details.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from ..errors import ConfigurationError, ExtractionError, ScraperError
from ..models import Market, MarketParams, MarketSettingsType, ScrapedVehicle, ScraperType
from ..utils import clean_text, parse_iso, remove_utf8_escaped_characters, remove_years
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 120
REPLY_BUTTON = ".reply-button"


def get_market_url(market: Market, params: MarketParams) -> str:
    location = (market.setting(MarketSettingsType.CRAIGSLIST_LOCATION) or "").rstrip("/")
    if not location:
        raise ConfigurationError(f"Craigslist location not found for market {market.id}")

    category = "rva" if market.is_rv else "cta"
    query = urlencode({
        "min_price": int(params.min_price),
        "max_price": int(params.max_price),
        "max_auto_miles": int(params.max_mileage),
        "max_auto_year": params.max_year,
        "min_auto_year": params.min_year,
        "search_distance": int(params.search_radius),
        "daysSinceListed": params.days_since_listed,
        "postal": market.zip_code,
        "sortBy": "date",
        "srchType": "T",
        "searchNearby": 1,
        "purveyor": "owner",
        "bundleDuplicates": 1,
    })
    return f"https://{location}.craigslist.org/search/{category}?{query}&auto_title_status=1&auto_title_status=5"


def page_url(url: str, page_index: int) -> str:
    """Zero-based gallery page of a search."""
    base = f"{url}&auto_title_status=1"
    return base if page_index == 0 else f"{base}#search=1~gallery~{page_index}~0"


def parse_search_page(html: str) -> Tuple[List[str], int]:
    """Return listing links above the nearby separator and the total result count."""
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    for item in soup.select("ol > li"):
        if "nearby-separator" in (item.get("class") or []):
            break
        anchor = item.select_one("a.main")
        href = anchor.get("href") if anchor else None
        if href and href not in links:
            links.append(href)

    total = 0
    counter = soup.select_one(".cl-page-number")
    if counter:
        parts = counter.get_text().split(" of ")
        if len(parts) > 1:
            digits = re.sub(r"[^\d]", "", parts[1])
            total = int(digits) if digits else 0
    return links, total


def parse_posting(html: str) -> Dict[str, Any]:
    """Pull the raw fields of a posting page."""
    soup = BeautifulSoup(html, "html.parser")

    post: Dict[str, Any]
    ld = soup.find(id="ld_posting_data")
    try:
        post = json.loads(ld.string if ld else "")
    except (TypeError, ValueError):
        body = soup.find(id="postingbody")
        price = soup.select_one(".price")
        post = {
            "image": [],
            "description": body.get_text() if body else "",
            "offers": {"price": re.sub(r"[^0-9]", "", price.get_text() if price else "")},
        }

    title_el = soup.find(id="titletextonly")
    groups = soup.select(".attrgroup")
    title = ""
    attrs: List[str] = []
    if groups:
        first = groups[0].find("span")
        title = first.get_text() if first else ""
    if len(groups) > 1:
        attrs = [span.get_text() for span in groups[1].find_all("span")]

    time_el = soup.find("time")
    return {
        "post": post,
        "original_title": title_el.get_text() if title_el else "",
        "title": title,
        "listing_date": time_el.get("datetime") if time_el else None,
        "attrs": attrs,
    }


def _attr_value(attrs: List[str], marker: str) -> Optional[str]:
    for a in attrs:
        if marker in a and ":" in a:
            return a.split(":", 1)[1].strip()
    return None


def build_vehicle(details: Dict[str, Any], link: str, contact: Optional[Dict[str, str]] = None) -> ScrapedVehicle:
    contact = contact or {}
    heading = remove_utf8_escaped_characters(details.get("title") or "").strip()
    tokens = heading.split(" ") if heading else []
    year = int(tokens[0]) if tokens and tokens[0].isdigit() else None

    words = remove_years(re.sub(r"range\srover", "range-rover", heading, flags=re.IGNORECASE)).split(" ")
    make = words[0] if len(words) > 0 else ""
    model = words[1] if len(words) > 1 else ""
    trim = " ".join(words[2:]).replace("Used", "").strip()

    post = details.get("post") or {}
    offers = post.get("offers") or {}
    try:
        price = round(float(offers.get("price") or 0))
    except (TypeError, ValueError):
        price = 0

    images = post.get("image") or []
    if isinstance(images, str):
        images = [images]

    listed = parse_iso(details.get("listing_date"))
    mileage = _attr_value(details.get("attrs") or [], "odometer")
    m = re.search(r"/(\d+)\.html$", link)

    return ScrapedVehicle(
        vehicle_original_id=m.group(1) if m else "",
        vin=_attr_value(details.get("attrs") or [], "VIN") or "",
        title=f"{year or ''} {make} {model} {trim}".strip(),
        original_title=clean_text(details.get("original_title")),
        make=make,
        model=model,
        trim=trim,
        year=year,
        mileage=int(re.sub(r"[^\d]", "", mileage)) if mileage and re.search(r"\d", mileage) else None,
        description=remove_utf8_escaped_characters((post.get("description") or "").replace("'", "", 1)),
        asking_price=price,
        seller_phone=contact.get("phone") or contact.get("call") or "",
        seller_email=contact.get("email") or "",
        images=list(images),
        listing_date=listed.isoformat() if listed else None,
        link=link,
        total_owners=0,
    )


class CraigslistAdapter(SourceAdapter):
    name = ScraperType.CRAIGSLIST
    requires_browser = True
    uses_captcha = True
    dedupe_results = True

    def __init__(self):
        self.total_results = 0
        self.total_pages = 0

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        return get_market_url(market, params)

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        target = page_url(url, page_number - 1)
        logger.info(f"Navigating to {target}")
        await session.browser.navigate(target)
        await session.pacer.pause(2.0, 4.0)

        html = await session.browser.content()
        links, total = parse_search_page(html)
        if page_number == 1:
            self.total_results = total
            self.total_pages = math.ceil(total / RESULTS_PER_PAGE)
            logger.info(f"Found {total} links in {self.total_pages} pages for market {session.market.id}")
        return SourcePage(candidates=links, total=total, has_more=page_number < self.total_pages)

    async def _contact_details(self, session: SourceSession) -> Optional[Dict[str, str]]:
        browser = session.browser
        try:
            await browser.wait_for_selector(".reply-option-header", timeout_seconds=10)
        except ScraperError:
            logger.info("Captcha is not solved, contact details unavailable")
            return None
        await browser.click(".reply-option-header")
        await browser.wait_for_selector(".reply-email-localpart")
        email = await browser.text_of(".reply-email-localpart")
        return {
            "email": f"{email.strip()}@sale.craigslist.org" if email else "",
            "call": clean_text(await browser.text_of(".reply-content-phone")),
            "phone": clean_text(await browser.text_of(".reply-content-text")),
        }

    async def extract_listing(self, session: SourceSession, link: str) -> Optional[ScrapedVehicle]:
        browser = session.browser
        await browser.navigate(link, timeout_seconds=30, wait_until="networkidle")
        logger.info(f"Processing link {link}")

        contact = None
        if session.captcha is not None:
            if await session.captcha.solve(link, REPLY_BUTTON):
                contact = await self._contact_details(session)
        else:
            logger.debug("No captcha solver configured, skipping contact details")

        html = await browser.content()
        details = parse_posting(html)
        if not details["title"] and not details["original_title"]:
            raise ExtractionError(f"Posting {link} has no title")
        vehicle = build_vehicle(details, link, contact)
        logger.info(f"Found vehicle {vehicle.vehicle_original_id} - {vehicle.original_title}")
        return vehicle
