"""
Facebook Marketplace adapter.

Runs a logged-in browser session from the shared account pool. Login failures
that point at the account itself are credential errors and stop the remaining
markets of the job.
"""
import json
import logging
import re
from typing import Any, List, Optional, Tuple
from urllib.parse import urlencode

from ..errors import (
    AuthenticationError,
    ConfigurationError,
    ExtractionError,
    ScraperError,
    TransientNetworkError,
)
from ..models import Market, MarketParams, MarketSettingsType, ScrapedVehicle, ScraperResults, ScraperType
from ..params import take_nearest_radius
from ..two_factor import generate_code
from ..utils import epoch_to_iso, remove_utf8_escaped_characters
from .base import SourceAdapter, SourcePage, SourceSession

logger = logging.getLogger(__name__)

LOGIN_URL = "https://www.facebook.com/login"
CHECKPOINT_URL = "https://www.facebook.com/checkpoint"
TWO_FACTOR_URL = "https://www.facebook.com/checkpoint/?next"
RECOVER_URL = "https://www.facebook.com/recover"
RADIUSES = [1, 2, 5, 10, 20, 40, 60, 80, 100, 250, 500]
REVIEW_LOGIN_TRIES = 5
TWO_FACTOR_ATTEMPTS = 2
PAGE_BLOCK = ".__fb-light-mode.x1n2onr6.x1vjfegm"
ITEM_LINK_RE = re.compile(r"https://www\.facebook\.com/marketplace/item/(\d+)")

OWNERS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}

COLLECT_LINKS_JS = """
() => Array.from(document.querySelectorAll('a[href*="/marketplace/item/"]')).map(a => a.href)
"""

SET_RADIUS_JS = """
async (radiusIndex) => {
  const wait = (ms) => new Promise((resolve) => setTimeout(resolve, ms));
  document.querySelectorAll('[id="seo_filters"]')?.[0]?.querySelectorAll('div')?.[0]?.click();
  await wait(10000);
  document.querySelectorAll('label[aria-label="Radius"]')?.[0]?.click();
  await wait(5000);
  document.querySelectorAll('div[role="listbox"]')?.[0]
    ?.querySelectorAll('div[role="option"]')?.[radiusIndex]?.click();
  await wait(5000);
  document.querySelectorAll('div[aria-label="Apply"]')?.[0]?.click();
  await wait(10000);
}
"""


def get_market_url(market: Market, params: MarketParams) -> str:
    link = (market.setting(MarketSettingsType.SEARCH_FB_LINK) or "").rstrip("/")
    if not link:
        raise ConfigurationError(f"Facebook search link not found for market {market.id}")
    query = urlencode({
        "minPrice": int(params.min_price),
        "maxPrice": int(params.max_price),
        "maxMileage": int(params.max_mileage),
        "maxYear": params.max_year,
        "minYear": params.min_year,
        "sortBy": "creation_time_descend",
        "exact": "true",
        "topLevelVehicleType": "rv_camper" if market.is_rv else "car_truck",
    })
    return f"{link}/vehicles?{query}"


def get_facebook_radius(search_radius: float) -> Tuple[int, int]:
    """Index and value of the nearest radius option of the filter list."""
    value = take_nearest_radius(search_radius, RADIUSES)
    return RADIUSES.index(value), value


def _search(pattern: str, html: str) -> Optional[str]:
    m = re.search(pattern, html)
    return m.group(1).strip() if m else None


def parse_listing_html(html: str, link: str) -> ScrapedVehicle:
    """Read the embedded listing JSON fragments of an item page."""
    m = ITEM_LINK_RE.search(link)
    if not m:
        raise ExtractionError(f"Not a marketplace item link: {link}")
    item_id = m.group(1)

    original_title = remove_utf8_escaped_characters(
        _search(rf'"marketplace_listing_title":"([^"]+)","id":"{item_id}"', html)
    )
    original_title = re.sub(r"\s+", " ", original_title).strip()

    price = _search(r'"listing_price":\{"amount_with_offset":".*?","currency":"USD","amount":"(.*?)"', html)
    description = remove_utf8_escaped_characters(
        (_search(r'"redacted_description":\{"text":"(.*?)"\}', html) or "").replace("'", "", 1)
    )
    description = re.sub(r"\[hidden information\]", "", description, flags=re.IGNORECASE).strip()

    suspected_dealer = False
    images: List[str] = []
    photos_raw = _search(r'"listing_photos":(\[.*?\])', html)
    if photos_raw:
        try:
            photos = json.loads(photos_raw)
        except ValueError:
            photos = []
            logger.info(f"Error parsing listing photos for {item_id}")
        for photo in photos:
            uri = (photo.get("image") or {}).get("uri")
            if uri:
                images.append(uri)
            if "dealer" in (photo.get("accessibility_caption") or "").lower():
                suspected_dealer = True

    if _search(r'"dealership_name":"(.*?)","seller":\{"', html):
        suspected_dealer = True
    if _search(r'"vehicle_seller_type":"(.*?)"', html) != "PRIVATE_SELLER":
        suspected_dealer = True

    mileage = _search(r'"vehicle_odometer_data":\{"unit":"MILES","value":(.*?)\}', html)
    created = _search(r'"creation_time":([0-9]+)', html)
    first = original_title.split(" ")[0] if original_title else ""
    year = int(first) if first.isdigit() else None

    make = remove_utf8_escaped_characters(_search(r'"vehicle_make_display_name":"(.*?)"', html)).strip()
    model = remove_utf8_escaped_characters(_search(r'"vehicle_model_display_name":"(.*?)"', html)).strip()
    trim = remove_utf8_escaped_characters(_search(r'"vehicle_trim_display_name":"(.*?)"', html)).strip()

    return ScrapedVehicle(
        vehicle_original_id=item_id,
        title=f"{year or ''} {make} {model} {trim}".strip(),
        original_title=original_title,
        make=make,
        model=model,
        trim=trim,
        year=year,
        mileage=int(float(mileage)) if mileage and re.fullmatch(r"[\d.]+", mileage) else None,
        description=description,
        asking_price=float(price) if price and re.fullmatch(r"[\d.]+", price) else None,
        seller_name=remove_utf8_escaped_characters(
            _search(r'"actors":\[\{"__typename":"User","name":"(.*?)"', html)
        ).strip(),
        suspected_dealer=suspected_dealer,
        images=images,
        listing_date=epoch_to_iso(int(created)) if created else None,
        link=link.split("?")[0],
        total_owners=OWNERS.get(_search(r'"vehicle_number_of_owners":"(.*?)"', html) or ""),
    )


class FacebookAdapter(SourceAdapter):
    name = ScraperType.FACEBOOK
    requires_browser = True
    shared_account_pool = True

    def __init__(self):
        self.links_found = 0
        self.used_cookies = False

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        return get_market_url(market, params)

    def _account(self, session: SourceSession) -> str:
        return session.config.facebook_username or "No Authentication"

    def _login_error(self, session: SourceSession, where: str) -> AuthenticationError:
        return AuthenticationError(
            f"There was an error logging into facebook with {self._account(session)} {where} "
            f"- Cookies: {self.used_cookies}",
            credential_related=True,
        )

    async def prepare(self, session: SourceSession):
        config = session.config
        if config.facebook_ignore_auth:
            logger.info("Ignoring facebook authentication")
            return
        if not config.facebook_cookie and not (config.facebook_username and config.facebook_password):
            raise ConfigurationError("Facebook credentials not set")
        await self.authenticate(session)

    async def authenticate(self, session: SourceSession):
        browser = session.browser
        config = session.config
        logger.info("Authenticating with facebook")

        cookies = None
        if config.facebook_cookie:
            try:
                cookies = json.loads(config.facebook_cookie)
            except ValueError as e:
                logger.error(f"Error parsing facebook cookies: {e}")

        if cookies:
            self.used_cookies = True
            logger.info("Using cookies to authenticate")
            await browser.set_cookies(cookies)
            await browser.navigate(LOGIN_URL)
        else:
            await browser.navigate(LOGIN_URL)
            logger.info("Using credentials to authenticate")
            await browser.type("#email", config.facebook_username or "")
            await browser.type("#pass", config.facebook_password or "")
            await browser.click("#loginbutton")
            await session.pacer.pause(1.0, 2.0)
            current = await browser.current_url()
            if "login_attempt" in current:
                raise AuthenticationError(
                    f"There was an error logging into facebook with account {self._account(session)} "
                    f"- Cookies: {self.used_cookies}. Possible wrong credentials",
                    credential_related=True,
                )

        current = await browser.current_url()
        if current.startswith(TWO_FACTOR_URL) and config.facebook_2fa_secret:
            await self.submit_two_factor_code(session)

        current = await browser.current_url()
        for prefix in (LOGIN_URL, CHECKPOINT_URL, RECOVER_URL):
            if current.startswith(prefix):
                raise self._login_error(session, prefix)
        logger.info("Facebook authentication succeeded")

    async def submit_two_factor_code(self, session: SourceSession):
        browser = session.browser
        logger.info("Two factor authentication required")
        for attempt in range(1, TWO_FACTOR_ATTEMPTS + 1):
            try:
                code = generate_code(session.config.facebook_2fa_secret)
            except ValueError as e:
                raise AuthenticationError(
                    f"There was an error logging into facebook with {self._account(session)} "
                    f"and two factor authentication code: {e}",
                    credential_related=True,
                ) from e

            await browser.type("#approvals_code", code)
            await browser.click("#checkpointSubmitButton")
            await session.pacer.pause()

            if await browser.is_visible("#approvals_code"):
                logger.info(f"Two factor code rejected (attempt {attempt}), trying again")
                continue

            # Save browser, then walk through "review recent login" screens
            await browser.click("#checkpointSubmitButton")
            await session.pacer.pause()
            for _ in range(REVIEW_LOGIN_TRIES):
                if not (await browser.current_url()).startswith(TWO_FACTOR_URL):
                    break
                logger.info("Review recent login...")
                await browser.click("#checkpointSubmitButton")
                await session.pacer.pause()
            await browser.navigate(LOGIN_URL)
            return

        await browser.navigate(LOGIN_URL)

    async def _clear_page_block(self, session: SourceSession):
        if await session.browser.is_visible(PAGE_BLOCK):
            try:
                await session.browser.click(PAGE_BLOCK)
            except ScraperError as e:
                logger.debug(f"Unable to clear page block: {e}")

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        browser = session.browser
        logger.info(f"Navigating to {url}")
        await browser.navigate(url, timeout_seconds=360)
        await session.pacer.pause()
        await self._clear_page_block(session)

        index, miles = get_facebook_radius(session.params.search_radius)
        logger.info(f"Setting the search radius to {miles} miles")
        try:
            await browser.evaluate(SET_RADIUS_JS, index)
        except TransientNetworkError:
            raise
        except ScraperError as e:
            raise ExtractionError(f"Unable to set the search radius: {e}") from e
        await session.pacer.pause()

        links: List[str] = []
        for href in await browser.evaluate(COLLECT_LINKS_JS) or []:
            m = ITEM_LINK_RE.search(href or "")
            if m:
                clean = m.group(0)
                if clean not in links:
                    links.append(clean)
        self.links_found = len(links)
        logger.info(f"Found {len(links)} vehicles on the page")
        return SourcePage(candidates=links, total=len(links), has_more=False)

    async def extract_listing(self, session: SourceSession, link: str) -> Optional[ScrapedVehicle]:
        browser = session.browser
        await browser.navigate(link)
        await session.pacer.pause()
        await self._clear_page_block(session)

        current = await browser.current_url()
        if current.startswith(LOGIN_URL) or current.startswith(CHECKPOINT_URL):
            raise self._login_error(session, current)

        html = await browser.content()
        vehicle = parse_listing_html(html, link)
        logger.info(f"Found vehicle {vehicle.vehicle_original_id} - {vehicle.original_title}")
        return vehicle

    def check_results(self, session: SourceSession, results: ScraperResults):
        if self.links_found == 0:
            raise ExtractionError(f"No results found - {self._account(session)} - Possible soft block")

    def describe_candidate(self, candidate: Any) -> str:
        return str(candidate)
