"""
Tests for source adapter helpers and the adapter registry.
"""
import asyncio

import pytest

from carscout.config import ScraperConfig
from carscout.errors import AuthenticationError, ConfigurationError, ErrorKind, ExtractionError
from carscout.models import Market, MarketSetting, MarketVehiclesType, ScraperResults, ScraperType
from carscout.pacing import Pacer
from carscout.params import resolve_params
from carscout.sources import SOURCE_REGISTRY, get_adapter_class
from carscout.sources import autotrader, cargurus, cars_com, craigslist, facebook
from carscout.sources.base import SourceSession

CONFIG = ScraperConfig(max_year=2024, pacing_enabled=False)


def make_market(*settings, vehicles_type=MarketVehiclesType.CARS):
    return Market(
        id=3,
        zip_code="80012",
        location="Aurora",
        vehicles_type=vehicles_type,
        settings=tuple(MarketSetting(n, v) for n, v in settings),
    )


def test_registry_covers_every_source():
    assert set(SOURCE_REGISTRY) == set(ScraperType)
    assert get_adapter_class("CARS.COM") is cars_com.CarsComAdapter
    assert get_adapter_class(ScraperType.KSL).name is ScraperType.KSL


def test_unknown_source_is_rejected():
    with pytest.raises(ConfigurationError, match="Unknown scraper type: ebay"):
        get_adapter_class("ebay")
    with pytest.raises(ConfigurationError):
        get_adapter_class(ScraperType.KSL, registry={})


# Craigslist

def test_craigslist_url_needs_location():
    market = make_market()
    with pytest.raises(ConfigurationError, match="Craigslist location not found for market 3"):
        craigslist.get_market_url(market, resolve_params(market, CONFIG))


def test_craigslist_url_category_follows_vehicle_type():
    cars = make_market(("craigslist-location", "denver"))
    rvs = make_market(("craigslist-location", "denver/"), vehicles_type=MarketVehiclesType.RV)

    url = craigslist.get_market_url(cars, resolve_params(cars, CONFIG))
    assert url.startswith("https://denver.craigslist.org/search/cta?")
    assert "postal=80012" in url and "purveyor=owner" in url
    assert craigslist.get_market_url(rvs, resolve_params(rvs, CONFIG)).startswith(
        "https://denver.craigslist.org/search/rva?"
    )


def test_craigslist_page_url():
    assert craigslist.page_url("https://x/search/cta?a=1", 0) == "https://x/search/cta?a=1&auto_title_status=1"
    assert craigslist.page_url("https://x/search/cta?a=1", 2).endswith("#search=1~gallery~2~0")


def test_craigslist_search_page_stops_at_nearby_results():
    html = """
    <ol>
      <li><a class="main" href="https://denver.craigslist.org/cto/d/a/1.html">one</a></li>
      <li><a class="main" href="https://denver.craigslist.org/cto/d/b/2.html">two</a></li>
      <li><a class="main" href="https://denver.craigslist.org/cto/d/b/2.html">two again</a></li>
      <li class="nearby-separator">nearby</li>
      <li><a class="main" href="https://boulder.craigslist.org/cto/d/c/3.html">three</a></li>
    </ol>
    <span class="cl-page-number">1 - 2 of 1,234</span>
    """
    links, total = craigslist.parse_search_page(html)
    assert links == [
        "https://denver.craigslist.org/cto/d/a/1.html",
        "https://denver.craigslist.org/cto/d/b/2.html",
    ]
    assert total == 1234


def test_craigslist_build_vehicle():
    details = {
        "title": "2015 Honda Civic EX",
        "original_title": "  Civic  EX low miles ",
        "post": {"image": ["https://images.craigslist.org/a.jpg"], "description": "Clean", "offers": {"price": "9500"}},
        "listing_date": "2024-06-01T10:00:00-06:00",
        "attrs": ["odometer: 85,000", "VIN: 1HGCV"],
    }
    link = "https://denver.craigslist.org/cto/d/aurora-civic/7712345678.html"
    v = craigslist.build_vehicle(details, link, {"email": "abc@sale.craigslist.org", "phone": "555-1234"})

    assert (v.year, v.make, v.model, v.trim) == (2015, "Honda", "Civic", "EX")
    assert v.vehicle_original_id == "7712345678"
    assert v.original_title == "Civic EX low miles"
    assert v.mileage == 85000
    assert v.vin == "1HGCV"
    assert v.asking_price == 9500
    assert v.seller_email == "abc@sale.craigslist.org"
    assert v.first_image == "https://images.craigslist.org/a.jpg"
    assert v.listing_date == "2024-06-01T10:00:00-06:00"



POSTING_HTML = """
<html><body>
  <span id="titletextonly">Civic EX</span>
  <div class="attrgroup"><span>2015 Honda Civic EX</span></div>
  <div class="attrgroup"><span>odometer: 85,000</span></div>
  <span class="price">$9,500</span>
  <section id="postingbody">Clean</section>
</body></html>
"""


class PostingBrowser:
    def __init__(self):
        self.waited = []

    async def navigate(self, url, timeout_seconds=None, wait_until="domcontentloaded"):
        pass

    async def wait_for_selector(self, selector, timeout_seconds=None):
        self.waited.append(selector)

    async def content(self):
        return POSTING_HTML


class AbandonedCaptcha:
    def __init__(self):
        self.calls = []

    async def solve(self, url, trigger_selector):
        self.calls.append((url, trigger_selector))
        return False


def test_craigslist_abandoned_captcha_keeps_listing_without_contact():
    market = make_market(("craigslist-location", "denver"))
    browser = PostingBrowser()
    captcha = AbandonedCaptcha()
    session = SourceSession(
        market, resolve_params(market, CONFIG), CONFIG, Pacer(enabled=False),
        http=None, browser=browser, captcha=captcha,
    )
    link = "https://denver.craigslist.org/cto/d/aurora-civic/7712345678.html"

    vehicle = asyncio.run(craigslist.CraigslistAdapter().extract_listing(session, link))

    assert captcha.calls == [(link, craigslist.REPLY_BUTTON)]
    assert browser.waited == []
    assert (vehicle.make, vehicle.model, vehicle.mileage) == ("Honda", "Civic", 85000)
    assert (vehicle.seller_email, vehicle.seller_phone) == ("", "")


# Facebook

def test_facebook_url_and_radius():
    market = make_market(("search-fb-link", "https://www.facebook.com/marketplace/denver/"))
    url = facebook.get_market_url(market, resolve_params(market, CONFIG))
    assert url.startswith("https://www.facebook.com/marketplace/denver/vehicles?")
    assert "topLevelVehicleType=car_truck" in url

    assert facebook.get_facebook_radius(45) == (5, 40)
    assert facebook.get_facebook_radius(1000) == (10, 500)


def test_facebook_url_needs_search_link():
    market = make_market()
    with pytest.raises(ConfigurationError):
        facebook.get_market_url(market, resolve_params(market, CONFIG))


FB_HTML = (
    '"marketplace_listing_title":"2014 Toyota Tacoma","id":"123456",'
    '"listing_price":{"amount_with_offset":"1800000","currency":"USD","amount":"18000.00"},'
    '"redacted_description":{"text":"One owner truck [hidden information]"},'
    '"listing_photos":[{"accessibility_caption":"Photo","image":{"uri":"https://scontent.test/1.jpg"}}],'
    '"vehicle_seller_type":"PRIVATE_SELLER",'
    '"vehicle_odometer_data":{"unit":"MILES","value":120000},'
    '"creation_time":1718400000,'
    '"vehicle_make_display_name":"Toyota","vehicle_model_display_name":"Tacoma",'
    '"vehicle_trim_display_name":"SR5",'
    '"actors":[{"__typename":"User","name":"Alex"}],'
    '"vehicle_number_of_owners":"TWO"'
)


def test_facebook_listing_html_is_parsed():
    v = facebook.parse_listing_html(FB_HTML, "https://www.facebook.com/marketplace/item/123456/?ref=search")

    assert v.vehicle_original_id == "123456"
    assert v.original_title == "2014 Toyota Tacoma"
    assert (v.year, v.make, v.model, v.trim) == (2014, "Toyota", "Tacoma", "SR5")
    assert v.asking_price == 18000.0
    assert v.mileage == 120000
    assert v.description == "One owner truck"
    assert v.images == ["https://scontent.test/1.jpg"]
    assert v.seller_name == "Alex"
    assert v.total_owners == 2
    assert not v.suspected_dealer
    assert v.link == "https://www.facebook.com/marketplace/item/123456/"
    assert v.listing_date.startswith("2024-06-14")


def test_facebook_dealer_seller_is_flagged():
    html = FB_HTML.replace("PRIVATE_SELLER", "DEALERSHIP")
    v = facebook.parse_listing_html(html, "https://www.facebook.com/marketplace/item/123456/")
    assert v.suspected_dealer


def test_facebook_rejects_non_item_links():
    with pytest.raises(ExtractionError):
        facebook.parse_listing_html(FB_HTML, "https://www.facebook.com/marketplace/denver")


class FakeLoginBrowser:
    def __init__(self, urls):
        self.urls = list(urls)
        self.cookies = None
        self.typed = {}
        self.clicked = []

    async def set_cookies(self, cookies):
        self.cookies = cookies

    async def navigate(self, url, timeout_seconds=None, wait_until="domcontentloaded"):
        pass

    async def type(self, selector, text):
        self.typed[selector] = text

    async def click(self, selector):
        self.clicked.append(selector)

    async def current_url(self):
        return self.urls.pop(0) if len(self.urls) > 1 else self.urls[0]

    async def is_visible(self, selector):
        return False


def fb_session(browser, **config_changes):
    market = make_market(("search-fb-link", "https://www.facebook.com/marketplace/denver"))
    config = CONFIG.with_overrides(**config_changes)
    return SourceSession(
        market, resolve_params(market, config), config, Pacer(enabled=False), http=None, browser=browser
    )


def test_facebook_wrong_credentials_are_credential_errors():
    browser = FakeLoginBrowser(["https://www.facebook.com/login/?login_attempt=1"])
    session = fb_session(browser, facebook_username="user@example.com", facebook_password="secret")

    with pytest.raises(AuthenticationError) as info:
        asyncio.run(facebook.FacebookAdapter().prepare(session))
    assert info.value.credential_related
    assert info.value.kind is ErrorKind.CREDENTIAL
    assert browser.typed == {"#email": "user@example.com", "#pass": "secret"}


def test_facebook_checkpoint_after_cookies_is_credential_error():
    browser = FakeLoginBrowser(["https://www.facebook.com/checkpoint/828281030927956/"])
    session = fb_session(browser, facebook_cookie='[{"name": "c_user", "value": "1", "domain": ".facebook.com", "path": "/"}]')
    adapter = facebook.FacebookAdapter()

    with pytest.raises(AuthenticationError) as info:
        asyncio.run(adapter.prepare(session))
    assert adapter.used_cookies
    assert browser.cookies[0]["name"] == "c_user"
    assert "Cookies: True" in str(info.value)


def test_facebook_cookie_login_succeeds():
    browser = FakeLoginBrowser(["https://www.facebook.com/"])
    session = fb_session(browser, facebook_cookie='[{"name": "xs", "value": "1", "domain": ".facebook.com", "path": "/"}]')
    asyncio.run(facebook.FacebookAdapter().prepare(session))


def test_facebook_requires_credentials():
    session = fb_session(FakeLoginBrowser(["https://www.facebook.com/"]))
    with pytest.raises(ConfigurationError):
        asyncio.run(facebook.FacebookAdapter().prepare(session))


def test_facebook_zero_links_is_soft_block():
    adapter = facebook.FacebookAdapter()
    session = fb_session(None, facebook_username="user@example.com")
    with pytest.raises(ExtractionError, match="Possible soft block"):
        adapter.check_results(session, ScraperResults())


# Cars.com

CARS_COM_HTML = """
<script type="application/ld+json">
{"@type": "ItemList", "itemListElement": [
  {"position": 1, "url": "https://www.cars.com/vehicledetail/abc-123/overview/"}
]}
</script>
<script type="application/ld+json">
{"@type": "Vehicle", "name": "Used 2018 Mazda CX-5 Touring AWD", "vehicleIdentificationNumber": "JM3KF",
 "mileageFromOdometer": {"value": "45,000"}, "description": "Nice"}
</script>
<div class="vehicle-card" data-listing-id="abc-123">
  <span class="primary-price">$19,500</span>
  <div class="seller-name">  Pat   Smith </div>
  <img class="vehicle-image" data-src="https://platform.cstatic-images.com/1.jpg">
</div>
"""


def test_cars_com_results_are_joined():
    (v,) = cars_com.parse_search_results(CARS_COM_HTML)
    assert v.vehicle_original_id == "abc-123"
    assert (v.year, v.make, v.model, v.trim) == (2018, "Mazda", "CX-5", "Touring AWD")
    assert v.mileage == 45000
    assert v.asking_price == 19500
    assert v.seller_name == "Pat Smith"
    assert v.images == ["https://platform.cstatic-images.com/1.jpg"]
    assert v.link == "https://www.cars.com/vehicledetail/abc-123/overview"


def test_cars_com_empty_page():
    assert cars_com.parse_search_results("<html></html>") == []


# Autotrader

def test_autotrader_total_results():
    html = """
    <div class="results-text-container">
      <span class="text-bold">1 - 25</span> of <span class="text-bold">312 Results</span>
    </div>
    """
    assert autotrader.parse_total_results(html) == 312
    with pytest.raises(ExtractionError):
        autotrader.parse_total_results("<div></div>")


def test_autotrader_listing_schemas():
    html = """
    <script data-cmp="lstgSchema" type="application/ld+json">{"vehicleIdentificationNumber": "1FT", "url": "u1"}</script>
    <script data-cmp="lstgSchema" type="application/ld+json">not json</script>
    """
    assert autotrader.parse_listing_schemas(html) == [{"vehicleIdentificationNumber": "1FT", "url": "u1"}]


def test_autotrader_url_uses_nearest_radius():
    market = make_market(("search-radius", "60"))
    url = autotrader.AutotraderAdapter().resolve_url(market, resolve_params(market, CONFIG))
    assert "searchRadius=50" in url
    assert autotrader.CITY_PLACEHOLDER in url


def test_autotrader_detail_mapping():
    v = autotrader.vehicle_from_detail({
        "id": 77, "vin": "1FT", "year": 2019, "make": "Ford", "model": "F-150", "trim": "Used XLT",
        "price": 31999.6, "description": "Line one<br/>Line two", "images": [{"url": "i1"}],
        "public_seller_info": {"first_name": "Lee"}, "vdp_url": "https://www.autotrader.com/x",
    })
    assert v.trim == "XLT"
    assert v.asking_price == 32000
    assert v.description == "Line one\nLine two"
    assert v.seller_name == "Lee"


# CarGurus

def test_cargurus_preflight():
    html = '<script>window.__PREFLIGHT__ = {"totalListings": 42, "droppedFilterCriteria": null};</script>'
    assert cargurus.parse_preflight(html)["totalListings"] == 42
    with pytest.raises(ExtractionError):
        cargurus.parse_preflight("<html></html>")


def test_cargurus_detail_mapping():
    listing = {
        "vin": "5YJ", "year": 2020, "makeName": "Tesla", "modelName": "Model 3", "trimName": "Standard",
        "price": 28999.4, "listingTitle": "2020 Tesla Model 3", "pictures": [{"url": "p1"}, {}],
        "vehicleHistory": {"reportDate": "2024-06-10T00:00:00Z", "ownerCount": 1},
    }
    v = cargurus.vehicle_from_detail(listing, {"id": 991, "sellerFirstName": "Kim"})
    assert v.vehicle_original_id == "991"
    assert v.asking_price == 28999
    assert v.images == ["p1"]
    assert v.total_owners == 1
    assert v.listing_date == "2024-06-10T00:00:00+00:00"
    assert v.link.endswith("listingId=991#listing=991")


def test_cargurus_search_params_snap_radius():
    market = make_market(("search-radius", "60"))
    params = cargurus.get_search_params(market, resolve_params(market, CONFIG))
    assert params["distance"] == 50
    assert params["zip"] == "80012"
