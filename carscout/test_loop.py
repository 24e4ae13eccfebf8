"""
Tests for the source execution loop using a scripted adapter.
"""
import asyncio

from carscout.config import ScraperConfig
from carscout.errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    ExtractionError,
    TransientNetworkError,
)
from carscout.loop import SourceRun, filter_duplicates_by_image
from carscout.models import ExecutionStatus, Market, MarketSetting, ScrapedVehicle, ScraperType
from carscout.sources.base import SourceAdapter, SourcePage

OLD_DATE = "2000-01-01T00:00:00+00:00"


def car(n, image=None, **overrides):
    fields = dict(
        vehicle_original_id=str(n),
        make="Honda",
        model="Civic",
        link=f"https://example.test/listing/{n}",
        images=[image] if image else [],
    )
    fields.update(overrides)
    return ScrapedVehicle(**fields)


class FakeHttp:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.closed = False
        self.shots = []

    async def screenshot(self, name):
        self.shots.append(name)
        return f"screenshots/{name}.png"

    async def close(self):
        self.closed = True


class ScriptedAdapter(SourceAdapter):
    """Serves fixed pages; candidates are vehicles, None, exceptions or callables producing those."""

    name = ScraperType.KSL

    def __init__(self, pages, prepare_errors=(), page_errors=(), url_error=None, check_error=None):
        self.pages = pages
        self.prepare_errors = list(prepare_errors)
        self.page_errors = list(page_errors)
        self.url_error = url_error
        self.check_error = check_error
        self.prepare_calls = 0
        self.fetch_calls = []
        self.extracted = []

    def resolve_url(self, market, params):
        if self.url_error:
            raise self.url_error
        return "https://example.test/search"

    async def prepare(self, session):
        self.prepare_calls += 1
        if self.prepare_errors:
            raise self.prepare_errors.pop(0)

    async def fetch_page(self, session, url, page_number):
        self.fetch_calls.append(page_number)
        if self.page_errors:
            raise self.page_errors.pop(0)
        candidates = self.pages[page_number - 1]
        return SourcePage(candidates=candidates, total=None, has_more=page_number < len(self.pages))

    async def extract_listing(self, session, candidate):
        self.extracted.append(candidate)
        if callable(candidate):
            candidate = candidate()
        if isinstance(candidate, Exception):
            raise candidate
        return candidate

    def check_results(self, session, results):
        if self.check_error:
            raise self.check_error


class BrowserAdapter(ScriptedAdapter):
    requires_browser = True


class DedupeAdapter(ScriptedAdapter):
    dedupe_results = True


MARKET = Market(id=7, zip_code="80012", location="Aurora", settings=(MarketSetting("tier", "1"),))


def run(adapter, config=None, clock=None, browser=None):
    http = FakeHttp()
    browser = browser or FakeBrowser()

    async def browser_factory(cfg):
        return browser

    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    source_run = SourceRun(
        adapter,
        MARKET,
        config or ScraperConfig(pacing_enabled=False),
        browser_factory=browser_factory,
        http_factory=lambda cfg: http,
        **kwargs,
    )
    results = asyncio.run(source_run.execute())
    return source_run, results, http, browser


def test_accounting_rule_holds():
    adapter = ScriptedAdapter([[car(1), car(2, model=""), ExtractionError("bad markup"), None, car(3)]])
    source_run, results, http, _ = run(adapter)

    assert results.success
    assert results.execution_status is ExecutionStatus.SUCCESS
    assert results.valid_vehicles == 2
    assert results.skipped_vehicles == 2
    assert results.total_vehicles == results.valid_vehicles + results.skipped_vehicles
    assert [v.vehicle_original_id for v in results.results] == ["1", "3"]
    assert http.closed


def test_expired_listing_stops_collection():
    adapter = ScriptedAdapter([[car(1), car(2, listing_date=OLD_DATE), car(3)]])
    source_run, results, _, _ = run(adapter)

    assert results.success
    assert results.valid_vehicles == 1
    assert results.total_vehicles == 1
    assert len(adapter.extracted) == 2
    assert source_run.stop_reason == "out of date"


def test_results_cap_stops_collection():
    adapter = ScriptedAdapter([[car(n) for n in range(5)], [car(9)]])
    config = ScraperConfig(pacing_enabled=False, max_results=2)
    _, results, _, _ = run(adapter, config)

    assert results.valid_vehicles == 2
    assert adapter.fetch_calls == [1]


def test_six_consecutive_failures_abort_with_success():
    adapter = ScriptedAdapter([[ExtractionError(f"broken {n}") for n in range(10)]])
    source_run, results, _, _ = run(adapter)

    assert results.success
    assert source_run.extraction_errors == 6
    assert len(adapter.extracted) == 6
    assert results.skipped_vehicles == 6
    assert results.valid_vehicles == 0


def test_successful_listing_resets_error_streak():
    candidates = []
    for n in range(3):
        candidates.extend([ExtractionError("x")] * 5)
        candidates.append(car(n))
    adapter = ScriptedAdapter([candidates])
    source_run, results, _, _ = run(adapter)

    assert source_run.stop_reason is None
    assert results.valid_vehicles == 3
    assert results.skipped_vehicles == 15


def test_paginates_until_last_page():
    adapter = ScriptedAdapter([[car(1)], [car(2)], [car(3)]])
    source_run, results, _, _ = run(adapter)

    assert adapter.fetch_calls == [1, 2, 3]
    assert source_run.pages_fetched == 3
    assert results.valid_vehicles == 3


def test_transient_page_errors_are_retried():
    adapter = ScriptedAdapter([[car(1)]], page_errors=[TransientNetworkError("reset"), TransientNetworkError("reset")])
    _, results, _, _ = run(adapter)

    assert results.success
    assert adapter.fetch_calls == [1, 1, 1]


def test_page_retries_are_bounded():
    adapter = ScriptedAdapter([[car(1)]], page_errors=[TransientNetworkError("reset")] * 3)
    config = ScraperConfig(pacing_enabled=False, page_attempts=2)
    _, results, http, _ = run(adapter, config)

    assert not results.success
    assert results.error_kind is ErrorKind.TRANSIENT
    assert adapter.fetch_calls == [1, 1]
    assert http.closed


def test_non_transient_page_error_is_not_retried():
    adapter = ScriptedAdapter([[car(1)]], page_errors=[ExtractionError("layout changed")])
    _, results, _, _ = run(adapter)

    assert not results.success
    assert results.error_kind is ErrorKind.EXTRACTION
    assert adapter.fetch_calls == [1]
    assert results.execution_message == "layout changed"


def test_credential_failure_in_prepare_fails_market_and_closes_session():
    adapter = BrowserAdapter([[car(1)]], prepare_errors=[AuthenticationError("bad password", credential_related=True)])
    _, results, http, browser = run(adapter)

    assert not results.success
    assert results.error_kind is ErrorKind.CREDENTIAL
    assert adapter.prepare_calls == 1
    assert adapter.fetch_calls == []
    assert http.closed and browser.closed


def test_authentication_error_during_extraction_fails_market():
    adapter = ScriptedAdapter([[car(1), AuthenticationError("logged out", credential_related=True), car(2)]])
    source_run, results, _, _ = run(adapter)

    assert not results.success
    assert results.error_kind is ErrorKind.CREDENTIAL
    assert source_run.extraction_errors == 0


def test_check_results_can_fail_a_run():
    adapter = ScriptedAdapter([[]], check_error=ExtractionError("No results found - Possible soft block"))
    _, results, _, _ = run(adapter)

    assert not results.success
    assert "soft block" in results.execution_message


def test_configuration_error_before_session():
    adapter = ScriptedAdapter([[car(1)]], url_error=ConfigurationError("Craigslist location not found for market 7"))
    _, results, http, _ = run(adapter)

    assert not results.success
    assert results.error_kind is ErrorKind.CONFIGURATION
    assert adapter.prepare_calls == 0
    assert not http.closed


def test_unexpected_url_error_fails_market_without_raising():
    adapter = ScriptedAdapter([[car(1)]], url_error=KeyError("location"))
    _, results, http, _ = run(adapter)

    assert not results.success
    assert results.execution_status is ExecutionStatus.ERROR
    assert results.error_kind is ErrorKind.UNKNOWN
    assert "location" in results.execution_message
    assert adapter.prepare_calls == 0
    assert not http.closed


def test_duplicate_first_images_collapse():
    adapter = DedupeAdapter([[car(1, "a.jpg"), car(2, "a.jpg"), car(3), car(4), car(5, "b.jpg")]])
    _, results, _, _ = run(adapter)

    assert [v.vehicle_original_id for v in results.results] == ["1", "3", "4", "5"]
    assert results.valid_vehicles == 4
    assert results.skipped_vehicles == 1
    assert results.total_vehicles == 5


def test_filter_duplicates_by_image_keeps_imageless():
    vehicles = [car(1), car(2), car(3, "x"), car(4, "x")]
    assert [v.vehicle_original_id for v in filter_duplicates_by_image(vehicles)] == ["1", "2", "3"]


def test_time_budget_stops_collection():
    now = {"t": 0.0}

    def slow_listing():
        now["t"] += 2000
        return car(len(adapter.extracted))

    adapter = ScriptedAdapter([[slow_listing, slow_listing, slow_listing], [car(9)]])
    source_run, results, _, _ = run(adapter, clock=lambda: now["t"])

    assert results.success
    assert results.valid_vehicles == 2
    assert adapter.fetch_calls == [1]
    assert "time budget" in source_run.stop_reason


def test_failure_screenshot_is_captured_when_enabled():
    adapter = BrowserAdapter([[car(1)]], page_errors=[ExtractionError("layout changed")])
    config = ScraperConfig(pacing_enabled=False, screenshots_enabled=True)
    _, results, _, browser = run(adapter, config)

    assert not results.success
    assert results.screenshots == ["screenshots/ksl-market-7-error.png"]
    assert browser.closed
