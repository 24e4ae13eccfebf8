"""
Source execution loop.

One SourceRun drives one adapter against one market:

    Init -> Paginating -> Collecting -> Classifying -> (Continue | Terminate) -> Finalize

Transient page failures are retried with capped exponential backoff, listing
failures are absorbed as skips until they trend, and the run stops on
expiration, the results cap, the continuous-error breaker or the time budget.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional

from .captcha import CaptchaClassifier, CaptchaSolver
from .classifier import VehicleClassifier, Verdict
from .config import ScraperConfig
from .errors import (
    AuthenticationError,
    classify_error,
    compute_backoff_seconds,
    is_transient,
)
from .ignore_terms import IgnoreTermMatcher
from .models import Market, MarketParams, ScrapedVehicle, ScraperResults
from .pacing import Pacer
from .params import resolve_params
from .sources.base import SourceAdapter, SourcePage, SourceSession
from .transport import HttpClient, PlaywrightBrowser
from .utils import now_utc

logger = logging.getLogger(__name__)


async def launch_browser(config: ScraperConfig):
    return await PlaywrightBrowser.launch(config)


def make_http_client(config: ScraperConfig) -> HttpClient:
    return HttpClient(timeout_seconds=config.navigation_timeout_seconds, proxy=config.proxy)


def filter_duplicates_by_image(vehicles: List[ScrapedVehicle]) -> List[ScrapedVehicle]:
    """Keep the first vehicle per first-image URL; image-less vehicles always stay."""
    seen = set()
    kept = []
    for v in vehicles:
        first = v.first_image
        if not first:
            kept.append(v)
        elif first not in seen:
            seen.add(first)
            kept.append(v)
    return kept


class SourceRun:
    """Execute one source adapter for one market."""

    def __init__(
        self,
        adapter: SourceAdapter,
        market: Market,
        config: ScraperConfig,
        browser_factory: Callable[[ScraperConfig], Awaitable[Any]] = launch_browser,
        http_factory: Callable[[ScraperConfig], Any] = make_http_client,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = now_utc,
        pacer: Optional[Pacer] = None,
    ):
        self.adapter = adapter
        self.market = market
        self.config = config
        self._browser_factory = browser_factory
        self._http_factory = http_factory
        self._clock = clock
        self._now = now
        self.pacer = pacer or Pacer(
            config.min_delay_seconds, config.max_delay_seconds, enabled=config.pacing_enabled
        )
        self._matcher = IgnoreTermMatcher(config.ignore_terms)

        self.valid: List[ScrapedVehicle] = []
        self.skipped: List[ScrapedVehicle] = []
        self.extraction_errors = 0
        self.continuous_errors = 0
        self.pages_fetched = 0
        self.stop_reason: Optional[str] = None
        self.current_url: Optional[str] = None
        self.screenshots: List[str] = []
        self._started: Optional[float] = None

    @property
    def source(self) -> str:
        return self.adapter.name.value

    @property
    def stopped(self) -> bool:
        return self.stop_reason is not None

    def _stop(self, reason: str):
        if self.stop_reason is None:
            self.stop_reason = reason
            logger.info(f"- {self.source}: stopping market {self.market.id}: {reason}")

    def _time_exceeded(self) -> bool:
        elapsed = self._clock() - self._started
        if elapsed > self.config.max_execution_seconds:
            self._stop(f"execution time budget exceeded ({elapsed:.0f}s)")
            return True
        return False

    @asynccontextmanager
    async def _open_session(self, params: MarketParams):
        http = self._http_factory(self.config)
        browser = None
        try:
            if self.adapter.requires_browser:
                browser = await self._browser_factory(self.config)
            captcha = None
            if browser is not None and self.adapter.uses_captcha and self.config.captcha_api_key:
                captcha = CaptchaSolver(
                    browser,
                    http,
                    CaptchaClassifier(http, self.config.captcha_api_key, self.config.captcha_api_url),
                    self.pacer,
                    max_attempts=self.config.captcha_max_attempts,
                    prompt_substitutions=self.config.prompt_substitutions,
                )
                captcha.watch()
            yield SourceSession(
                self.market, params, self.config, self.pacer, http, browser=browser, captcha=captcha
            )
        finally:
            if browser is not None:
                try:
                    await browser.close()
                except Exception as e:
                    logger.warning(f"- {self.source}: closing browser failed: {e}")
            await http.close()

    async def _with_retries(self, operation: Callable[[], Awaitable[Any]], attempts: int, what: str) -> Any:
        """Run ``operation``, retrying transient failures up to ``attempts`` times in total."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if not is_transient(e) or attempt >= max(1, attempts):
                    raise
                backoff = compute_backoff_seconds(attempt)
                logger.warning(
                    f"- {self.source}: {what} failed for market {self.market.id} at {self.current_url} "
                    f"(attempt {attempt}/{attempts}), retrying in {backoff:.0f}s: {e}"
                )
                await self.pacer.wait(backoff)

    async def _capture(self, session: SourceSession, tag: str):
        if not self.config.screenshots_enabled or not session.has_browser:
            return
        path = await session.browser.screenshot(f"{self.source}-market-{self.market.id}-{tag}")
        if path:
            self.screenshots.append(path)

    async def _collect(self, session: SourceSession, candidate: Any, classifier: VehicleClassifier):
        if self.adapter.pace_listings:
            await self.pacer.pause(
                self.config.listing_min_delay_seconds, self.config.listing_max_delay_seconds
            )
        if session.captcha is not None:
            session.captcha.begin_listing()

        try:
            vehicle = await self.adapter.extract_listing(session, candidate)
        except AuthenticationError:
            raise
        except Exception as e:
            self.extraction_errors += 1
            self.continuous_errors += 1
            logger.error(
                f"- {self.source}: error extracting {self.adapter.describe_candidate(candidate)} "
                f"in market {self.market.id}: {e}"
            )
            await self._capture(session, "listing-error")
            if self.continuous_errors > self.config.continuous_error_threshold:
                self._stop(f"{self.continuous_errors} continuous errors")
            return
        self.continuous_errors = 0

        if vehicle is None:
            logger.info(f"- {self.source}: declined {self.adapter.describe_candidate(candidate)}")
            return

        result = classifier.classify(vehicle)
        if result.verdict is Verdict.TERMINATE:
            logger.info(f"- {self.source}: vehicle {vehicle.link} is out of date")
            self._stop("out of date")
        elif result.verdict is Verdict.SKIP:
            logger.info(f"- {self.source}: vehicle {vehicle.link} skipped, {result.reason}")
            self.skipped.append(vehicle)
        else:
            self.valid.append(vehicle)
            if len(self.valid) >= self.config.max_results:
                self._stop(f"reached {self.config.max_results} results")

    async def _paginate(self, session: SourceSession, url: str, classifier: VehicleClassifier):
        page_number = 1
        while not self.stopped and not self._time_exceeded():
            if page_number > 1:
                await self.pacer.pause()
            self.current_url = url

            async def fetch() -> SourcePage:
                return await self.adapter.fetch_page(session, url, page_number)

            page = await self._with_retries(fetch, self.config.page_attempts, f"page {page_number}")
            self.pages_fetched += 1
            logger.info(
                f"- {self.source}: page {page_number} of market {self.market.id} "
                f"has {len(page.candidates)} candidates (total {page.total})"
            )

            for index, candidate in enumerate(page.candidates, 1):
                if self.stopped or self._time_exceeded():
                    break
                logger.info(
                    f"- {self.source}: processing candidate {index} of {len(page.candidates)} "
                    f"on page {page_number} in market {self.market.id}"
                )
                await self._collect(session, candidate, classifier)

            if not page.has_more or not page.candidates:
                break
            page_number += 1

    def _finalize(self) -> ScraperResults:
        valid = self.valid
        duplicates = 0
        if self.adapter.dedupe_results:
            deduped = filter_duplicates_by_image(valid)
            duplicates = len(valid) - len(deduped)
            valid = deduped
        skipped = len(self.skipped) + self.extraction_errors + duplicates
        logger.info(
            f"- {self.source}: market {self.market.id} finished with {len(valid)} valid, "
            f"{skipped} skipped ({duplicates} duplicates)"
        )
        return ScraperResults(
            total_vehicles=len(valid) + skipped,
            skipped_vehicles=skipped,
            valid_vehicles=len(valid),
            results=list(valid),
            screenshots=list(self.screenshots),
        )

    async def execute(self) -> ScraperResults:
        """Run the full state machine; never raises for market-local failures."""
        self._started = self._clock()
        logger.info(f">>> Executing {self.source} for market {self.market.id}")

        try:
            params = resolve_params(self.market, self.config)
            url = self.adapter.resolve_url(self.market, params)
        except Exception as e:
            logger.error(f"Error initializing {self.source} for market {self.market.id}: {e}")
            return ScraperResults.failure(str(e), classify_error(e))
        self.current_url = url
        classifier = VehicleClassifier(params, self._matcher, now=self._now)

        try:
            async with self._open_session(params) as session:
                try:
                    await self._with_retries(
                        lambda: self.adapter.prepare(session), self.config.auth_attempts, "prepare"
                    )
                    await self._paginate(session, url, classifier)
                    results = self._finalize()
                    self.adapter.check_results(session, results)
                    return results
                except Exception:
                    await self._capture(session, "error")
                    raise
        except Exception as e:
            kind = classify_error(e)
            logger.error(
                f"Error executing {self.source} for market {self.market.id} at {self.current_url} "
                f"[{kind.value}]: {e}"
            )
            failure = ScraperResults.failure(str(e), kind)
            failure.screenshots = list(self.screenshots)
            return failure
