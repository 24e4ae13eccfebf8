"""
Browser and HTTP capabilities used by the source adapters.

Library exceptions are translated into the typed errors of ``errors`` here, so
the rest of the package never inspects Playwright or httpx failures directly.
"""
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import ScraperConfig
from .errors import (
    ErrorKind,
    HttpError,
    ScraperError,
    TransientNetworkError,
    classify_error,
)
from .utils import now_millis

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


def translate_error(exc: BaseException, context: str) -> BaseException:
    """Wrap a library exception into a typed scraper error."""
    if isinstance(exc, ScraperError):
        return exc
    if classify_error(exc) is ErrorKind.TRANSIENT:
        return TransientNetworkError(f"{context}: {exc}")
    return ScraperError(f"{context}: {exc}")


class PlaywrightBrowser:
    """Browser capability over a single Playwright page."""

    def __init__(self, playwright, browser, context, page, config: ScraperConfig):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.config = config
        self._closed = False

    @classmethod
    async def launch(cls, config: ScraperConfig) -> "PlaywrightBrowser":
        """Start Chromium with the configured headless mode and proxy."""
        launch_args = ["--disable-blink-features=AutomationControlled"]
        if config.headless:
            launch_args += ["--disable-dev-shm-usage", "--no-sandbox", "--disable-gpu"]

        playwright = await async_playwright().start()
        launch_kwargs: Dict[str, Any] = {"headless": config.headless, "args": launch_args}
        if config.proxy:
            launch_kwargs["proxy"] = {"server": config.proxy}
        try:
            browser = await playwright.chromium.launch(**launch_kwargs)
            context = await browser.new_context(
                viewport={"width": 1280, "height": 900},
                user_agent=USER_AGENT,
                locale="en-US",
                ignore_https_errors=True,
            )
        except PlaywrightError:
            await playwright.stop()
            raise

        timeout_ms = int(config.navigation_timeout_seconds * 1000)
        context.set_default_timeout(30_000)
        context.set_default_navigation_timeout(timeout_ms)
        page = await context.new_page()
        logger.info(f">>> Browser launched (headless={config.headless})")
        return cls(playwright, browser, context, page, config)

    async def navigate(self, url: str, timeout_seconds: Optional[float] = None, wait_until: str = "domcontentloaded"):
        timeout = timeout_seconds or self.config.navigation_timeout_seconds
        try:
            if self.page.is_closed():
                self.page = await self._context.new_page()
            return await self.page.goto(url, timeout=int(timeout * 1000), wait_until=wait_until)
        except PlaywrightError as e:
            raise translate_error(e, f"navigate {url}") from e

    async def reload(self):
        try:
            await self.page.reload(wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise translate_error(e, "reload") from e

    async def type(self, selector: str, text: str):
        try:
            await self.page.fill(selector, "")
            await self.page.type(selector, text, delay=80)
        except PlaywrightError as e:
            raise translate_error(e, f"type {selector}") from e

    async def click(self, selector: str):
        try:
            await self.page.click(selector)
        except PlaywrightError as e:
            raise translate_error(e, f"click {selector}") from e

    async def wait_for_selector(self, selector: str, timeout_seconds: Optional[float] = None):
        kwargs = {}
        if timeout_seconds is not None:
            kwargs["timeout"] = int(timeout_seconds * 1000)
        try:
            return await self.page.wait_for_selector(selector, **kwargs)
        except PlaywrightError as e:
            raise translate_error(e, f"wait for {selector}") from e

    async def is_visible(self, selector: str) -> bool:
        try:
            return await self.page.locator(selector).first.is_visible()
        except PlaywrightError:
            return False

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self.page.evaluate(script, arg)
        except PlaywrightError as e:
            raise translate_error(e, "evaluate") from e

    async def content(self) -> str:
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise translate_error(e, "content") from e

    async def text_of(self, selector: str) -> Optional[str]:
        """Inner text of the first match, None when absent."""
        loc = self.page.locator(selector)
        try:
            if await loc.count() == 0:
                return None
            return await loc.first.inner_text()
        except PlaywrightError as e:
            raise translate_error(e, f"text of {selector}") from e

    async def attributes_of(self, selector: str, attribute: str) -> List[Optional[str]]:
        try:
            return await self.page.locator(selector).evaluate_all(
                "(els, a) => els.map(e => e.getAttribute(a))", attribute
            )
        except PlaywrightError as e:
            raise translate_error(e, f"attributes of {selector}") from e

    async def get_cookies(self) -> List[Dict[str, Any]]:
        try:
            return await self._context.cookies()
        except PlaywrightError as e:
            raise translate_error(e, "get cookies") from e

    async def set_cookies(self, cookies: List[Dict[str, Any]]):
        try:
            await self._context.add_cookies(cookies)
        except PlaywrightError as e:
            raise translate_error(e, "set cookies") from e

    async def current_url(self) -> str:
        return self.page.url

    def on_request(self, callback: Callable[[str], None]):
        """Call ``callback`` with the URL of every outgoing request."""
        self.page.on("request", lambda request: callback(request.url))

    # Frame helpers used by the CAPTCHA protocol

    async def has_frame(self, frame_selector: str) -> bool:
        try:
            return await self.page.locator(frame_selector).count() > 0
        except PlaywrightError as e:
            raise translate_error(e, f"frame lookup {frame_selector}") from e

    async def frame_text(self, frame_selector: str, selector: str) -> Optional[str]:
        loc = self.page.frame_locator(frame_selector).locator(selector)
        try:
            if await loc.count() == 0:
                return None
            return await loc.first.inner_text()
        except PlaywrightError as e:
            raise translate_error(e, f"frame text {selector}") from e

    async def frame_attributes(self, frame_selector: str, selector: str, attribute: str) -> List[Optional[str]]:
        loc = self.page.frame_locator(frame_selector).locator(selector)
        try:
            return await loc.evaluate_all("(els, a) => els.map(e => e.getAttribute(a))", attribute)
        except PlaywrightError as e:
            raise translate_error(e, f"frame attributes {selector}") from e

    async def frame_click(self, frame_selector: str, selector: str, index: Optional[int] = None):
        loc = self.page.frame_locator(frame_selector).locator(selector)
        target = loc.nth(index) if index is not None else loc.first
        try:
            await target.click()
        except PlaywrightError as e:
            raise translate_error(e, f"frame click {selector}") from e

    async def screenshot(self, name: str) -> Optional[str]:
        """Save a full-page screenshot; returns the file path."""
        os.makedirs(self.config.screenshots_dir, exist_ok=True)
        safe = re.sub(r"[^\w.-]+", "-", name).strip("-") or "screenshot"
        path = os.path.join(self.config.screenshots_dir, f"{safe}-{now_millis()}.png")
        try:
            await self.page.screenshot(path=path, full_page=True)
        except PlaywrightError as e:
            logger.warning(f"Screenshot {name} failed: {e}")
            return None
        return path

    async def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


@dataclass
class HttpResponse:
    data: Any
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    status_code: int = 200
    text: str = ""

    @property
    def cookies(self) -> List[str]:
        return self.headers.get_list("set-cookie")


class HttpClient:
    """HTTP capability over httpx.AsyncClient with error-on-non-2xx semantics."""

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        proxy: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        client_kwargs: Dict[str, Any] = {
            "timeout": timeout_seconds,
            "headers": {"User-Agent": USER_AGENT, **(headers or {})},
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        elif proxy:
            client_kwargs["proxy"] = proxy
        self._client = httpx.AsyncClient(**client_kwargs)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except json.JSONDecodeError:
                return response.text
        return response.text

    def _check(self, response: httpx.Response, context: str) -> HttpResponse:
        status = response.status_code
        if status >= 400:
            message = f"{context}: HTTP {status}"
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                if classify_error(e) is ErrorKind.TRANSIENT:
                    raise TransientNetworkError(message, status_code=status) from e
                raise HttpError(message, status, response.headers) from e
        return HttpResponse(
            data=self._decode(response),
            headers=response.headers,
            status_code=status,
            text=response.text,
        )

    async def request(self, method: str, url: str, **kwargs) -> HttpResponse:
        context = f"{method} {url}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise translate_error(e, context) from e
        return self._check(response, context)

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None) -> HttpResponse:
        return await self.request("GET", url, headers=headers, params=params)

    async def post(self, url: str, json_body: Any = None, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return await self.request("POST", url, json=json_body, headers=headers)

    async def get_bytes(self, url: str) -> bytes:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise translate_error(e, f"GET {url}") from e
        return response.content

    async def close(self):
        await self._client.aclose()
