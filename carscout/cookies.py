"""
Session cookie generation for account pools.

Every account logs in on a fresh browser. Connection resets and navigation
timeouts get another attempt; any other login failure records an empty cookie
for that account and moves on. The collected cookies are stored as one object
and the job reports a single execution row.
"""
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import ScraperConfig
from .errors import ConfigurationError, is_transient
from .loop import launch_browser
from .models import CookiePlatform, ExecutionResult, ExecutionStatus
from .pacing import Pacer
from .payload import AccountPayload, CookiePayload
from .sources.base import SourceSession
from .sources.facebook import FacebookAdapter
from .storage import StoreResult
from .utils import now_utc

logger = logging.getLogger(__name__)


def cookies_key(platform: str, millis: int) -> str:
    return f"cookies-{platform}-{millis}.json"


class CookieGenerator:
    def __init__(
        self,
        config: ScraperConfig,
        storage=None,
        browser_factory: Callable[[ScraperConfig], Awaitable[Any]] = launch_browser,
        now: Callable[[], datetime] = now_utc,
        pacer_factory: Optional[Callable[[ScraperConfig], Pacer]] = None,
    ):
        self.config = config
        self.storage = storage
        self._browser_factory = browser_factory
        self._now = now
        self._pacer_factory = pacer_factory
        self.screenshots: List[str] = []
        self._generators = {CookiePlatform.FACEBOOK: self.generate_facebook_cookies}

    def _pacer(self, config: ScraperConfig) -> Pacer:
        if self._pacer_factory:
            return self._pacer_factory(config)
        return Pacer(config.min_delay_seconds, config.max_delay_seconds, enabled=config.pacing_enabled)

    def _account_config(self, account: AccountPayload) -> ScraperConfig:
        return self.config.with_overrides(
            facebook_username=account.name,
            facebook_password=account.password,
            facebook_2fa_secret=account.two_factor_code or self.config.facebook_2fa_secret,
            facebook_cookie=None,
            facebook_ignore_auth=False,
        )

    async def _capture(self, browser, tag: str):
        if not self.config.screenshots_enabled:
            return
        path = await browser.screenshot(tag)
        if path:
            self.screenshots.append(path)

    async def _login(self, account: AccountPayload) -> str:
        """Cookies of one account as JSON text, or an empty string when login failed."""
        config = self._account_config(account)
        attempts = max(1, config.auth_attempts)
        for attempt in range(1, attempts + 1):
            try:
                browser = await self._browser_factory(config)
            except Exception as e:
                logger.error(f"Error initializing browser for {account.name}: {e}")
                return ""
            session = SourceSession(None, None, config, self._pacer(config), http=None, browser=browser)
            try:
                await FacebookAdapter().authenticate(session)
                cookies = await browser.get_cookies()
                logger.info(f"Collected {len(cookies or [])} cookies for {account.name}")
                return json.dumps(cookies, indent=2) if cookies else ""
            except Exception as e:
                if is_transient(e) and attempt < attempts:
                    logger.warning(
                        f"Connection error logging in {account.name} (attempt {attempt}/{attempts}), retrying: {e}"
                    )
                    await self._capture(browser, "facebook-connection-reset-error")
                    continue
                logger.error(f"Error generating cookies for {account.name}: {e}")
                await self._capture(browser, "facebook-login-error")
                return ""
            finally:
                try:
                    await browser.close()
                except Exception as e:
                    logger.warning(f"Closing browser failed: {e}")
        return ""

    async def generate_facebook_cookies(self, accounts: List[AccountPayload]) -> List[Dict[str, str]]:
        logger.info(f">>> Generating facebook cookies for {len(accounts)} accounts")
        if not accounts:
            raise ConfigurationError("No accounts passed")
        return [{"name": account.name, "cookie": await self._login(account)} for account in accounts]

    async def _store(self, result: ExecutionResult, cookies: List[Dict[str, str]], key: str):
        try:
            upload = await self.storage.store(cookies, key)
        except Exception as e:
            logger.error(f"Error storing cookies under {key}: {e}")
            upload = StoreResult(key, error_code=f"StorageError: {e}")
        if upload is None or upload.error_code:
            code = upload.error_code if upload is not None else "StorageError"
            result.success = False
            result.execution_status = ExecutionStatus.ERROR
            result.execution_message = f"{result.execution_message}\r\n{code}"
        else:
            result.results_link = key

    async def run(self, job: CookiePayload) -> List[ExecutionResult]:
        """Generate cookies for every account of the job; one ExecutionResult for the whole pool."""
        platform = job.platform.value
        started_at = self._now().isoformat()
        logger.info(f"Running cookie generation {platform}")
        result = ExecutionResult(
            execution_id=job.id,
            market_id=0,
            script=f"{job.type}-{platform}",
            success=True,
            started_at=started_at,
            ended_at=started_at,
            execution_status=ExecutionStatus.SUCCESS,
            results_link="",
        )

        try:
            cookies = await self._generators[job.platform](job.accounts)
            failed = [c["name"] for c in cookies if not c["cookie"]]
            if failed:
                result.execution_message = f"No cookies for {len(failed)} of {len(cookies)} accounts: {', '.join(failed)}"
                logger.warning(result.execution_message)
            if cookies and self.storage is not None:
                key = cookies_key(platform, int(self._now().timestamp() * 1000))
                await self._store(result, cookies, key)
        except Exception as e:
            logger.error(f"Error generating cookies: {e}")
            result.success = False
            result.execution_status = ExecutionStatus.ERROR
            result.execution_message = str(e)

        result.ended_at = self._now().isoformat()
        return [result]
