"""
Scraper configuration.

Every tunable of a run lives on ScraperConfig. Components receive the config at
construction; only ``ScraperConfig.from_env`` reads the process environment.
"""
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional, Tuple

from .ignore_terms import DEFAULT_IGNORE_TERMS

DEFAULT_PROMPT_SUBSTITUTIONS = {
    "furniture": "Please click each image containing a chair",
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ScraperConfig:
    """Explicit configuration for one scraping job."""

    # Run limits
    max_results: int = 50
    days_since_listed: int = 7
    page_attempts: int = 3
    auth_attempts: int = 2
    continuous_error_threshold: int = 5
    max_execution_seconds: float = 45 * 60

    # Search defaults
    min_price: float = 4500
    max_price: float = 70000
    max_mileage: float = 300000
    min_year: int = 2000
    max_year: int = field(default_factory=lambda: datetime.now().year)
    search_radius: float = 20

    # Pacing
    pacing_enabled: bool = True
    min_delay_seconds: float = 2.0
    max_delay_seconds: float = 8.0
    listing_min_delay_seconds: float = 4.0
    listing_max_delay_seconds: float = 8.0

    # Browser
    headless: bool = True
    navigation_timeout_seconds: float = 45.0
    proxy: Optional[str] = None
    screenshots_enabled: bool = False
    screenshots_dir: str = "./screenshots"

    # CAPTCHA
    captcha_api_key: Optional[str] = None
    captcha_api_url: str = "https://api.capsolver.com/createTask"
    captcha_max_attempts: int = 10
    prompt_substitutions: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PROMPT_SUBSTITUTIONS)
    )

    # Classification
    ignore_terms: Tuple[str, ...] = DEFAULT_IGNORE_TERMS

    # Facebook account pool
    facebook_username: Optional[str] = None
    facebook_password: Optional[str] = None
    facebook_2fa_secret: Optional[str] = None
    facebook_cookie: Optional[str] = None
    facebook_ignore_auth: bool = False

    # Sinks
    db_path: str = "./data/db/carscout.db"
    results_api_url: Optional[str] = None
    results_api_username: Optional[str] = None
    results_api_password: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from: Optional[str] = None
    email_to: Tuple[str, ...] = ()

    def with_overrides(self, **changes) -> "ScraperConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls) -> "ScraperConfig":
        """Build config from environment variables."""
        base = cls()
        ignore_env = os.getenv("SCRAPER_IGNORE_TERMS", "").strip()
        ignore_terms = (
            tuple(t.strip() for t in ignore_env.split(",") if t.strip())
            if ignore_env else base.ignore_terms
        )
        email_to = tuple(
            e.strip() for e in os.getenv("EMAIL_TO", "").split(",") if e.strip()
        )
        return cls(
            max_results=_env_int("SCRAPER_MAX_RESULTS", base.max_results),
            days_since_listed=_env_int("SCRAPPER_DAYS_TO_SCRAPE", base.days_since_listed),
            page_attempts=_env_int("SCRAPER_PAGE_ATTEMPTS", base.page_attempts),
            auth_attempts=_env_int("SCRAPER_AUTH_ATTEMPTS", base.auth_attempts),
            continuous_error_threshold=_env_int(
                "SCRAPER_CONTINUOUS_ERRORS", base.continuous_error_threshold
            ),
            max_execution_seconds=_env_float(
                "SCRAPER_MAX_EXECUTION_SECONDS", base.max_execution_seconds
            ),
            pacing_enabled=_env_bool("SCRAPER_PACING", base.pacing_enabled),
            headless=_env_bool("HEADLESS", base.headless),
            navigation_timeout_seconds=_env_float(
                "SCRAPER_NAVIGATION_TIMEOUT", base.navigation_timeout_seconds
            ),
            proxy=os.getenv("SCRAPER_PROXY") or None,
            screenshots_enabled=_env_bool("SCRAPER_SCREENSHOTS", base.screenshots_enabled),
            screenshots_dir=os.getenv("SCRAPER_SCREENSHOTS_DIR", base.screenshots_dir),
            captcha_api_key=os.getenv("CAPSOLVER_API_KEY") or None,
            captcha_max_attempts=_env_int("CAPTCHA_MAX_ATTEMPTS", base.captcha_max_attempts),
            ignore_terms=ignore_terms,
            facebook_username=os.getenv("FACEBOOK_USERNAME") or None,
            facebook_password=os.getenv("FACEBOOK_PASSWORD") or None,
            facebook_2fa_secret=os.getenv("FACEBOOK_2FA_SECRET") or None,
            facebook_cookie=os.getenv("FACEBOOK_COOKIE") or None,
            facebook_ignore_auth=_env_bool("FACEBOOK_IGNORE_AUTH", False),
            db_path=os.getenv("CARSCOUT_DB", base.db_path),
            results_api_url=os.getenv("RESULTS_API_URL") or None,
            results_api_username=os.getenv("RESULTS_API_USERNAME") or None,
            results_api_password=os.getenv("RESULTS_API_PASSWORD") or None,
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_env_int("SMTP_PORT", base.smtp_port),
            smtp_username=os.getenv("SMTP_USERNAME") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            email_from=os.getenv("EMAIL_FROM") or None,
            email_to=email_to,
        )
