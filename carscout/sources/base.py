"""
Source adapter interface and the per-run session it works against.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import ScraperConfig
from ..errors import ConfigurationError
from ..models import Market, MarketParams, ScrapedVehicle, ScraperResults, ScraperType
from ..pacing import Pacer

logger = logging.getLogger(__name__)


@dataclass
class SourcePage:
    """One window of candidate listings returned by ``fetch_page``."""

    candidates: List[Any] = field(default_factory=list)
    total: Optional[int] = None
    has_more: bool = False


class SourceSession:
    """Transport resources and scratch state owned by a single source run."""

    def __init__(
        self,
        market: Market,
        params: MarketParams,
        config: ScraperConfig,
        pacer: Pacer,
        http,
        browser=None,
        captcha=None,
    ):
        self.market = market
        self.params = params
        self.config = config
        self.pacer = pacer
        self.http = http
        self._browser = browser
        self.captcha = captcha
        self.state: Dict[str, Any] = {}

    @property
    def browser(self):
        if self._browser is None:
            raise ConfigurationError("This source does not run with a browser")
        return self._browser

    @property
    def has_browser(self) -> bool:
        return self._browser is not None


class SourceAdapter:
    """
    Site-specific extraction behind a uniform interface.

    One instance is created per source run, so adapters may keep per-run state
    on ``self`` or on the session.
    """

    name: ScraperType
    requires_browser = False
    uses_captcha = False
    shared_account_pool = False
    dedupe_results = False
    pace_listings = True

    def resolve_url(self, market: Market, params: MarketParams) -> str:
        raise NotImplementedError

    async def prepare(self, session: SourceSession):
        """Authenticate or look up anything the search needs."""

    async def fetch_page(self, session: SourceSession, url: str, page_number: int) -> SourcePage:
        raise NotImplementedError

    async def extract_listing(self, session: SourceSession, candidate: Any) -> Optional[ScrapedVehicle]:
        """Build a vehicle from a candidate; None declines it silently."""
        raise NotImplementedError

    def check_results(self, session: SourceSession, results: ScraperResults):
        """Raise to turn a finished run into a failure."""

    def describe_candidate(self, candidate: Any) -> str:
        return str(candidate)
