"""
Run orchestrator: executes one source across every market of a job.

Markets run one after another. A credential failure on a source whose markets
share one account pool flags the rest of the job so later markets are reported
as errors without opening any transport.
"""
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from .config import ScraperConfig
from .errors import ErrorKind
from .loop import SourceRun, launch_browser, make_http_client
from .models import ExecutionResult, ExecutionStatus, Market, ScraperResults, ScraperType
from .pacing import Pacer
from .payload import ScraperPayload, validate_market
from .sources import SOURCE_REGISTRY, SourceAdapter, get_adapter_class
from .storage import StoreResult
from .utils import now_utc

logger = logging.getLogger(__name__)


def results_key(script_type: str, source: str, execution_id, market_id, millis: int) -> str:
    return f"results-{script_type}-{source}-{execution_id}-market-{market_id}-{millis}.json"


class RunOrchestrator:
    def __init__(
        self,
        config: ScraperConfig,
        registry: Optional[Dict[ScraperType, Type[SourceAdapter]]] = None,
        storage=None,
        browser_factory: Callable[[ScraperConfig], Awaitable[Any]] = launch_browser,
        http_factory: Callable[[ScraperConfig], Any] = make_http_client,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = now_utc,
        pacer_factory: Optional[Callable[[ScraperConfig], Pacer]] = None,
    ):
        self.config = config
        self.registry = SOURCE_REGISTRY if registry is None else registry
        self.storage = storage
        self._browser_factory = browser_factory
        self._http_factory = http_factory
        self._clock = clock
        self._now = now
        self._pacer_factory = pacer_factory
        self.skip_remaining_markets = False
        self.screenshots: List[str] = []

    def _error_result(self, market: Market, execution_id, script: str, started_at: str, message: str) -> ExecutionResult:
        return ExecutionResult(
            execution_id=execution_id,
            market_id=market.id,
            script=script,
            success=False,
            started_at=started_at,
            ended_at=self._now().isoformat(),
            execution_status=ExecutionStatus.ERROR,
            execution_message=message,
            results_link="",
        )

    async def _run_market(self, adapter_cls: Type[SourceAdapter], market: Market) -> ScraperResults:
        validate_market(market)
        pacer = self._pacer_factory(self.config) if self._pacer_factory else None
        run = SourceRun(
            adapter_cls(),
            market,
            self.config,
            browser_factory=self._browser_factory,
            http_factory=self._http_factory,
            clock=self._clock,
            now=self._now,
            pacer=pacer,
        )
        return await run.execute()

    async def _store_results(self, result: ExecutionResult, scraper_results: ScraperResults, key: str):
        try:
            upload = await self.storage.store([v.to_dict() for v in scraper_results.results], key)
        except Exception as e:
            logger.error(f"Error storing results under {key}: {e}")
            upload = StoreResult(key, error_code=f"StorageError: {e}")
        if upload is None or upload.error_code:
            code = upload.error_code if upload is not None else "StorageError"
            result.success = False
            result.execution_status = ExecutionStatus.ERROR
            result.execution_message = f"{result.execution_message}\r\n{code}"
        else:
            result.results_link = key

    async def run(self, job: ScraperPayload) -> List[ExecutionResult]:
        """Execute the job's source for every market; one ExecutionResult per market."""
        adapter_cls = get_adapter_class(job.scraper, self.registry)
        source = adapter_cls.name.value
        script = f"{job.type}-{source}"
        markets = job.to_markets()
        logger.info(f">>> Initializing scraper {source} for {len(markets)} markets")

        results: List[ExecutionResult] = []
        for market in markets:
            started_at = self._now().isoformat()
            execution_id = market.execution_id or job.id
            logger.info(f"Running scraper for market {market.id} - {started_at}")

            if self.skip_remaining_markets:
                logger.info(f"Skipping market {market.id}")
                results.append(self._error_result(
                    market, execution_id, script, started_at,
                    f"Error in {source}, skipping remaining markets.",
                ))
                continue

            try:
                result = await self._execute_market(job, adapter_cls, market, execution_id, script, started_at)
            except Exception as e:
                logger.error(f"Error running scraper for market {market.id}: {e}")
                results.append(self._error_result(market, execution_id, script, started_at, str(e)))
                continue

            results.append(result)
            logger.info(f"Finished running {source} scraper for market {market.id}")
        return results

    async def _execute_market(
        self, job: ScraperPayload, adapter_cls: Type[SourceAdapter], market: Market, execution_id, script: str,
        started_at: str,
    ) -> ExecutionResult:
        source = adapter_cls.name.value
        scraper_results = await self._run_market(adapter_cls, market)

        self.screenshots.extend(scraper_results.screenshots)
        if (
            not scraper_results.success
            and scraper_results.error_kind is ErrorKind.CREDENTIAL
            and adapter_cls.shared_account_pool
        ):
            logger.warning(f"Credential failure in {source}, skipping remaining markets")
            self.skip_remaining_markets = True

        result = ExecutionResult(
            execution_id=execution_id,
            market_id=market.id,
            script=script,
            success=scraper_results.success,
            started_at=started_at,
            ended_at=self._now().isoformat(),
            execution_status=(
                ExecutionStatus.SUCCESS if scraper_results.success else ExecutionStatus.ERROR
            ),
            execution_message=scraper_results.execution_message,
            total_vehicles=scraper_results.total_vehicles,
            skipped_vehicles=scraper_results.skipped_vehicles,
            valid_vehicles=scraper_results.valid_vehicles,
            results_link="",
            results=list(scraper_results.results),
        )

        if scraper_results.success and scraper_results.results and self.storage is not None:
            millis = int(self._now().timestamp() * 1000)
            key = results_key(job.type, source, execution_id, market.id, millis)
            await self._store_results(result, scraper_results, key)

        return result
