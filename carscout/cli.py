"""
Command line entry point: run one job (market scraping or cookie generation)
and deliver its results.

Exit codes: 0 on success, 1 when the job cannot be initialized or the results
cannot be delivered to the results API.
"""
import argparse
import asyncio
import logging
import os
import sqlite3
import sys
from typing import List, Optional

from .config import ScraperConfig
from .cookies import CookieGenerator
from .errors import ConfigurationError, DeliveryError
from .export import export_executions, save_output_rows, write_frame
from .models import ExecutionResult
from .notify import EmailNotifier, screenshot_attachments
from .orchestrator import RunOrchestrator
from .payload import CookiePayload, JobPayload, load_payload
from .results_api import ResultsApiClient
from .storage import SqliteObjectStorage
from .utils import init_logger, now_iso

logger = logging.getLogger("carscout")


def parse_args(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Multi-source vehicle listing scraper")
    ap.add_argument("--job", type=str, required=True, help="Path to the job payload JSON")
    ap.add_argument("--db", type=str, default=None, help="Path to SQLite DB (default from env CARSCOUT_DB)")
    ap.add_argument("--max-results", type=int, default=None, help="Override the per-market results cap")
    ap.add_argument("--headless", dest="headless", action="store_true", default=None, help="Run browsers without UI")
    ap.add_argument("--headed", dest="headless", action="store_false", help="Show browser windows")
    ap.add_argument("--no-pacing", action="store_true", help="Disable randomized delays")
    ap.add_argument("--out", type=str, default="", help="CSV/XLSX export of accepted vehicles")
    ap.add_argument("--export-executions", type=str, default="",
                    help="CSV/XLSX export of this run's execution rows")
    ap.add_argument("--no-deliver", action="store_true", help="Do not upload results to the results API")
    # Logging
    lvl_choices = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    ap.add_argument("--log-level", choices=lvl_choices, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=lvl_choices, default=os.getenv("LOG_CONSOLE", "INFO"),
                    help="Console log level (default from env LOG_CONSOLE or INFO).")
    ap.add_argument("--log-file", choices=lvl_choices, default=os.getenv("LOG_FILE", "DEBUG"),
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=os.getenv("LOG_FILE_PATH", "carscout.log"),
                    help="Path to log file (default from env LOG_FILE_PATH or carscout.log).")
    ap.add_argument("--no-file-log", action="store_true",
                    help="Disable file logging (only console output).")
    return ap.parse_args(argv)


def build_config(args) -> ScraperConfig:
    config = ScraperConfig.from_env()
    overrides = {}
    if args.db:
        overrides["db_path"] = args.db
    if args.max_results is not None:
        overrides["max_results"] = args.max_results
    if args.headless is not None:
        overrides["headless"] = args.headless
    if args.no_pacing:
        overrides["pacing_enabled"] = False
    return config.with_overrides(**overrides) if overrides else config


async def deliver_results(config: ScraperConfig, payload: JobPayload, results: List[ExecutionResult]):
    """Authenticate against the results API and upload the execution rows."""
    client = ResultsApiClient.from_config(config)
    try:
        if not await client.authenticate():
            raise DeliveryError("Error authenticating with API")
        logger.info("Sending results to API")
        await client.send_results(payload.id, results)
    finally:
        await client.close()


def report_errors(config: ScraperConfig, payload: JobPayload, results: List[ExecutionResult], screenshots: List[str]):
    notifier = EmailNotifier(config)
    try:
        notifier.report_error(
            payload.model_dump(mode="json", exclude={"accounts"}),
            results,
            screenshots,
            screenshot_attachments(screenshots),
        )
    except DeliveryError as e:
        logger.error(f"Error sending email: {e}")


def run_job(config: ScraperConfig, payload: JobPayload, storage: SqliteObjectStorage, args) -> int:
    if isinstance(payload, CookiePayload):
        runner = CookieGenerator(config, storage=storage)
    else:
        runner = RunOrchestrator(config, storage=storage)
    try:
        results = asyncio.run(runner.run(payload))
    except ConfigurationError as e:
        logger.error(f"Error initializing scraper: {e}")
        return 1

    failed = sum(1 for r in results if not r.success)
    logger.info(f">>> Job {payload.id} finished: {len(results)} executions, {failed} with errors")
    storage.record_executions(results)

    if args.out:
        save_output_rows([v for r in results for v in r.results], args.out, logger)
    if args.export_executions:
        df = export_executions(storage.conn, execution_id=payload.id)
        write_frame(df, args.export_executions)
        logger.info(f">>> Export executions: {len(df)} rows -> {args.export_executions}")

    report_errors(config, payload, results, runner.screenshots)

    if args.no_deliver or not config.results_api_url:
        logger.info("Results API delivery disabled")
        return 0
    try:
        asyncio.run(deliver_results(config, payload, results))
    except (ConfigurationError, DeliveryError) as e:
        logger.error(f"Error sending results to API: {e}")
        return 1
    logger.info("Results sent to API successfully")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.info(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )
    logger.info(f">>> Run started at {now_iso()}")

    config = build_config(args)
    try:
        payload = load_payload(args.job)
    except ConfigurationError as e:
        logger.error(f"Error validating parameters: {e}")
        return 1

    try:
        storage = SqliteObjectStorage(config.db_path)
    except (sqlite3.Error, OSError) as e:
        logger.error(f"Error initializing storage: {e}")
        return 1

    try:
        return run_job(config, payload, storage, args)
    finally:
        storage.close()


if __name__ == "__main__":
    sys.exit(main())
