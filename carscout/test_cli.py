"""
Tests for the command line entry point and its exit codes.
"""
import json

import pandas as pd
import pytest

from carscout import cli
from carscout.database import db_connect, db_list_executions
from carscout.errors import ConfigurationError, DeliveryError
from carscout.models import ExecutionResult, ExecutionStatus, ScrapedVehicle

JOB = {
    "id": 77,
    "type": "scraper",
    "scraper": "ksl",
    "markets": [{"id": 1, "location": "SLC", "zipCode": "84101", "marketSettings": [{"name": "tier", "value": "1"}]}],
}


def finished(market_id=1):
    return ExecutionResult(
        execution_id=77,
        market_id=market_id,
        script="scraper-ksl",
        success=True,
        started_at="2024-06-15T00:00:00+00:00",
        ended_at="2024-06-15T00:01:00+00:00",
        execution_status=ExecutionStatus.SUCCESS,
        total_vehicles=1,
        valid_vehicles=1,
        results=[ScrapedVehicle(vehicle_original_id="9", make="Jeep", model="Wrangler")],
    )


class FakeOrchestrator:
    error = None

    def __init__(self, config, storage=None):
        self.config = config
        self.storage = storage
        self.screenshots = []

    async def run(self, payload):
        if self.error:
            raise self.error
        return [finished()]


@pytest.fixture
def job_file(tmp_path):
    path = tmp_path / "job.json"
    path.write_text(json.dumps(JOB), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RESULTS_API_URL", "RESULTS_API_USERNAME", "RESULTS_API_PASSWORD", "SMTP_HOST", "CARSCOUT_DB"):
        monkeypatch.delenv(name, raising=False)
    FakeOrchestrator.error = None
    monkeypatch.setattr(cli, "RunOrchestrator", FakeOrchestrator)


def base_args(job_file, tmp_path, *extra):
    return ["--job", str(job_file), "--db", str(tmp_path / "db" / "run.db"), "--no-file-log", *extra]


def test_successful_run_records_and_exports(job_file, tmp_path):
    out = tmp_path / "vehicles.csv"
    executions = tmp_path / "executions.csv"
    code = cli.main(base_args(job_file, tmp_path, "--out", str(out), "--export-executions", str(executions)))

    assert code == 0
    conn = db_connect(str(tmp_path / "db" / "run.db"))
    assert [r["market_id"] for r in db_list_executions(conn, 77)] == [1]
    conn.close()
    assert list(pd.read_csv(out)["model"]) == ["Wrangler"]
    assert len(pd.read_csv(executions)) == 1


def test_invalid_payload_exits_with_1(tmp_path):
    path = tmp_path / "job.json"
    path.write_text(json.dumps({**JOB, "markets": []}), encoding="utf-8")
    assert cli.main(base_args(path, tmp_path)) == 1


def test_initialization_failure_exits_with_1(job_file, tmp_path):
    FakeOrchestrator.error = ConfigurationError("Unknown scraper type: ksl")
    assert cli.main(base_args(job_file, tmp_path)) == 1


def test_delivery_failure_exits_with_1(job_file, tmp_path, monkeypatch):
    monkeypatch.setenv("RESULTS_API_URL", "https://api.example.test")

    async def failing_delivery(config, payload, results):
        raise DeliveryError("Error authenticating with API")

    monkeypatch.setattr(cli, "deliver_results", failing_delivery)
    assert cli.main(base_args(job_file, tmp_path)) == 1


def test_delivery_can_be_disabled(job_file, tmp_path, monkeypatch):
    monkeypatch.setenv("RESULTS_API_URL", "https://api.example.test")

    async def unexpected(config, payload, results):
        raise AssertionError("delivery must be skipped")

    monkeypatch.setattr(cli, "deliver_results", unexpected)
    assert cli.main(base_args(job_file, tmp_path, "--no-deliver")) == 0


class FakeCookieGenerator:
    jobs = []

    def __init__(self, config, storage=None):
        self.screenshots = []

    async def run(self, payload):
        self.jobs.append(payload)
        return [ExecutionResult(
            execution_id=payload.id,
            market_id=0,
            script="cookie-generation-facebook",
            success=True,
            started_at="2024-06-15T00:00:00+00:00",
            ended_at="2024-06-15T00:02:00+00:00",
            execution_status=ExecutionStatus.SUCCESS,
            results_link="cookies-facebook-1718409720000.json",
        )]


def test_cookie_job_runs_cookie_generation(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "CookieGenerator", FakeCookieGenerator)
    FakeCookieGenerator.jobs = []
    path = tmp_path / "cookies.json"
    path.write_text(json.dumps({
        "id": 78, "type": "cookie-generation", "platform": "facebook",
        "accounts": [{"name": "seller@example.com", "password": "pw"}],
    }), encoding="utf-8")

    assert cli.main(base_args(path, tmp_path)) == 0
    (payload,) = FakeCookieGenerator.jobs
    assert payload.accounts[0].name == "seller@example.com"
    conn = db_connect(str(tmp_path / "db" / "run.db"))
    (row,) = db_list_executions(conn, 78)
    assert row["script"] == "cookie-generation-facebook"
    conn.close()


def test_build_config_applies_flags(tmp_path):
    args = cli.parse_args(["--job", "j.json", "--db", "x.db", "--max-results", "5", "--headed", "--no-pacing"])
    config = cli.build_config(args)
    assert config.db_path == "x.db"
    assert config.max_results == 5
    assert config.headless is False
    assert config.pacing_enabled is False
