"""
Client for the platform API that receives execution results.
"""
import logging
from typing import List, Optional

from .config import ScraperConfig
from .errors import ConfigurationError, DeliveryError, ScraperError
from .models import ExecutionResult
from .transport import HttpClient

logger = logging.getLogger(__name__)

LOGIN_PATH = "auth/login"
UPLOAD_PATH = "scraper-processing/upload-execution-results"


class ResultsApiClient:
    def __init__(self, base_url: str, username: str, password: str, http: Optional[HttpClient] = None):
        if not base_url:
            raise ConfigurationError("Results API URL is not set")
        if not username or not password:
            raise ConfigurationError("Results API credentials are not set")
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.http = http or HttpClient()
        self.token: Optional[str] = None

    @classmethod
    def from_config(cls, config: ScraperConfig, http: Optional[HttpClient] = None) -> "ResultsApiClient":
        return cls(config.results_api_url, config.results_api_username, config.results_api_password, http=http)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def authenticate(self) -> bool:
        try:
            response = await self.http.post(
                self._url(LOGIN_PATH), {"username": self.username, "password": self.password}
            )
        except ScraperError as e:
            raise DeliveryError(f"Error authenticating with API: {e}") from e
        data = response.data if isinstance(response.data, dict) else {}
        self.token = (data.get("data") or {}).get("token") or data.get("token")
        return bool(self.token)

    async def send_results(self, execution_id: int, results: List[ExecutionResult]) -> bool:
        """Upload the run's execution rows; authenticates first when needed."""
        if not self.token and not await self.authenticate():
            raise DeliveryError("Error authenticating with API")
        body = {"executionId": execution_id, "results": [r.to_dict() for r in results]}
        try:
            response = await self.http.post(
                self._url(UPLOAD_PATH), body, headers={"Authorization": f"Bearer {self.token}"}
            )
        except ScraperError as e:
            raise DeliveryError(f"Error sending results to API: {e}") from e
        logger.info(f"Results sent to API for execution {execution_id}")
        return response.status_code == 200

    async def close(self):
        await self.http.close()
