"""
API configuration and settings management.
"""
import os


class Config:
    """Application configuration."""

    # Database
    DB_PATH: str = os.getenv("CARSCOUT_DB", "./data/db/carscout.db")

    # API settings
    API_TITLE: str = "carscout API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "REST API for scraper executions and stored vehicle results"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Pagination defaults
    DEFAULT_API_LIMIT: int = 50
    MAX_API_LIMIT: int = 500
    MAX_EXPORT_ROWS: int = 10000

    # Run health
    FAILING_STREAK: int = int(os.getenv("API_FAILING_STREAK", "3"))
    RESULTS_KEY_PREFIX: str = "results-"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE_PATH: str = os.getenv("API_LOG_FILE_PATH", "api.log")

    def validate(self) -> None:
        """Validate configuration on startup."""
        if not os.path.exists(self.DB_PATH):
            raise FileNotFoundError(f"Database file not found: {self.DB_PATH}")


# Global config instance
config = Config()
