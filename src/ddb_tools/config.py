import logging
import os
from dataclasses import dataclass, replace
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# BatchWriteItem accepts at most 25 put/delete requests per call.
BATCH_WRITE_ITEM_LIMIT = 25

ALLOWED_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    service_name: str
    log_level: str
    region: str | None

    # --- Purge Engine ---
    max_batch_size: int
    max_concurrency: int

    # --- botocore Client ---
    connect_timeout_seconds: int
    read_timeout_seconds: int
    max_attempts: int

    def with_overrides(self, **overrides) -> "AppConfig":
        """
        Returns a copy with every non-None override applied and re-validated.
        Used to layer command-line flags on top of the environment.
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        try:
            updated = replace(self, **changes)
            updated._validate()
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid configuration override: {e}") from e
        return updated

    def _validate(self) -> None:
        if not self.service_name:
            raise ValueError("SERVICE_NAME must not be empty.")
        if self.log_level not in ALLOWED_LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {ALLOWED_LOG_LEVELS}, not '{self.log_level}'"
            )
        if not 1 <= self.max_batch_size <= BATCH_WRITE_ITEM_LIMIT:
            raise ValueError(
                f"DDB_MAX_BATCH_SIZE must be between 1 and {BATCH_WRITE_ITEM_LIMIT}."
            )
        if self.max_concurrency <= 0:
            raise ValueError("DDB_MAX_CONCURRENCY must be a positive integer.")
        if self.connect_timeout_seconds <= 0:
            raise ValueError("DDB_CONNECT_TIMEOUT_SECONDS must be a positive integer.")
        if self.read_timeout_seconds <= 0:
            raise ValueError("DDB_READ_TIMEOUT_SECONDS must be a positive integer.")
        if self.max_attempts < 1:
            raise ValueError("DDB_MAX_ATTEMPTS must be at least 1.")

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            config = cls(
                service_name=os.getenv("SERVICE_NAME", "ddbtools"),
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                region=os.getenv("AWS_REGION") or None,
                max_batch_size=int(
                    os.getenv("DDB_MAX_BATCH_SIZE", str(BATCH_WRITE_ITEM_LIMIT))
                ),
                max_concurrency=int(os.getenv("DDB_MAX_CONCURRENCY", "16")),
                connect_timeout_seconds=int(
                    os.getenv("DDB_CONNECT_TIMEOUT_SECONDS", "10")
                ),
                read_timeout_seconds=int(os.getenv("DDB_READ_TIMEOUT_SECONDS", "60")),
                max_attempts=int(os.getenv("DDB_MAX_ATTEMPTS", "3")),
            )
            config._validate()
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return config


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.debug("Loading application configuration from environment...")
    return AppConfig.load_from_env()
