"""
Configuration for the GCS JSON to BigQuery loader Cloud Function.

Reads from environment variables. PROJECT_ID, BQ_DATASET and BQ_TABLE have no
defaults; loading fails with ConfigurationError if any of them is not set.
A local .env file is honoured for development runs.
"""

import logging
import math
import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from gcs_json_loader.exceptions import ConfigurationError
from gcs_json_loader.models import TableReference

logger = logging.getLogger(__name__)

REQUIRED_VARS = ("PROJECT_ID", "BQ_DATASET", "BQ_TABLE")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off", "")


class LoaderConfig(BaseModel):
    """Process-wide, read-only loader settings."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    dataset_id: str
    table_id: str
    location: str = "US"
    partition_expiration_days: int | None = None
    create_dataset: bool = True
    insert_batch_size: int = 500
    delete_source_file: bool = False
    invocation_timeout_seconds: float = 300.0
    log_level: str = "INFO"

    @property
    def table(self) -> TableReference:
        return TableReference(
            project_id=self.project_id,
            dataset_id=self.dataset_id,
            table_id=self.table_id,
        )

    @property
    def partition_expiration_ms(self) -> int | None:
        if self.partition_expiration_days is None:
            return None
        return self.partition_expiration_days * 86_400_000


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, not '{raw}'")


def _parse_positive(name: str, raw: str, cast=int):
    value = cast(raw)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive finite number, not '{raw}'")
    return value


def load_config(environ: dict[str, str] | None = None) -> LoaderConfig:
    """
    Build LoaderConfig from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Raises:
        ConfigurationError: if a required variable is missing or a value is invalid
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_VARS if not env.get(name, "").strip()]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variable(s): {', '.join(missing)}",
            missing=missing,
        )

    try:
        expiration_raw = env.get("BQ_PARTITION_EXPIRATION_DAYS", "").strip()
        partition_expiration_days = (
            _parse_positive("BQ_PARTITION_EXPIRATION_DAYS", expiration_raw)
            if expiration_raw
            else None
        )
        insert_batch_size = _parse_positive(
            "BQ_INSERT_BATCH_SIZE", env.get("BQ_INSERT_BATCH_SIZE", "500")
        )
        invocation_timeout_seconds = _parse_positive(
            "INVOCATION_TIMEOUT_SECONDS",
            env.get("INVOCATION_TIMEOUT_SECONDS", "300"),
            cast=float,
        )
        create_dataset = _parse_bool("BQ_CREATE_DATASET", env.get("BQ_CREATE_DATASET", "true"))
        delete_source_file = _parse_bool(
            "DELETE_SOURCE_FILE", env.get("DELETE_SOURCE_FILE", "false")
        )

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(LOG_LEVELS)}, not '{log_level}'")
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid value for an environment variable: {e}") from e

    return LoaderConfig(
        project_id=env["PROJECT_ID"].strip(),
        dataset_id=env["BQ_DATASET"].strip(),
        table_id=env["BQ_TABLE"].strip(),
        location=env.get("BQ_LOCATION", "US").strip() or "US",
        partition_expiration_days=partition_expiration_days,
        create_dataset=create_dataset,
        insert_batch_size=insert_batch_size,
        delete_source_file=delete_source_file,
        invocation_timeout_seconds=invocation_timeout_seconds,
        log_level=log_level,
    )


@lru_cache(maxsize=1)
def get_config() -> LoaderConfig:
    """Load configuration once per process (first call reads .env and the environment)."""
    load_dotenv()
    logger.info("Loading loader configuration from environment...")
    return load_config()
