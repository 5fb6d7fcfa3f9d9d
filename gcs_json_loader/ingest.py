"""
Ingestion core shared by every entrypoint.

Filters non-JSON objects, picks load job vs. streaming insert and runs the
optional best-effort deletion of the source object.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime

from google.cloud import bigquery, storage

from gcs_json_loader.clients import ObjectStore, TableStore
from gcs_json_loader.config import LoaderConfig
from gcs_json_loader.deadline import Deadline
from gcs_json_loader.exceptions import DeleteError, InvocationTimeoutError, TableNotFoundError
from gcs_json_loader.load_json import load_json
from gcs_json_loader.models import (
    IngestionEvent,
    IngestionResult,
    IngestionStatus,
    IngestionStrategy,
)
from gcs_json_loader.stream_json import stream_json

logger = logging.getLogger(__name__)

JSON_SUFFIX = ".json"


@dataclass(frozen=True)
class Services:
    """Clients and configuration handed to each invocation."""

    config: LoaderConfig
    tables: TableStore
    objects: ObjectStore


def build_services(config: LoaderConfig) -> Services:
    """Construct real BigQuery and Cloud Storage clients for `config`."""
    return Services(
        config=config,
        tables=TableStore(bigquery.Client(project=config.project_id)),
        objects=ObjectStore(storage.Client(project=config.project_id)),
    )


def is_json_file(object_name: str) -> bool:
    """True iff the object name ends with '.json' (case-sensitive)."""
    if object_name.endswith(JSON_SUFFIX):
        return True
    logger.info(f"File {object_name} is not a JSON.")
    return False


def delete_source_object(event: IngestionEvent, services: Services, deadline: Deadline) -> bool:
    """Delete the ingested object. Failures are logged, never raised."""
    try:
        services.objects.delete(
            event.bucket, event.object_name, timeout=deadline.remaining("object delete")
        )
    except DeleteError as e:
        logger.warning(f"Could not delete {event.uri}: {e}", extra={"error": e.to_dict()})
        return False
    except InvocationTimeoutError as e:
        # The data is already ingested at this point.
        logger.warning(f"Skipped deleting {event.uri}: {e}")
        return False
    logger.info(f"Deleted file: {event.uri}")
    return True


def ingest(
    event: IngestionEvent,
    services: Services,
    strategy: IngestionStrategy = IngestionStrategy.AUTO,
    today: date | None = None,
) -> IngestionResult:
    """
    Ingest one object into the configured table.

    Args:
        event: Object to ingest
        services: Injected clients and configuration
        strategy: AUTO streams into an existing table and loads otherwise;
            LOAD always submits a load job
        today: Processing date for the partition decorator (defaults to today, UTC)

    Returns:
        IngestionResult describing what happened

    Raises:
        LoaderError: any failure except the non-JSON skip and delete failures
    """
    if not is_json_file(event.object_name):
        return IngestionResult(status=IngestionStatus.SKIPPED, object_uri=event.uri)

    config = services.config
    deadline = Deadline(config.invocation_timeout_seconds)
    today = today or datetime.now(UTC).date()

    logger.info(
        f"Start ingesting JSON file: {event.object_name} from bucket {event.bucket}, "
        f"created on {event.created_at} ({strategy.value})"
    )

    use_load_job = strategy is IngestionStrategy.LOAD
    if not use_load_job:
        try:
            services.tables.get_table(config.table, timeout=deadline.remaining("table lookup"))
        except TableNotFoundError as e:
            logger.info(f"{e}; loading JSON to create table {config.table.table_path}")
            use_load_job = True

    if use_load_job:
        job = load_json(event, services.tables, config, deadline)
        result = IngestionResult(
            status=IngestionStatus.LOADED,
            object_uri=event.uri,
            destination=config.table.table_path,
            job_id=job.job_id,
            row_count=job.output_rows or 0,
        )
    else:
        partition, row_count = stream_json(
            event, services.tables, services.objects, config, deadline, today
        )
        result = IngestionResult(
            status=IngestionStatus.STREAMED,
            object_uri=event.uri,
            destination=partition.table_path,
            row_count=row_count,
        )

    if config.delete_source_file:
        result = result.model_copy(update={"deleted": delete_source_object(event, services, deadline)})
    return result
