"""
Load a newline-delimited JSON file from GCS into BigQuery with a load job.

The job reads the object in place (nothing is downloaded), creates the table
with an auto-detected, day-partitioned schema if needed, and appends to it
otherwise.
"""

import logging

from google.cloud import bigquery

from gcs_json_loader.clients import TableStore
from gcs_json_loader.config import LoaderConfig
from gcs_json_loader.deadline import Deadline
from gcs_json_loader.models import IngestionEvent

logger = logging.getLogger(__name__)


def build_load_job_config(config: LoaderConfig) -> bigquery.LoadJobConfig:
    """
    Load options shared by every load job of this process.

    Partition retention comes from BQ_PARTITION_EXPIRATION_DAYS; when unset,
    partitions never expire.
    """
    return bigquery.LoadJobConfig(
        autodetect=True,
        source_format=bigquery.SourceFormat.NEWLINE_DELIMITED_JSON,
        write_disposition=bigquery.WriteDisposition.WRITE_APPEND,
        create_disposition=bigquery.CreateDisposition.CREATE_IF_NEEDED,
        ignore_unknown_values=True,
        schema_update_options=[bigquery.SchemaUpdateOption.ALLOW_FIELD_ADDITION],
        time_partitioning=bigquery.TimePartitioning(
            type_=bigquery.TimePartitioningType.DAY,
            expiration_ms=config.partition_expiration_ms,
        ),
    )


def load_json(
    event: IngestionEvent,
    tables: TableStore,
    config: LoaderConfig,
    deadline: Deadline,
) -> bigquery.LoadJob:
    """
    Load one NDJSON object into the configured table and wait for the job.

    Args:
        event: Object to load
        tables: BigQuery wrapper
        config: Loader configuration (destination, location, retention)
        deadline: Invocation time budget

    Returns:
        The finished load job

    Raises:
        LoadJobError: the job failed or reported errors
    """
    table = config.table

    # A load job can create the table but not its dataset
    if config.create_dataset:
        tables.ensure_dataset(table, config.location, timeout=deadline.remaining("dataset creation"))

    logger.info(f"Loading {event.uri} into {table.table_path}")
    job = tables.load_from_uri(
        event.uri,
        table,
        job_config=build_load_job_config(config),
        location=config.location,
        deadline=deadline,
    )
    logger.info(
        f"Job {job.job_id} completed loading {event.uri} ({job.output_rows} rows) "
        f"into BigQuery {table.table_path}"
    )
    return job
