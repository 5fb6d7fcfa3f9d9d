"""
Thin wrappers over the BigQuery and Cloud Storage clients.

They map google-cloud errors to the loader's own exceptions, so the ingestion
logic can tell "table does not exist" apart from every other failure, and
timeouts apart from both.

Every call is bounded twice by the remaining budget: the HTTP `timeout` and
the library retry policy's deadline, so retries on 5xx responses stop when the
invocation runs out of time.
"""

import logging

import requests
from google.api_core.exceptions import (
    DeadlineExceeded,
    GoogleAPICallError,
    NotFound,
    RetryError,
)
from google.cloud import bigquery, storage
from google.cloud.storage.retry import DEFAULT_RETRY as STORAGE_RETRY

from gcs_json_loader.deadline import Deadline
from gcs_json_loader.exceptions import (
    DatasetCreateError,
    DeleteError,
    DownloadError,
    InsertError,
    InvocationTimeoutError,
    LoadJobError,
    TableLookupError,
    TableNotFoundError,
)
from gcs_json_loader.models import PartitionedTableReference, TableReference

logger = logging.getLogger(__name__)

# job.result() raises concurrent.futures.TimeoutError, an alias of TimeoutError.
# RetryError means the retry deadline (bound to the budget) ran out.
TIMEOUT_ERRORS = (DeadlineExceeded, RetryError, requests.exceptions.Timeout, TimeoutError)
TRANSPORT_ERRORS = (GoogleAPICallError, requests.exceptions.RequestException)


def bigquery_retry(timeout: float):
    return bigquery.DEFAULT_RETRY.with_timeout(timeout)


def storage_retry(timeout: float):
    return STORAGE_RETRY.with_timeout(timeout)


class TableStore:
    """BigQuery operations needed by the loader."""

    def __init__(self, client: bigquery.Client):
        self._client = client

    def get_table(self, table: TableReference, timeout: float) -> bigquery.Table:
        """
        Fetch table metadata.

        Raises:
            TableNotFoundError: the table or its dataset does not exist
            TableLookupError: any other failure (permissions, transport, ...)
            InvocationTimeoutError: the lookup ran past `timeout`
        """
        try:
            return self._client.get_table(
                table.table_path, retry=bigquery_retry(timeout), timeout=timeout
            )
        except NotFound as e:
            raise TableNotFoundError(table.table_path) from e
        except TIMEOUT_ERRORS as e:
            raise InvocationTimeoutError("table lookup", timeout) from e
        except TRANSPORT_ERRORS as e:
            raise TableLookupError(table.table_path, str(e)) from e

    def ensure_dataset(self, table: TableReference, location: str, timeout: float) -> None:
        """Create the table's dataset in `location` unless it already exists."""
        dataset = bigquery.Dataset(table.dataset_path)
        dataset.location = location
        try:
            self._client.create_dataset(
                dataset, exists_ok=True, retry=bigquery_retry(timeout), timeout=timeout
            )
        except TIMEOUT_ERRORS as e:
            raise InvocationTimeoutError("dataset creation", timeout) from e
        except TRANSPORT_ERRORS as e:
            raise DatasetCreateError(table.dataset_path, str(e)) from e

    def load_from_uri(
        self,
        source_uri: str,
        table: TableReference,
        job_config: bigquery.LoadJobConfig,
        location: str,
        deadline: Deadline,
    ) -> bigquery.LoadJob:
        """
        Submit a load job and wait for it to finish.

        Submission and the wait each get what is left of `deadline` at the
        time they start.

        Raises:
            LoadJobError: the job could not be submitted, failed, or reported errors
            InvocationTimeoutError: the job did not finish within the budget
        """
        job = None
        timeout = deadline.remaining("load job submission")
        try:
            job = self._client.load_table_from_uri(
                source_uri,
                table.table_path,
                job_config=job_config,
                location=location,
                retry=bigquery_retry(timeout),
                timeout=timeout,
            )
            logger.info(f"Submitted load job {job.job_id} for {source_uri}")
            timeout = deadline.remaining("load job")
            job.result(retry=bigquery_retry(timeout), timeout=timeout)
        except TIMEOUT_ERRORS as e:
            raise InvocationTimeoutError("load job", timeout) from e
        except TRANSPORT_ERRORS as e:
            job_id = job.job_id if job is not None else None
            errors = (job.errors if job is not None else None) or [str(e)]
            raise LoadJobError(source_uri, job_id, errors) from e

        if job.errors:
            raise LoadJobError(source_uri, job.job_id, job.errors)
        return job

    def insert_rows(
        self, partition: PartitionedTableReference, rows: list[dict], timeout: float
    ) -> None:
        """
        Stream rows into one day partition, ignoring fields the table does not know.

        Raises:
            InsertError: the request failed or BigQuery rejected any row
            InvocationTimeoutError: the request ran past `timeout`
        """
        try:
            errors = self._client.insert_rows_json(
                partition.table_path,
                rows,
                ignore_unknown_values=True,
                retry=bigquery_retry(timeout),
                timeout=timeout,
            )
        except TIMEOUT_ERRORS as e:
            raise InvocationTimeoutError("streaming insert", timeout) from e
        except TRANSPORT_ERRORS as e:
            raise InsertError(partition.table_path, [str(e)]) from e

        if errors:
            raise InsertError(partition.table_path, errors)


class ObjectStore:
    """Cloud Storage operations needed by the loader."""

    def __init__(self, client: storage.Client):
        self._client = client

    def download(self, bucket: str, object_name: str, timeout: float) -> bytes:
        """Download an object's full content into memory."""
        blob = self._client.bucket(bucket).blob(object_name)
        try:
            return blob.download_as_bytes(timeout=timeout, retry=storage_retry(timeout))
        except TIMEOUT_ERRORS as e:
            raise InvocationTimeoutError("object download", timeout) from e
        except TRANSPORT_ERRORS as e:
            raise DownloadError(bucket, object_name, str(e)) from e

    def delete(self, bucket: str, object_name: str, timeout: float) -> None:
        blob = self._client.bucket(bucket).blob(object_name)
        try:
            blob.delete(timeout=timeout, retry=storage_retry(timeout))
        except (*TIMEOUT_ERRORS, *TRANSPORT_ERRORS) as e:
            raise DeleteError(bucket, object_name, str(e)) from e
