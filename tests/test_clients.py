"""Tests for the BigQuery/Cloud Storage wrappers: error mapping and time budget."""

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests
from google.api_core.exceptions import (
    BadRequest,
    DeadlineExceeded,
    Forbidden,
    NotFound,
    RetryError,
    ServiceUnavailable,
)

from gcs_json_loader.clients import ObjectStore, TableStore
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
from gcs_json_loader.models import TableReference

TABLE = TableReference(project_id="p", dataset_id="d", table_id="t")


def retry_gave_up() -> RetryError:
    return RetryError("Deadline of 10.0s exceeded", ServiceUnavailable("503"))


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_get_table_returns_table():
    client = MagicMock()
    client.get_table.return_value = "table"
    assert TableStore(client).get_table(TABLE, timeout=10) == "table"
    client.get_table.assert_called_once()
    assert client.get_table.call_args.args == ("p.d.t",)
    assert client.get_table.call_args.kwargs["timeout"] == 10


def test_get_table_retry_is_bound_to_the_budget():
    client = MagicMock()
    TableStore(client).get_table(TABLE, timeout=10)
    assert client.get_table.call_args.kwargs["retry"].timeout == 10


def test_get_table_not_found():
    client = MagicMock()
    client.get_table.side_effect = NotFound("Not found: Table p:d.t")
    with pytest.raises(TableNotFoundError):
        TableStore(client).get_table(TABLE, timeout=10)


@pytest.mark.parametrize(
    "error",
    [Forbidden("Access Denied"), requests.exceptions.ConnectionError("reset")],
)
def test_get_table_other_failures_are_not_not_found(error):
    client = MagicMock()
    client.get_table.side_effect = error
    with pytest.raises(TableLookupError):
        TableStore(client).get_table(TABLE, timeout=10)


@pytest.mark.parametrize(
    "error",
    [DeadlineExceeded("slow"), requests.exceptions.ReadTimeout("slow"), retry_gave_up()],
)
def test_get_table_timeout(error):
    client = MagicMock()
    client.get_table.side_effect = error
    with pytest.raises(InvocationTimeoutError):
        TableStore(client).get_table(TABLE, timeout=10)


def test_ensure_dataset_sets_location():
    client = MagicMock()
    TableStore(client).ensure_dataset(TABLE, "EU", timeout=10)
    dataset = client.create_dataset.call_args.args[0]
    assert dataset.dataset_id == "d"
    assert dataset.project == "p"
    assert dataset.location == "EU"
    assert client.create_dataset.call_args.kwargs["exists_ok"] is True
    assert client.create_dataset.call_args.kwargs["retry"].timeout == 10


def test_ensure_dataset_failure():
    client = MagicMock()
    client.create_dataset.side_effect = Forbidden("no")
    with pytest.raises(DatasetCreateError):
        TableStore(client).ensure_dataset(TABLE, "US", timeout=10)


def test_ensure_dataset_retry_exhausted():
    client = MagicMock()
    client.create_dataset.side_effect = retry_gave_up()
    with pytest.raises(InvocationTimeoutError):
        TableStore(client).ensure_dataset(TABLE, "US", timeout=10)


def _job(errors=None, result_error=None):
    job = MagicMock()
    job.job_id = "job-1"
    job.errors = errors
    if result_error is not None:
        job.result.side_effect = result_error
    return job


def test_load_from_uri_waits_for_job():
    client = MagicMock()
    job = _job()
    client.load_table_from_uri.return_value = job
    config = MagicMock()

    result = TableStore(client).load_from_uri(
        "gs://b/x.json", TABLE, config, "US", Deadline(30, clock=FakeClock())
    )

    assert result is job
    args, kwargs = client.load_table_from_uri.call_args
    assert args == ("gs://b/x.json", "p.d.t")
    assert kwargs["job_config"] is config
    assert kwargs["location"] == "US"
    assert kwargs["timeout"] == 30
    assert kwargs["retry"].timeout == 30
    assert job.result.call_args.kwargs["timeout"] == 30


def test_load_from_uri_wait_gets_only_what_submission_left():
    clock = FakeClock()
    client = MagicMock()
    job = _job()

    def slow_submit(*args, **kwargs):
        clock.now += 12
        return job

    client.load_table_from_uri.side_effect = slow_submit

    TableStore(client).load_from_uri("gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30, clock=clock))

    assert client.load_table_from_uri.call_args.kwargs["timeout"] == 30
    assert job.result.call_args.kwargs["timeout"] == 18
    assert job.result.call_args.kwargs["retry"].timeout == 18


def test_load_from_uri_budget_used_up_by_submission():
    clock = FakeClock()
    client = MagicMock()
    job = _job()

    def slow_submit(*args, **kwargs):
        clock.now += 31
        return job

    client.load_table_from_uri.side_effect = slow_submit

    with pytest.raises(InvocationTimeoutError):
        TableStore(client).load_from_uri(
            "gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30, clock=clock)
        )
    job.result.assert_not_called()


def test_load_from_uri_failed_job_reports_job_errors():
    client = MagicMock()
    errors = [{"reason": "invalid", "message": "JSON parsing error"}]
    client.load_table_from_uri.return_value = _job(errors, BadRequest("JSON parsing error"))

    with pytest.raises(LoadJobError) as exc_info:
        TableStore(client).load_from_uri("gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30))
    assert exc_info.value.job_id == "job-1"
    assert exc_info.value.errors == errors


def test_load_from_uri_errors_on_finished_job():
    client = MagicMock()
    client.load_table_from_uri.return_value = _job([{"message": "row 3 skipped"}])
    with pytest.raises(LoadJobError):
        TableStore(client).load_from_uri("gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30))


def test_load_from_uri_submission_failure():
    client = MagicMock()
    client.load_table_from_uri.side_effect = Forbidden("denied")
    with pytest.raises(LoadJobError) as exc_info:
        TableStore(client).load_from_uri("gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30))
    assert exc_info.value.job_id is None


@pytest.mark.parametrize("error", [TimeoutError(), retry_gave_up()])
def test_load_from_uri_timeout(error):
    client = MagicMock()
    client.load_table_from_uri.return_value = _job(result_error=error)
    with pytest.raises(InvocationTimeoutError):
        TableStore(client).load_from_uri("gs://b/x.json", TABLE, MagicMock(), "US", Deadline(30))


def test_insert_rows_uses_partition_and_ignores_unknown_values():
    client = MagicMock()
    client.insert_rows_json.return_value = []
    partition = TABLE.partition(date(2024, 3, 7))

    TableStore(client).insert_rows(partition, [{"id": 1}], timeout=5)
    args, kwargs = client.insert_rows_json.call_args
    assert args == ("p.d.t$20240307", [{"id": 1}])
    assert kwargs["ignore_unknown_values"] is True
    assert kwargs["timeout"] == 5
    assert kwargs["retry"].timeout == 5


def test_insert_rows_row_errors():
    client = MagicMock()
    client.insert_rows_json.return_value = [{"index": 0, "errors": [{"reason": "invalid"}]}]
    with pytest.raises(InsertError) as exc_info:
        TableStore(client).insert_rows(TABLE.partition(date(2024, 3, 7)), [{"id": 1}], timeout=5)
    assert exc_info.value.errors[0]["index"] == 0


def test_insert_rows_request_failure():
    client = MagicMock()
    client.insert_rows_json.side_effect = NotFound("partition table gone")
    with pytest.raises(InsertError):
        TableStore(client).insert_rows(TABLE.partition(date(2024, 3, 7)), [{"id": 1}], timeout=5)


def test_insert_rows_retry_exhausted():
    client = MagicMock()
    client.insert_rows_json.side_effect = retry_gave_up()
    with pytest.raises(InvocationTimeoutError):
        TableStore(client).insert_rows(TABLE.partition(date(2024, 3, 7)), [{"id": 1}], timeout=5)


def test_download_reads_blob():
    client = MagicMock()
    blob = client.bucket.return_value.blob.return_value
    blob.download_as_bytes.return_value = b'{"id": 1}\n'

    assert ObjectStore(client).download("landing", "x.json", timeout=5) == b'{"id": 1}\n'
    client.bucket.assert_called_once_with("landing")
    client.bucket.return_value.blob.assert_called_once_with("x.json")
    assert blob.download_as_bytes.call_args.kwargs["timeout"] == 5
    assert blob.download_as_bytes.call_args.kwargs["retry"].timeout == 5


def test_download_failure():
    client = MagicMock()
    client.bucket.return_value.blob.return_value.download_as_bytes.side_effect = NotFound("gone")
    with pytest.raises(DownloadError):
        ObjectStore(client).download("landing", "x.json", timeout=5)


def test_download_retry_exhausted():
    client = MagicMock()
    client.bucket.return_value.blob.return_value.download_as_bytes.side_effect = retry_gave_up()
    with pytest.raises(InvocationTimeoutError):
        ObjectStore(client).download("landing", "x.json", timeout=5)


def test_delete_retry_is_bound_to_the_budget():
    client = MagicMock()
    ObjectStore(client).delete("landing", "x.json", timeout=5)
    assert client.bucket.return_value.blob.return_value.delete.call_args.kwargs["retry"].timeout == 5


@pytest.mark.parametrize("error", [DeadlineExceeded("slow"), retry_gave_up()])
def test_delete_failure_includes_timeouts(error):
    client = MagicMock()
    client.bucket.return_value.blob.return_value.delete.side_effect = error
    with pytest.raises(DeleteError):
        ObjectStore(client).delete("landing", "x.json", timeout=5)
