"""
Shared fixtures: loader configuration and in-memory stand-ins for the
BigQuery and Cloud Storage wrappers.
"""

from types import SimpleNamespace

import pytest

from gcs_json_loader.config import LoaderConfig
from gcs_json_loader.exceptions import TableNotFoundError
from gcs_json_loader.ingest import Services
from gcs_json_loader.models import IngestionEvent


class FakeTableStore:
    """Records every call; table existence and failures are set per test."""

    def __init__(self, table_exists: bool = True):
        self.table_exists = table_exists
        self.lookup_error: Exception | None = None
        self.load_error: Exception | None = None
        self.insert_error: Exception | None = None
        self.lookups = []
        self.datasets = []
        self.loads = []
        self.inserts = []
        self.insert_timeouts = []

    def get_table(self, table, timeout):
        self.lookups.append(table)
        if self.lookup_error is not None:
            raise self.lookup_error
        if not self.table_exists:
            raise TableNotFoundError(table.table_path)
        return SimpleNamespace(table_id=table.table_id)

    def ensure_dataset(self, table, location, timeout):
        self.datasets.append((table.dataset_path, location))

    def load_from_uri(self, source_uri, table, job_config, location, deadline):
        self.loads.append((source_uri, table.table_path, job_config, location))
        if self.load_error is not None:
            raise self.load_error
        return SimpleNamespace(job_id="job-123", output_rows=2, errors=None)

    def insert_rows(self, partition, rows, timeout):
        self.insert_timeouts.append(timeout)
        if self.insert_error is not None:
            raise self.insert_error
        self.inserts.append((partition.table_path, list(rows)))


class FakeObjectStore:
    def __init__(self, content: bytes = b""):
        self.content = content
        self.delete_error: Exception | None = None
        self.downloads = []
        self.deleted = []

    def download(self, bucket, object_name, timeout):
        self.downloads.append((bucket, object_name))
        return self.content

    def delete(self, bucket, object_name, timeout):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append((bucket, object_name))


@pytest.fixture
def config() -> LoaderConfig:
    return LoaderConfig(project_id="my-project", dataset_id="events", table_id="raw_events")


@pytest.fixture
def tables() -> FakeTableStore:
    return FakeTableStore()


@pytest.fixture
def objects() -> FakeObjectStore:
    return FakeObjectStore(b'{"id": 1, "name": "a"}\n{"id": 2, "name": "b"}\n')


@pytest.fixture
def services(config, tables, objects) -> Services:
    return Services(config=config, tables=tables, objects=objects)


@pytest.fixture
def json_event() -> IngestionEvent:
    return IngestionEvent.from_storage_data(
        {"bucket": "landing", "name": "incoming/events.json", "timeCreated": "2024-03-07T10:15:00.000Z"}
    )
