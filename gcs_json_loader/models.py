"""
Pydantic models for ingestion events, table references and results.

Single source of truth for what a trigger payload must contain and how the
destination table (and its daily partition) is addressed.
"""

import base64
import binascii
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gcs_json_loader.exceptions import InvalidEventError


def partition_suffix(day: date) -> str:
    """Partition decorator for a day, e.g. date(2024, 3, 7) -> "20240307"."""
    return day.strftime("%Y%m%d")


class TableReference(BaseModel):
    """Destination table, built from static configuration only."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    dataset_id: str
    table_id: str

    @property
    def dataset_path(self) -> str:
        return f"{self.project_id}.{self.dataset_id}"

    @property
    def table_path(self) -> str:
        return f"{self.project_id}.{self.dataset_id}.{self.table_id}"

    def partition(self, day: date) -> "PartitionedTableReference":
        return PartitionedTableReference(
            project_id=self.project_id,
            dataset_id=self.dataset_id,
            table_id=self.table_id,
            partition_date=day,
        )


class PartitionedTableReference(TableReference):
    """
    One day partition of the destination table.

    The $YYYYMMDD decorator lets streaming inserts target a time-partitioned
    table's partition directly.
    """

    partition_date: date

    @property
    def table_path(self) -> str:
        return f"{super().table_path}${partition_suffix(self.partition_date)}"


class IngestionEvent(BaseModel):
    """A newly created object to ingest, from a storage event or a Pub/Sub message."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    bucket: str = Field(min_length=1)
    object_name: str = Field(alias="name", min_length=1)
    created_at: datetime | None = Field(None, alias="timeCreated")

    @property
    def uri(self) -> str:
        return f"gs://{self.bucket}/{self.object_name}"

    @classmethod
    def from_storage_data(cls, data: dict[str, Any] | None) -> "IngestionEvent":
        """Build from GCS object.finalize event data ({bucket, name, timeCreated, ...})."""
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise InvalidEventError(f"Missing bucket or name in event data: {e}", payload=data) from e

    @classmethod
    def from_pubsub_message(cls, message: dict[str, Any] | None) -> "IngestionEvent":
        """Build from a Pub/Sub message whose attributes carry 'bucket' and 'file'."""
        message = message or {}
        attributes = message.get("attributes") or {}
        try:
            return cls.model_validate(
                {
                    "bucket": attributes.get("bucket"),
                    "name": attributes.get("file"),
                    "timeCreated": message.get("publishTime") or message.get("publish_time"),
                }
            )
        except ValidationError as e:
            raise InvalidEventError(
                f"Missing bucket or file attribute in message: {e}", payload=message
            ) from e


def decode_message_data(message: dict[str, Any]) -> str:
    """Decode a Pub/Sub message body (base64) to text; empty string when absent."""
    raw = message.get("data")
    if not raw:
        return ""
    try:
        return base64.b64decode(raw).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        raise InvalidEventError(f"Message data is not valid base64: {e}", payload=message) from e


class IngestionStrategy(str, Enum):
    """How a file reaches the table."""

    AUTO = "auto"  # stream if the table exists, else load
    LOAD = "load"


class IngestionStatus(str, Enum):
    SKIPPED = "skipped"
    LOADED = "loaded"
    STREAMED = "streamed"


class IngestionResult(BaseModel):
    """Outcome of one invocation."""

    status: IngestionStatus
    object_uri: str
    destination: str | None = None
    job_id: str | None = None
    row_count: int = 0
    deleted: bool = False
