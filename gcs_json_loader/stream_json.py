"""
Stream the rows of a newline-delimited JSON file into today's partition.

Reads the whole object into memory, parses one JSON object per line and
appends the rows to `table$YYYYMMDD` with streaming inserts.
"""

import json
import logging
from collections.abc import Iterator
from datetime import date

from gcs_json_loader.clients import ObjectStore, TableStore
from gcs_json_loader.config import LoaderConfig
from gcs_json_loader.deadline import Deadline
from gcs_json_loader.exceptions import MalformedContentError
from gcs_json_loader.models import IngestionEvent, PartitionedTableReference

logger = logging.getLogger(__name__)


def parse_ndjson(content: bytes) -> list[dict]:
    """
    Parse newline-delimited JSON into row dicts.

    Blank lines are skipped; every other line must hold a single JSON object.

    Raises:
        MalformedContentError: with the 1-based number of the offending line
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedContentError(0, f"not UTF-8: {e}") from e

    rows = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedContentError(line_number, str(e)) from e
        if not isinstance(record, dict):
            raise MalformedContentError(
                line_number, f"expected a JSON object, got {type(record).__name__}"
            )
        rows.append(record)
    return rows


def batched(rows: list[dict], size: int) -> Iterator[list[dict]]:
    """Split rows into consecutive batches of at most `size` rows."""
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def stream_json(
    event: IngestionEvent,
    tables: TableStore,
    objects: ObjectStore,
    config: LoaderConfig,
    deadline: Deadline,
    today: date,
) -> tuple[PartitionedTableReference, int]:
    """
    Download, parse and stream one NDJSON object into the `today` partition.

    The table is assumed to exist (checked by the caller).

    Returns:
        Tuple of (partition written to, number of rows inserted)
    """
    content = objects.download(
        event.bucket, event.object_name, timeout=deadline.remaining("object download")
    )
    rows = parse_ndjson(content)

    partition = config.table.partition(today)
    if not rows:
        logger.info(f"No rows in {event.uri}, nothing to insert")
        return partition, 0

    for batch in batched(rows, config.insert_batch_size):
        tables.insert_rows(partition, batch, timeout=deadline.remaining("streaming insert"))
        logger.debug(f"Inserted {len(batch)} rows into {partition.table_path}")

    logger.info(
        f"Completed inserting {len(rows)} rows from {event.uri} into BigQuery {partition.table_path}"
    )
    return partition, len(rows)
