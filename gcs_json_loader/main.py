"""
Cloud Function entrypoints for the GCS JSON to BigQuery loader.

- stream_json_to_bq: GCS object.finalize event; streams into an existing table,
  loads (and creates the table) otherwise.
- load_json_to_bq: GCS object.finalize event; always submits a load job.
- subscribe_json_message: Pub/Sub message whose attributes name the bucket and
  file; always submits a load job.

Every entrypoint returns normally on success (or when the object is skipped)
and re-raises on failure, so the platform marks the invocation failed and
redelivers (and, for Pub/Sub, does not acknowledge the message).
"""

import logging
from functools import lru_cache

import functions_framework
from cloudevents.http import CloudEvent

from gcs_json_loader.config import get_config
from gcs_json_loader.exceptions import InvalidEventError, get_error_context
from gcs_json_loader.ingest import Services, build_services, ingest
from gcs_json_loader.models import (
    IngestionEvent,
    IngestionStrategy,
    decode_message_data,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_services() -> Services:
    """
    Configuration and clients, built once per instance.

    Configuration is validated before any client exists, so a missing variable
    fails the invocation before any network call.
    """
    config = get_config()
    logging.getLogger().setLevel(config.log_level)
    return build_services(config)


def _run(event: IngestionEvent, strategy: IngestionStrategy) -> tuple[str, int]:
    try:
        result = ingest(event, get_services(), strategy)
    except Exception as e:
        logger.exception(f"Error processing {event.uri}: {e}", extra={"error": get_error_context(e)})
        raise
    return f"{result.status.value}: {result.object_uri}", 200


def _storage_event(cloud_event: CloudEvent) -> IngestionEvent:
    try:
        return IngestionEvent.from_storage_data(cloud_event.get_data())
    except InvalidEventError as e:
        logger.error(f"Rejected event {cloud_event['id']}: {e}")
        raise


@functions_framework.cloud_event
def stream_json_to_bq(cloud_event: CloudEvent) -> tuple[str, int]:
    """
    Handle GCS object finalize events: stream rows into today's partition.

    Falls back to a load job (which creates the table) when the table does
    not exist yet.

    Args:
        cloud_event: Cloud Event with GCS object data

    Returns:
        Tuple of (message, status_code)
    """
    event = _storage_event(cloud_event)
    logger.info(f"Received event for {event.uri}")
    return _run(event, IngestionStrategy.AUTO)


@functions_framework.cloud_event
def load_json_to_bq(cloud_event: CloudEvent) -> tuple[str, int]:
    """Handle GCS object finalize events with a load job."""
    event = _storage_event(cloud_event)
    logger.info(f"Received event for {event.uri}")
    return _run(event, IngestionStrategy.LOAD)


@functions_framework.cloud_event
def subscribe_json_message(cloud_event: CloudEvent) -> tuple[str, int]:
    """
    Handle a Pub/Sub message naming a JSON file to load.

    The message is acknowledged only when this returns without raising.
    A malformed message (no bucket/file attributes, body not base64) fails
    every delivery, so the subscription needs a dead-letter topic to stop
    redelivering it.
    """
    data = cloud_event.get_data() or {}
    message = data.get("message") or {}
    message_id = message.get("messageId")

    logger.info(f"Subscribe processing message {message_id}")
    try:
        logger.info(f"  Data: {decode_message_data(message)}")
        logger.info(f"  Attributes: {message.get('attributes')}")
        event = IngestionEvent.from_pubsub_message(message)
    except InvalidEventError as e:
        logger.error(
            f"Malformed message {message_id} will be redelivered until it reaches "
            f"the subscription's dead-letter topic: {e}",
            extra={"error": e.to_dict()},
        )
        raise
    return _run(event, IngestionStrategy.LOAD)
