"""
Event payload parsing for the document pipeline Cloud Functions.
Decodes Pub/Sub and Cloud Storage CloudEvents into typed records.
"""

import base64
import binascii
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pipeline_shared.errors import ParameterParsingError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class EventEnvelope:
    """One triggering occurrence delivered to a stage, before decoding."""
    source: Optional[str]
    payload: Any


@dataclass
class PubSubMessage:
    """Decoded message data with optional attributes."""
    data: Dict[str, Any]
    attributes: Optional[Dict[str, str]] = None


@dataclass
class StorageEventData:
    """Cloud Storage object event fields used by the pipeline."""
    bucket: str
    name: str
    content_type: Optional[str] = None
    size: Optional[str] = None
    generation: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None


def envelope_from_cloud_event(cloud_event: Any) -> EventEnvelope:
    """Build an envelope from a CloudEvents object.

    Pub/Sub push deliveries wrap the message as ``{"message": {"data": ...}}``;
    in that case the payload is the message data string. Any other event data
    is used as the payload as-is.

    Args:
        cloud_event: CloudEvent delivered by functions_framework (may be None)

    Returns:
        EventEnvelope with the event source and raw payload
    """
    if cloud_event is None:
        return EventEnvelope(source=None, payload=None)

    source = get_event_attribute(cloud_event, "source")
    data = getattr(cloud_event, "data", None)

    if isinstance(data, Mapping):
        message = data.get("message")
        if isinstance(message, Mapping) and "data" in message:
            data = message["data"]

    return EventEnvelope(source=source, payload=data)


def parse_pubsub_event(envelope: Optional[EventEnvelope]) -> PubSubMessage:
    """Parse an event envelope into typed message data.

    Args:
        envelope: Envelope holding the raw payload

    Returns:
        PubSubMessage with the decoded data and, when the event had a source,
        a ``{"source": ...}`` attributes mapping

    Raises:
        ValidationError: The payload is missing or of an unsupported type
        ParameterParsingError: The payload text is not valid JSON
    """
    if envelope is None or envelope.payload is None:
        raise ValidationError("CloudEvent data is required")

    payload = envelope.payload
    attributes = {"source": envelope.source} if envelope.source else None

    if isinstance(payload, Mapping):
        return PubSubMessage(data=payload, attributes=attributes)

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParameterParsingError("Failed to decode message bytes as UTF-8", e) from e

    if not isinstance(payload, str):
        raise ValidationError(f"Unsupported data type: {_type_name(payload)}")

    text = _decode_base64_or_raw(payload)

    try:
        parsed = json.loads(text, parse_constant=reject_non_finite_constant)
    except ValueError as e:
        raise ParameterParsingError("Failed to parse JSON data from PubSub message", e) from e

    if not isinstance(parsed, dict):
        raise ValidationError(f"Unsupported data type: {_type_name(parsed)}")

    return PubSubMessage(data=parsed, attributes=attributes)


def reject_non_finite_constant(token: str) -> float:
    """``parse_constant`` hook for ``json.loads``: NaN and Infinity are not JSON."""
    raise ValueError(f"Invalid JSON number: {token}")


def _decode_base64_or_raw(payload: str) -> str:
    """Two attempts: base64-decoded UTF-8 text, else the payload unchanged.

    Pub/Sub messages are normally base64 encoded, but payloads published as
    plain JSON text are accepted too. The first attempt's failure is discarded
    on purpose; a bad payload surfaces as a JSON parsing error afterwards.
    """
    try:
        return base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.debug("Message data is not base64 encoded, parsing it as raw text")
        return payload


def parse_storage_event(storage_object_data: Optional[Mapping]) -> StorageEventData:
    """Parse Cloud Storage object event data.

    Args:
        storage_object_data: The ``data`` of a storage CloudEvent

    Returns:
        StorageEventData for the object

    Raises:
        ValidationError: Event data, bucket or object name is missing
    """
    if not storage_object_data:
        raise ValidationError("StorageObjectData is required")

    if not isinstance(storage_object_data, Mapping):
        raise ValidationError(f"Unsupported data type: {_type_name(storage_object_data)}")

    bucket = storage_object_data.get("bucket")
    name = storage_object_data.get("name")

    if not bucket:
        raise ValidationError("Storage bucket name is required", "bucket")

    if not name:
        raise ValidationError("Storage object name is required", "name")

    size = storage_object_data.get("size")
    generation = storage_object_data.get("generation")

    return StorageEventData(
        bucket=bucket,
        name=name,
        content_type=storage_object_data.get("contentType"),
        size=str(size) if size else None,
        generation=str(generation) if generation else None,
        metadata=storage_object_data.get("metadata") or None,
    )


def validate_required_fields(data: Mapping, required_fields: List[str]) -> None:
    """Validate that required fields are present and non-empty.

    A field is missing when it is absent, None or the empty string; numeric
    zero and False count as present.

    Args:
        data: The data mapping to validate
        required_fields: Field names in the order they should be reported

    Raises:
        ValidationError: Lists every missing field; ``field`` is the first one
    """
    missing_fields = [field for field in required_fields if _is_missing(data.get(field))]

    if missing_fields:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing_fields)}",
            missing_fields[0],
        )


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def get_event_attribute(cloud_event: Any, name: str) -> Optional[str]:
    """Read a CloudEvent attribute from either a CloudEvent or a plain object."""
    get_attributes = getattr(cloud_event, "get_attributes", None)
    if callable(get_attributes):
        return get_attributes().get(name)
    return getattr(cloud_event, name, None)


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


def describe_cloud_event(cloud_event: Any) -> str:
    """Short one-line description of a CloudEvent for logs."""
    if cloud_event is None:
        return "None"
    return (f"id={get_event_attribute(cloud_event, 'id')} "
            f"source={get_event_attribute(cloud_event, 'source')} "
            f"type={get_event_attribute(cloud_event, 'type')}")
