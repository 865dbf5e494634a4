"""
Firestore helpers for the classification stage: decoding document events and
writing classification results back to the triggering record.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Optional

from google.cloud import firestore
from google.events.cloud.firestore import DocumentEventData
from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError

from pipeline_shared.errors import ParameterParsingError, ValidationError
from pipeline_shared.parameter_parser import get_event_attribute, validate_required_fields

logger = logging.getLogger(__name__)

REQUIRED_DOCUMENT_FIELDS = ["fileId", "fileName", "extractedText"]
DOCUMENT_PATH_PATTERN = re.compile(r"(?:^|/)documents/(.+)$")


@dataclass
class ClassificationUpdate:
    """Fields written to an ``extracted_texts`` record once it is classified."""
    category: Optional[str]
    category_folder_id: Optional[str]
    classification_confidence: float
    classification_reasoning: str
    classified_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "categoryFolderId": self.category_folder_id,
            "classificationConfidence": self.classification_confidence,
            "classificationReasoning": self.classification_reasoning,
            "classifiedAt": self.classified_at,
        }


def _value_field(value: Mapping, camel: str, snake: str) -> Any:
    if camel in value:
        return value[camel]
    return value.get(snake)


def convert_firestore_value(value: Any) -> Any:
    """Convert one typed Firestore value (``{"stringValue": ...}``) to plain Python."""
    if not isinstance(value, Mapping):
        return value

    if "stringValue" in value or "string_value" in value:
        return _value_field(value, "stringValue", "string_value")
    if "integerValue" in value or "integer_value" in value:
        return int(_value_field(value, "integerValue", "integer_value"))
    if "doubleValue" in value or "double_value" in value:
        return float(_value_field(value, "doubleValue", "double_value"))
    if "booleanValue" in value or "boolean_value" in value:
        return bool(_value_field(value, "booleanValue", "boolean_value"))
    if "nullValue" in value or "null_value" in value:
        return None
    if "timestampValue" in value or "timestamp_value" in value:
        return _value_field(value, "timestampValue", "timestamp_value")
    if "arrayValue" in value or "array_value" in value:
        array_value = _value_field(value, "arrayValue", "array_value") or {}
        return [convert_firestore_value(item) for item in array_value.get("values") or []]
    if "mapValue" in value or "map_value" in value:
        map_value = _value_field(value, "mapValue", "map_value") or {}
        return convert_firestore_fields(map_value.get("fields") or {})

    return value


def convert_firestore_fields(fields: Mapping) -> Dict[str, Any]:
    """Convert a Firestore ``fields`` mapping to a plain dictionary."""
    return {key: convert_firestore_value(value) for key, value in fields.items()}


def decode_document_event(cloud_event) -> Dict[str, Any]:
    """Decode a Firestore document event's data to a JSON-style dictionary.

    Eventarc delivers Firestore events as ``DocumentEventData`` protobuf bytes;
    JSON payloads are accepted as they are.

    Args:
        cloud_event: Firestore document created CloudEvent

    Returns:
        Dictionary with ``value`` (and ``oldValue``) documents
    """
    data = getattr(cloud_event, "data", None)
    if data is None:
        raise ValidationError("Firestore event data is required")

    if isinstance(data, Mapping):
        return dict(data)

    if isinstance(data, (bytes, bytearray)):
        payload = DocumentEventData()
        try:
            payload._pb.ParseFromString(bytes(data))
        except DecodeError as e:
            raise ParameterParsingError("Failed to decode Firestore event payload", e) from e
        return MessageToDict(payload._pb)

    raise ValidationError(f"Unsupported Firestore event data type: {type(data).__name__}")


def document_fields_from_event(event_data: Mapping) -> Dict[str, Any]:
    """Plain fields of the created document in a decoded Firestore event."""
    value = event_data.get("value") or {}
    return convert_firestore_fields(value.get("fields") or {})


def _relative_document_path(path: str) -> str:
    match = DOCUMENT_PATH_PATTERN.search(path)
    return match.group(1) if match else path


def get_document_path(cloud_event, event_data: Mapping) -> str:
    """Find the ``collection/docId`` path of the document behind an event.

    The ``document`` extension attribute is preferred, then the event
    ``subject``, then the full resource name of the document value.
    """
    document = get_event_attribute(cloud_event, "document")
    if document:
        return _relative_document_path(document)

    subject = get_event_attribute(cloud_event, "subject")
    if subject and DOCUMENT_PATH_PATTERN.search(subject):
        return _relative_document_path(subject)

    name = (event_data.get("value") or {}).get("name")
    if name and DOCUMENT_PATH_PATTERN.search(name):
        return _relative_document_path(name)

    raise ValidationError("Cannot determine document path from event", "document")


def parse_document_data(document_snapshot: Mapping) -> Dict[str, Any]:
    """Check that a record has what classification needs.

    Args:
        document_snapshot: Plain document fields

    Returns:
        A copy of the fields

    Raises:
        ValidationError: fileId, fileName or extractedText is missing
    """
    validate_required_fields(document_snapshot, REQUIRED_DOCUMENT_FIELDS)
    return dict(document_snapshot)


def update_document_with_classification(
    firestore_client: firestore.Client,
    document_path: str,
    classification: ClassificationUpdate
) -> None:
    """Write classification fields to an existing document."""
    firestore_client.document(document_path).update(classification.to_dict())
    logger.info(f"Updated Firestore document {document_path} with classification")
