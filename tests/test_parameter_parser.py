"""
Tests for event payload parsing and field validation.
"""

import base64
import json

import pytest
from cloudevents.http import CloudEvent

from pipeline_shared.errors import PARSING_ERROR, ParameterParsingError, ValidationError
from pipeline_shared.parameter_parser import (
    EventEnvelope,
    envelope_from_cloud_event,
    parse_pubsub_event,
    parse_storage_event,
    validate_required_fields,
)

SAMPLE = {"folderId": "folder-123", "nested": {"count": 2}, "tags": ["a", "b"]}


def encode(data) -> str:
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def test_structured_payload_is_returned_unchanged():
    message = parse_pubsub_event(EventEnvelope(source="//pubsub/topic", payload=SAMPLE))

    assert message.data == SAMPLE
    assert message.attributes == {"source": "//pubsub/topic"}


def test_structured_payload_without_source_has_no_attributes():
    message = parse_pubsub_event(EventEnvelope(source=None, payload={"fileId": "x"}))

    assert message.attributes is None


def test_base64_and_raw_json_parse_to_the_same_data():
    from_base64 = parse_pubsub_event(EventEnvelope(source=None, payload=encode(SAMPLE)))
    from_raw = parse_pubsub_event(EventEnvelope(source=None, payload=json.dumps(SAMPLE)))

    assert from_base64.data == SAMPLE
    assert from_raw.data == SAMPLE


def test_bytes_payload_is_decoded_as_text():
    message = parse_pubsub_event(EventEnvelope(source=None, payload=encode(SAMPLE).encode("ascii")))

    assert message.data == SAMPLE


def test_unicode_content_survives_base64_decoding():
    data = {"fileName": "請求書.pdf"}

    message = parse_pubsub_event(EventEnvelope(source=None, payload=encode(data)))

    assert message.data == data


@pytest.mark.parametrize("payload", ["not json at all", "{broken", "abcd"])
def test_non_json_strings_fail_with_parsing_error(payload):
    with pytest.raises(ParameterParsingError) as exc_info:
        parse_pubsub_event(EventEnvelope(source=None, payload=payload))

    assert exc_info.value.kind == PARSING_ERROR
    assert exc_info.value.cause is not None
    assert not isinstance(exc_info.value, ValidationError)


@pytest.mark.parametrize("envelope", [None, EventEnvelope(source="s", payload=None)])
def test_missing_payload_is_a_validation_error(envelope):
    with pytest.raises(ValidationError, match="CloudEvent data is required"):
        parse_pubsub_event(envelope)


def test_unsupported_payload_type_is_named():
    with pytest.raises(ValidationError, match="Unsupported data type: number"):
        parse_pubsub_event(EventEnvelope(source=None, payload=42))


def test_json_array_payload_is_rejected():
    with pytest.raises(ValidationError, match="array"):
        parse_pubsub_event(EventEnvelope(source=None, payload=json.dumps([1, 2])))


def test_non_finite_numbers_fail_with_parsing_error():
    with pytest.raises(ParameterParsingError, match="Failed to parse JSON"):
        parse_pubsub_event(EventEnvelope(source=None, payload='{"confidence": NaN}'))


def test_envelope_unwraps_pubsub_push_message():
    cloud_event = CloudEvent(
        {"type": "google.cloud.pubsub.topic.v1.messagePublished", "source": "//pubsub.googleapis.com/topic"},
        {"message": {"data": encode({"folderId": "f1"}), "messageId": "1"}},
    )

    envelope = envelope_from_cloud_event(cloud_event)
    message = parse_pubsub_event(envelope)

    assert envelope.source == "//pubsub.googleapis.com/topic"
    assert message.data == {"folderId": "f1"}
    assert message.attributes == {"source": "//pubsub.googleapis.com/topic"}


def test_envelope_of_missing_event_is_empty():
    assert envelope_from_cloud_event(None) == EventEnvelope(source=None, payload=None)


def test_parse_storage_event():
    event = parse_storage_event({
        "bucket": "proj-document-storage",
        "name": "documents/abc",
        "contentType": "application/pdf",
        "size": 1024,
        "generation": 17,
        "metadata": {"contentHash": "abc"},
    })

    assert event.bucket == "proj-document-storage"
    assert event.name == "documents/abc"
    assert event.content_type == "application/pdf"
    assert event.size == "1024"
    assert event.generation == "17"
    assert event.metadata == {"contentHash": "abc"}


@pytest.mark.parametrize("data,field", [
    ({"name": "documents/abc"}, "bucket"),
    ({"bucket": "b", "name": ""}, "name"),
])
def test_parse_storage_event_requires_bucket_and_name(data, field):
    with pytest.raises(ValidationError) as exc_info:
        parse_storage_event(data)

    assert exc_info.value.field == field


def test_parse_storage_event_requires_data():
    with pytest.raises(ValidationError, match="StorageObjectData is required"):
        parse_storage_event(None)


def test_validate_required_fields_reports_missing_field():
    with pytest.raises(ValidationError) as exc_info:
        validate_required_fields({"a": "x"}, ["a", "b"])

    assert exc_info.value.field == "b"
    assert exc_info.value.message == "Missing required fields: b"


def test_validate_required_fields_treats_empty_string_as_missing():
    with pytest.raises(ValidationError) as exc_info:
        validate_required_fields({"a": "1", "b": ""}, ["a", "b"])

    assert exc_info.value.field == "b"


def test_validate_required_fields_lists_all_missing_in_order():
    with pytest.raises(ValidationError) as exc_info:
        validate_required_fields({"c": "1"}, ["a", "b", "c"])

    assert exc_info.value.message == "Missing required fields: a, b"
    assert exc_info.value.field == "a"


def test_validate_required_fields_accepts_zero_and_false():
    validate_required_fields({"count": 0, "enabled": False, "name": "x"}, ["count", "enabled", "name"])
