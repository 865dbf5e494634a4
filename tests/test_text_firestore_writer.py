"""
Tests for the extracted text persistence stage.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from cloudevents.http import CloudEvent

from pipeline_shared.errors import ValidationError
from pipeline_shared.parameter_parser import StorageEventData
from text_firestore_writer.firestore_writer import (
    ExtractedTextWriter,
    PageText,
    aggregate_pages,
    content_hash_from_result_path,
    text_firestore_writer_entry,
)

CONTENT_HASH = "abc123"
VISION_RESULT = {
    "responses": [
        {"fullTextAnnotation": {"text": "Page one", "pages": [{"confidence": 0.9}]}},
        {"fullTextAnnotation": {"text": "   ", "pages": [{"confidence": 0.1}]}},
        {},
        {"fullTextAnnotation": {"text": "Page two", "pages": [{"confidence": 0.7}]}},
    ]
}
PROVENANCE = {
    "originalFileId": "file-1",
    "originalFileName": "invoice.pdf",
    "originalMimeType": "application/pdf",
    "contentHash": CONTENT_HASH,
    "processedAt": "2024-05-01T10:00:00+00:00",
}


def test_aggregate_pages_skips_blank_pages_and_averages_confidence():
    text, confidence, pages = aggregate_pages(VISION_RESULT)

    assert text == "Page one\nPage two"
    assert confidence == pytest.approx(0.8)
    assert pages == [PageText(1, "Page one", 0.9), PageText(2, "Page two", 0.7)]


def test_aggregate_pages_without_text_has_zero_confidence():
    assert aggregate_pages({"responses": [{}]}) == ("", 0.0, [])


def test_aggregate_pages_defaults_missing_confidence_to_zero():
    _, confidence, pages = aggregate_pages({"responses": [{"fullTextAnnotation": {"text": "x"}}]})

    assert confidence == 0.0
    assert pages[0].confidence == 0.0


def test_aggregate_pages_requires_responses():
    with pytest.raises(ValidationError, match="No responses found"):
        aggregate_pages({"responses": []})


@pytest.mark.parametrize("name,expected", [
    ("results/abc123/output-1-to-20.json", "abc123"),
    ("results/abc123/output-1-to-1.json", "abc123"),
    ("documents/abc123", None),
    ("results/output.json", None),
])
def test_content_hash_from_result_path(name, expected):
    assert content_hash_from_result_path(name) == expected


def make_writer(result_metadata=PROVENANCE, source_metadata=None, document_size=2048):
    result_blob = MagicMock()
    result_blob.metadata = result_metadata
    result_blob.download_as_bytes.return_value = json.dumps(VISION_RESULT).encode("utf-8")

    source_blob = MagicMock()
    source_blob.name = f"documents/{CONTENT_HASH}"
    source_blob.metadata = source_metadata
    source_blob.size = document_size

    buckets = {
        "proj-vision-results": MagicMock(),
        "proj-document-storage": MagicMock(),
    }
    buckets["proj-vision-results"].get_blob.return_value = result_blob
    buckets["proj-document-storage"].get_blob.return_value = source_blob

    storage_client = MagicMock()
    storage_client.bucket.side_effect = lambda name: buckets[name]

    doc_ref = MagicMock()
    doc_ref.id = "doc-1"
    firestore_client = MagicMock()
    firestore_client.collection.return_value.add.return_value = (None, doc_ref)

    writer = ExtractedTextWriter("proj", storage_client=storage_client, firestore_client=firestore_client)
    return writer, firestore_client, buckets


def result_event(name=f"results/{CONTENT_HASH}/output-1-to-1.json", content_type="application/json"):
    return StorageEventData(bucket="proj-vision-results", name=name, content_type=content_type)


def test_store_result_adds_record():
    writer, firestore_client, _ = make_writer()

    result = writer.store_result(result_event())

    firestore_client.collection.assert_called_once_with("extracted_texts")
    record, = firestore_client.collection.return_value.add.call_args.args
    assert record == {
        "fileId": "file-1",
        "objectName": f"documents/{CONTENT_HASH}",
        "extractedText": "Page one\nPage two",
        "confidence": pytest.approx(0.8),
        "pages": [
            {"pageNumber": 1, "text": "Page one", "confidence": 0.9},
            {"pageNumber": 2, "text": "Page two", "confidence": 0.7},
        ],
        "extractedAt": "2024-05-01T10:00:00+00:00",
        "mimeType": "application/pdf",
        "fileName": "invoice.pdf",
        "fileSize": 2048,
        "contentHash": CONTENT_HASH,
        "visionResultPath": f"gs://proj-vision-results/results/{CONTENT_HASH}/output-1-to-1.json",
    }
    assert result == {
        "message": "Successfully stored extracted text from invoice.pdf",
        "firestoreDocId": "doc-1",
        "textLength": len("Page one\nPage two"),
        "confidence": pytest.approx(0.8),
        "pages": 2,
        "originalFileName": "invoice.pdf",
    }


def test_vision_output_without_metadata_uses_source_document_provenance():
    source_metadata = {key: value for key, value in PROVENANCE.items() if key != "processedAt"}
    writer, firestore_client, buckets = make_writer(result_metadata=None, source_metadata=source_metadata)

    writer.store_result(result_event(name=f"results/{CONTENT_HASH}/output-1-to-20.json"))

    buckets["proj-document-storage"].get_blob.assert_any_call(f"documents/{CONTENT_HASH}")
    record, = firestore_client.collection.return_value.add.call_args.args
    assert record["fileId"] == "file-1"
    assert record["contentHash"] == CONTENT_HASH
    assert record["extractedAt"]


def test_missing_provenance_fails_validation():
    writer, firestore_client, _ = make_writer(result_metadata={}, source_metadata=None)

    with pytest.raises(ValidationError, match="originalFileId"):
        writer.store_result(result_event())

    firestore_client.collection.return_value.add.assert_not_called()


def test_non_json_objects_are_rejected():
    writer, _, _ = make_writer()

    with pytest.raises(ValidationError, match="Unsupported file type: text/plain"):
        writer.store_result(result_event(content_type="text/plain"))


def test_size_lookup_failure_is_not_fatal():
    writer, firestore_client, buckets = make_writer()
    buckets["proj-document-storage"].get_blob.side_effect = ConnectionError("storage unavailable")

    writer.store_result(result_event())

    record, = firestore_client.collection.return_value.add.call_args.args
    assert record["fileSize"] == 0


def test_entry_wraps_unexpected_failures(monkeypatch):
    monkeypatch.setenv("PROJECT_ID", "proj")
    cloud_event = CloudEvent(
        {"type": "google.cloud.storage.object.v1.finalized", "source": "//storage.googleapis.com/b"},
        {"bucket": "proj-vision-results", "name": "results/abc/output-1-to-1.json", "contentType": "application/json"},
    )

    with patch("text_firestore_writer.firestore_writer.ExtractedTextWriter") as writer_class:
        writer_class.return_value.store_result.side_effect = PermissionError("denied")

        with pytest.raises(RuntimeError, match="Firestore storage failed: denied"):
            text_firestore_writer_entry(cloud_event)
