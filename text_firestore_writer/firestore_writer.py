"""
Extracted text persistence for the document pipeline.
Reads Vision OCR result files from Cloud Storage, aggregates their page text
and stores one record per result file in Firestore.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from google.cloud import firestore, storage

from pipeline_shared.environment import get_project_id
from pipeline_shared.errors import ValidationError, create_error_response, is_pipeline_error
from pipeline_shared.parameter_parser import (
    StorageEventData,
    describe_cloud_event,
    parse_storage_event,
    validate_required_fields,
)
from pipeline_shared.storage_names import document_bucket_name, document_object_name

logger = logging.getLogger(__name__)

EXTRACTED_TEXTS_COLLECTION = "extracted_texts"
RESULT_CONTENT_TYPE = "application/json"
REQUIRED_METADATA = ["originalFileId", "originalFileName", "contentHash"]


@dataclass
class PageText:
    """Text and OCR confidence of one non-blank page."""
    page_number: int
    text: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageNumber": self.page_number,
            "text": self.text,
            "confidence": self.confidence,
        }


def aggregate_pages(vision_result: Dict[str, Any]) -> Tuple[str, float, List[PageText]]:
    """Combine the responses of a Vision result file.

    Each response with non-blank text becomes one page; page confidence is the
    first annotated page's confidence (0 when absent).

    Args:
        vision_result: Parsed Vision ``{"responses": [...]}`` JSON

    Returns:
        Tuple of (joined text, average confidence, pages)
    """
    responses = vision_result.get("responses") or []
    if not responses:
        raise ValidationError("No responses found in Vision API result", "responses")

    pages = []
    for response in responses:
        annotation = response.get("fullTextAnnotation")
        if not annotation:
            continue

        text = annotation.get("text") or ""
        if not text.strip():
            continue

        annotated_pages = annotation.get("pages") or [{}]
        confidence = float(annotated_pages[0].get("confidence") or 0)
        pages.append(PageText(page_number=len(pages) + 1, text=text, confidence=confidence))

    extracted_text = "\n".join(page.text for page in pages)
    confidence = sum(page.confidence for page in pages) / len(pages) if pages else 0.0

    return extracted_text, confidence, pages


def content_hash_from_result_path(object_name: str) -> Optional[str]:
    """Return ``<hash>`` from ``results/<hash>/<file>``, if the name has that shape."""
    parts = object_name.split("/")
    if len(parts) >= 3 and parts[0] == "results" and parts[1]:
        return parts[1]
    return None


class ExtractedTextWriter:
    """Stores Vision OCR results as Firestore records."""

    def __init__(
        self,
        project_id: str,
        storage_client: storage.Client = None,
        firestore_client: firestore.Client = None
    ):
        """Initialize the writer.

        Args:
            project_id: Google Cloud project ID
            storage_client: Existing Storage client (or None to create one)
            firestore_client: Existing Firestore client (or None to create one)
        """
        self.project_id = project_id
        self.document_bucket = document_bucket_name(project_id)
        self.storage_client = storage_client or storage.Client(project=project_id)
        self.firestore_client = firestore_client or firestore.Client(project=project_id)

    def store_result(self, event: StorageEventData) -> Dict[str, Any]:
        """Aggregate one Vision result file and add it to ``extracted_texts``.

        Args:
            event: Parsed storage event for the result file

        Returns:
            Dictionary describing the stored record
        """
        if event.content_type != RESULT_CONTENT_TYPE:
            logger.info(f"Skipping non-JSON file: {event.name}")
            raise ValidationError(f"Unsupported file type: {event.content_type}", "contentType")

        blob = self.storage_client.bucket(event.bucket).get_blob(event.name)
        if blob is None:
            raise FileNotFoundError(f"Object gs://{event.bucket}/{event.name} not found")

        provenance = self._provenance(blob.metadata or {}, event.name)
        validate_required_fields(provenance, REQUIRED_METADATA)

        file_name = provenance["originalFileName"]
        content_hash = provenance["contentHash"]
        logger.info(f"Processing Vision API results for {file_name} ({event.name})")

        try:
            vision_result = json.loads(blob.download_as_bytes().decode("utf-8"))
        except ValueError as e:
            raise ValueError(f"Vision API result {event.name} is not valid JSON: {e}") from e

        extracted_text, confidence, pages = aggregate_pages(vision_result)

        original_object_name = document_object_name(content_hash)
        record = {
            "fileId": provenance["originalFileId"],
            "objectName": original_object_name,
            "extractedText": extracted_text,
            "confidence": confidence,
            "pages": [page.to_dict() for page in pages],
            "extractedAt": provenance.get("processedAt") or datetime.now(timezone.utc).isoformat(),
            "mimeType": provenance.get("originalMimeType") or "unknown",
            "fileName": file_name,
            "fileSize": self._original_size(original_object_name),
            "contentHash": content_hash,
            "visionResultPath": f"gs://{event.bucket}/{event.name}",
        }

        _, doc_ref = self.firestore_client.collection(EXTRACTED_TEXTS_COLLECTION).add(record)
        logger.info(f"Stored extracted text for {file_name} as {doc_ref.id}")

        return {
            "message": f"Successfully stored extracted text from {file_name}",
            "firestoreDocId": doc_ref.id,
            "textLength": len(extracted_text),
            "confidence": confidence,
            "pages": len(pages),
            "originalFileName": file_name,
        }

    def _provenance(self, metadata: Dict[str, str], object_name: str) -> Dict[str, str]:
        """Provenance of a result file.

        Files written by the Vision files API carry no custom metadata, so the
        source document's metadata is used, found through the hash in the path.
        """
        if metadata.get("contentHash"):
            return metadata

        content_hash = content_hash_from_result_path(object_name)
        if not content_hash:
            return metadata

        source = self.storage_client.bucket(self.document_bucket).get_blob(document_object_name(content_hash))
        if source is None or not source.metadata:
            return metadata

        logger.info(f"Using provenance of {source.name} for {object_name}")
        return {**source.metadata, **metadata}

    def _original_size(self, object_name: str) -> int:
        try:
            blob = self.storage_client.bucket(self.document_bucket).get_blob(object_name)
            return int(blob.size or 0) if blob is not None else 0
        except Exception as e:
            logger.warning(f"Could not get original file size: {e}")
            return 0


def text_firestore_writer_entry(cloud_event) -> Dict[str, Any]:
    """Cloud Function entry point for extracted text persistence.

    Args:
        cloud_event: Storage object finalized CloudEvent for a Vision result file

    Returns:
        Persistence result
    """
    try:
        logger.info(f"Received CloudEvent: {describe_cloud_event(cloud_event)}")

        event = parse_storage_event(getattr(cloud_event, "data", None))

        writer = ExtractedTextWriter(project_id=get_project_id())
        result = writer.store_result(event)

        logger.info(f"Firestore storage completed: {json.dumps(result)}")

        return result

    except Exception as e:
        error_response = create_error_response(e, "textFirestoreWriter")
        logger.error(f"Firestore storage error: {error_response}")

        if is_pipeline_error(e):
            raise

        raise RuntimeError(f"Firestore storage failed: {error_response['error']}") from e
