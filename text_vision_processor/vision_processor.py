"""
Text extraction for the document pipeline.
Uses the Google Cloud Vision OCR API to extract text from stored documents;
plain text files are read directly.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from google.cloud import storage, vision

from pipeline_shared.environment import get_project_id
from pipeline_shared.errors import ValidationError, create_error_response, is_pipeline_error
from pipeline_shared.parameter_parser import (
    StorageEventData,
    describe_cloud_event,
    parse_storage_event,
    validate_required_fields,
)
from pipeline_shared.storage_names import vision_results_bucket_name, vision_results_prefix

logger = logging.getLogger(__name__)

# Vision's file API handles multi-page formats; single images are annotated directly
FILE_MIME_TYPES = ['application/pdf', 'image/tiff', 'image/gif']
IMAGE_MIME_TYPES = ['image/jpeg', 'image/png', 'image/bmp', 'image/webp']
TEXT_MIME_TYPE = 'text/plain'
SUPPORTED_MIME_TYPES = FILE_MIME_TYPES + IMAGE_MIME_TYPES + [TEXT_MIME_TYPE]

REQUIRED_METADATA = ["originalFileId", "originalFileName", "contentHash"]
DIRECT_RESULT_NAME = "output-1-to-1.json"
VISION_BATCH_SIZE = 20


class VisionTextProcessor:
    """Extracts text from documents in Cloud Storage."""

    def __init__(
        self,
        project_id: str,
        storage_client: storage.Client = None,
        vision_client: vision.ImageAnnotatorClient = None
    ):
        """Initialize the processor.

        Args:
            project_id: Google Cloud project ID
            storage_client: Existing Storage client (or None to create one)
            vision_client: Existing Vision client (or None to create one)
        """
        self.project_id = project_id
        self.output_bucket = vision_results_bucket_name(project_id)
        self.storage_client = storage_client or storage.Client(project=project_id)
        self.vision_client = vision_client or vision.ImageAnnotatorClient()

    def process_object(self, event: StorageEventData) -> Dict[str, Any]:
        """Extract text from one stored document.

        Args:
            event: Parsed storage event for the uploaded document

        Returns:
            Dictionary describing where the extraction result was written
        """
        content_type = event.content_type
        if content_type not in SUPPORTED_MIME_TYPES:
            logger.info(f"Skipping text extraction for unsupported file type: {content_type}")
            raise ValidationError(
                f"Unsupported file type for text extraction: {content_type}",
                "contentType"
            )

        blob = self.storage_client.bucket(event.bucket).get_blob(event.name)
        if blob is None:
            raise FileNotFoundError(f"Object gs://{event.bucket}/{event.name} not found")

        provenance = blob.metadata or {}
        validate_required_fields(provenance, REQUIRED_METADATA)

        output_path = vision_results_prefix(provenance["contentHash"])
        result_metadata = {
            "originalFileId": provenance["originalFileId"],
            "originalFileName": provenance["originalFileName"],
            "originalMimeType": content_type,
            "contentHash": provenance["contentHash"],
            "processedAt": datetime.now(timezone.utc).isoformat(),
        }
        file_name = provenance["originalFileName"]

        logger.info(f"Starting text extraction for {file_name} ({event.name})")

        if content_type == TEXT_MIME_TYPE:
            text = blob.download_as_bytes().decode("utf-8", errors="replace")
            self._save_result(_text_result(text, 1.0), output_path, result_metadata)
            return self._result(f"Successfully processed text file {file_name}", event, output_path,
                                "text-direct-processing")

        if content_type in IMAGE_MIME_TYPES:
            annotation = self._annotate_image(f"gs://{event.bucket}/{event.name}")
            self._save_result(annotation, output_path, result_metadata)
            return self._result(f"Successfully processed {file_name} with Vision API", event, output_path,
                                "image-direct-processing")

        operation_id = self._annotate_file(f"gs://{event.bucket}/{event.name}", content_type, output_path)
        return self._result(f"Successfully processed {file_name} with Vision API", event, output_path,
                            operation_id)

    def _annotate_file(self, source_uri: str, content_type: str, output_path: str) -> str:
        """Run async batch OCR over a PDF/TIFF/GIF and wait for it to finish.

        Vision writes its JSON output files under ``output_path``.

        Returns:
            The long-running operation name
        """
        request = vision.AsyncAnnotateFileRequest(
            input_config=vision.InputConfig(
                gcs_source=vision.GcsSource(uri=source_uri),
                mime_type=content_type
            ),
            features=[vision.Feature(type_=vision.Feature.Type.DOCUMENT_TEXT_DETECTION)],
            output_config=vision.OutputConfig(
                gcs_destination=vision.GcsDestination(uri=f"gs://{self.output_bucket}/{output_path}"),
                batch_size=VISION_BATCH_SIZE
            )
        )

        operation = self.vision_client.async_batch_annotate_files(requests=[request])
        operation_id = operation.operation.name or "unknown"
        logger.info(f"Vision API operation started: {operation_id}")

        response = operation.result()
        if not response.responses:
            raise RuntimeError("No responses received from Vision API")

        return operation_id

    def _annotate_image(self, source_uri: str) -> Dict[str, Any]:
        """OCR a single image and return it in Vision's file output shape."""
        image = vision.Image(source=vision.ImageSource(gcs_image_uri=source_uri))
        response = self.vision_client.document_text_detection(image=image)

        if response.error.message:
            raise RuntimeError(f"Vision API error: {response.error.message}")

        annotation = response.full_text_annotation
        return {
            "responses": [
                {
                    "fullTextAnnotation": {
                        "text": annotation.text,
                        "pages": [{"confidence": page.confidence} for page in annotation.pages],
                    }
                }
            ]
        }

    def _save_result(self, result: Dict[str, Any], output_path: str, metadata: Dict[str, str]) -> None:
        """Write a Vision-shaped result JSON with provenance metadata."""
        bucket = self.storage_client.bucket(self.output_bucket)
        blob = bucket.blob(f"{output_path}{DIRECT_RESULT_NAME}")
        blob.metadata = metadata
        blob.upload_from_string(
            json.dumps(result, indent=2, ensure_ascii=False),
            content_type="application/json"
        )

        logger.info(f"Saved extraction result to gs://{self.output_bucket}/{blob.name}")

    def _result(self, message: str, event: StorageEventData, output_path: str, operation_id: str) -> Dict[str, Any]:
        return {
            "message": message,
            "objectName": event.name,
            "outputBucket": self.output_bucket,
            "outputPath": output_path,
            "operationId": operation_id,
        }


def _text_result(text: str, confidence: float) -> Dict[str, Any]:
    return {
        "responses": [
            {
                "fullTextAnnotation": {
                    "text": text,
                    "pages": [{"confidence": confidence}],
                }
            }
        ]
    }


def text_vision_processor_entry(cloud_event) -> Dict[str, Any]:
    """Cloud Function entry point for text extraction.

    Args:
        cloud_event: Storage object finalized CloudEvent

    Returns:
        Extraction result
    """
    try:
        logger.info(f"Received CloudEvent: {describe_cloud_event(cloud_event)}")

        event = parse_storage_event(getattr(cloud_event, "data", None))

        processor = VisionTextProcessor(project_id=get_project_id())
        result = processor.process_object(event)

        logger.info(f"Vision API processing completed: {json.dumps(result)}")

        return result

    except Exception as e:
        error_response = create_error_response(e, "textVisionProcessor")
        logger.error(f"Vision API processing error: {error_response}")

        if is_pipeline_error(e):
            raise

        raise RuntimeError(f"Vision API processing failed: {error_response['error']}") from e
