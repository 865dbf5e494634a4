"""
Document scan preparation for the document pipeline.
Copies a Google Drive file into Cloud Storage under a content-addressed name
so the text extraction stage can pick it up.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from google.api_core.exceptions import PreconditionFailed
from google.cloud import storage

from pipeline_shared.drive_client import DriveClient
from pipeline_shared.environment import get_project_id
from pipeline_shared.errors import create_error_response, is_pipeline_error
from pipeline_shared.parameter_parser import (
    describe_cloud_event,
    envelope_from_cloud_event,
    parse_pubsub_event,
    validate_required_fields,
)
from pipeline_shared.storage_names import document_bucket_name, document_object_name

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DRIVE_FILE_FIELDS = "id,name,mimeType,size,modifiedTime"
EXPORTED_CONTENT_TYPE = "application/pdf"


class DocumentPreparationProcessor:
    """Copies Drive files into the document storage bucket."""

    def __init__(
        self,
        project_id: str,
        drive_client: DriveClient = None,
        storage_client: storage.Client = None
    ):
        """Initialize the processor.

        Args:
            project_id: Google Cloud project ID
            drive_client: Existing Drive client (or None to create one)
            storage_client: Existing Storage client (or None to create one)
        """
        self.project_id = project_id
        self.bucket_name = document_bucket_name(project_id)
        self.drive_client = drive_client or DriveClient(scopes=DriveClient.READONLY_SCOPES)
        self.storage_client = storage_client or storage.Client(project=project_id)

    def prepare_document(self, file_id: str) -> Dict[str, Any]:
        """Copy one Drive file into Cloud Storage unless it is already there.

        Args:
            file_id: Google Drive file ID

        Returns:
            Dictionary describing the stored object
        """
        file = self.drive_client.get_file_metadata(file_id, fields=DRIVE_FILE_FIELDS)
        if not file.get("id") or not file.get("name"):
            raise ValueError(f"Invalid file data received for fileId: {file_id}")

        mime_type = file.get("mimeType")
        content = self.drive_client.download_file_bytes(file_id, mime_type)
        content_hash = hashlib.sha256(content).hexdigest()
        object_name = document_object_name(content_hash)
        content_type = self._stored_content_type(mime_type)

        bucket = self.storage_client.bucket(self.bucket_name)
        blob = bucket.blob(object_name)

        exists = blob.exists()
        if exists:
            logger.info(f"Object {object_name} already exists in bucket, skipping upload")
        else:
            exists = not self._upload(blob, content, content_type, file, content_hash)

        blob.reload()

        return {
            "message": (
                f"File {file['name']} already exists in Cloud Storage, skipped upload"
                if exists else
                f"Successfully copied file {file['name']} from Google Drive to Cloud Storage"
            ),
            "fileId": file["id"],
            "fileName": file["name"],
            "bucketName": self.bucket_name,
            "objectName": object_name,
            "contentType": content_type,
            "size": int(blob.size or 0),
        }

    def _upload(
        self,
        blob: storage.Blob,
        content: bytes,
        content_type: str,
        file: Dict[str, Any],
        content_hash: str
    ) -> bool:
        """Upload content with provenance metadata.

        Returns:
            False when another invocation created the object first
        """
        blob.metadata = {
            "originalFileId": file["id"],
            "originalFileName": file["name"],
            "originalMimeType": file.get("mimeType") or "unknown",
            "originalSize": str(file.get("size") or "0"),
            "originalModifiedTime": file.get("modifiedTime") or datetime.now(timezone.utc).isoformat(),
            "scanTimestamp": datetime.now(timezone.utc).isoformat(),
            "contentHash": content_hash,
        }

        try:
            blob.upload_from_string(content, content_type=content_type, if_generation_match=0)
        except PreconditionFailed:
            logger.info(f"Object {blob.name} was created concurrently, skipping upload")
            return False

        logger.info(f"Successfully uploaded new object {blob.name} to bucket {self.bucket_name}")
        return True

    @staticmethod
    def _stored_content_type(mime_type: str) -> str:
        if not mime_type:
            return DEFAULT_CONTENT_TYPE
        if mime_type.startswith("application/vnd.google-apps."):
            return EXPORTED_CONTENT_TYPE
        return mime_type


def doc_processor_entry(cloud_event) -> Dict[str, Any]:
    """Cloud Function entry point for document scan preparation.

    Args:
        cloud_event: Pub/Sub CloudEvent whose message carries ``fileId``

    Returns:
        Preparation result
    """
    try:
        logger.info(f"Received CloudEvent: {describe_cloud_event(cloud_event)}")

        message = parse_pubsub_event(envelope_from_cloud_event(cloud_event))
        message_data = message.data
        validate_required_fields(message_data, ["fileId"])

        logger.info(f"Parsed message data: {json.dumps(message_data, default=str)}")

        processor = DocumentPreparationProcessor(project_id=get_project_id())
        result = processor.prepare_document(message_data["fileId"])

        logger.info(f"Document scan preparation completed: {json.dumps(result)}")

        return result

    except Exception as e:
        error_response = create_error_response(e, "docProcessor")
        logger.error(f"Document scan preparation error: {error_response}")

        if is_pipeline_error(e):
            raise

        raise RuntimeError(f"Document scan preparation failed: {error_response['error']}") from e
