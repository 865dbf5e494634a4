"""
Drive folder scanner for the document pipeline.
Lists document files in a Google Drive folder and publishes one Pub/Sub
message per file for document preparation.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import google.auth
from google.cloud import pubsub_v1

from pipeline_shared.drive_client import DriveClient
from pipeline_shared.environment import get_environment_variables, get_project_id
from pipeline_shared.errors import ValidationError, create_error_response, is_pipeline_error
from pipeline_shared.parameter_parser import (
    describe_cloud_event,
    envelope_from_cloud_event,
    parse_pubsub_event,
    validate_required_fields,
)

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_NAME = "doc-process-trigger"

DOCUMENT_MIME_TYPES = [
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'application/vnd.ms-powerpoint',
    'application/vnd.openxmlformats-officedocument.presentationml.presentation',
    'text/plain',
    'application/rtf',
    'application/vnd.google-apps.document',
    'application/vnd.google-apps.spreadsheet',
    'application/vnd.google-apps.presentation',
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/bmp',
    'image/webp',
    'image/tiff',
]

FILE_FIELDS = 'nextPageToken,files(id,name,mimeType,size,modifiedTime,webViewLink)'


class DriveFolderScanner:
    """Finds document files in a Drive folder and queues them for processing."""

    def __init__(
        self,
        topic_name: str = DEFAULT_TOPIC_NAME,
        project_id: str = None,
        drive_client: DriveClient = None,
        publisher: pubsub_v1.PublisherClient = None
    ):
        """Initialize the scanner.

        Args:
            topic_name: Pub/Sub topic name or full ``projects/.../topics/...`` path
            project_id: Project owning the topic when a short name is given
            drive_client: Existing Drive client (or None to create one)
            publisher: Existing Pub/Sub publisher (or None to create one)
        """
        self.drive_client = drive_client or DriveClient(scopes=DriveClient.FULL_SCOPES)
        self.publisher = publisher or pubsub_v1.PublisherClient()

        if topic_name.startswith("projects/"):
            self.topic_path = topic_name
        else:
            self.topic_path = self.publisher.topic_path(project_id, topic_name)
        self.topic_name = topic_name

    def build_query(self, folder_id: str) -> str:
        """Build the Drive query for document files directly inside a folder."""
        mime_filter = " or ".join(f"mimeType='{mime_type}'" for mime_type in DOCUMENT_MIME_TYPES)
        return f"'{folder_id}' in parents and trashed=false and ({mime_filter})"

    def scan_folder(self, folder_id: str) -> Dict[str, Any]:
        """Scan a folder and publish a message for each document file.

        Args:
            folder_id: Google Drive folder ID

        Returns:
            Dictionary with scan results
        """
        folder = self.drive_client.get_file_metadata(folder_id, fields='id,name,mimeType')
        logger.info(f"Scanning folder: {folder.get('name')} ({folder.get('id')})")

        files = self.drive_client.list_files(self.build_query(folder_id), fields=FILE_FIELDS)
        logger.info(f"Found {len(files)} document files in folder {folder_id}")

        message_ids = self.publish_files(files, folder_id)

        return {
            "message": f"Successfully scanned folder {folder_id} and found {len(files)} document files",
            "filesFound": len(files),
            "files": files,
            "publishedMessages": len(message_ids),
            "topicName": self.topic_name,
        }

    def publish_files(self, files: List[Dict[str, Any]], folder_id: str) -> List[str]:
        """Publish one message per file.

        All publishes are submitted before any is awaited. Every future is
        waited on; if any of them failed, one error covering all failures is
        raised after the rest have completed.

        Returns:
            Message IDs in file order
        """
        scan_timestamp = datetime.now(timezone.utc).isoformat()

        futures = []
        for file in files:
            message_data = {
                "fileId": file.get("id"),
                "fileName": file.get("name"),
                "mimeType": file.get("mimeType"),
                "size": file.get("size"),
                "modifiedTime": file.get("modifiedTime"),
                "webViewLink": file.get("webViewLink"),
                "folderId": folder_id,
                "scanTimestamp": scan_timestamp,
            }

            future = self.publisher.publish(
                self.topic_path,
                json.dumps(message_data).encode("utf-8"),
                fileId=file.get("id") or "",
                mimeType=file.get("mimeType") or "",
                operation="document-classification",
            )
            futures.append((file, future))

        message_ids = []
        failures = []
        for file, future in futures:
            try:
                message_ids.append(future.result())
            except Exception as e:
                logger.error(f"Failed to publish message for file {file.get('id')}: {e}")
                failures.append(e)

        if failures:
            raise RuntimeError(
                f"Failed to publish {len(failures)} of {len(files)} messages: {failures[0]}"
            ) from failures[0]

        return message_ids


def drive_scanner_entry(cloud_event) -> Dict[str, Any]:
    """Cloud Function entry point for Drive folder scanning.

    Args:
        cloud_event: Pub/Sub CloudEvent whose message carries ``folderId``

    Returns:
        Scan result
    """
    try:
        logger.info(f"Received CloudEvent: {describe_cloud_event(cloud_event)}")

        message = parse_pubsub_event(envelope_from_cloud_event(cloud_event))
        message_data = message.data
        validate_required_fields(message_data, ["folderId"])

        logger.info(f"Parsed message data: {json.dumps(message_data, default=str)}")

        config = get_environment_variables({"DOC_PROCESS_TOPIC": False})
        topic_name = config.get("DOC_PROCESS_TOPIC", DEFAULT_TOPIC_NAME)

        scanner = DriveFolderScanner(topic_name=topic_name, project_id=_resolve_project_id())
        result = scanner.scan_folder(message_data["folderId"])

        logger.info(
            f"Drive document scanner completed: {result['filesFound']} files, "
            f"{result['publishedMessages']} messages published to {result['topicName']}"
        )

        return result

    except Exception as e:
        error_response = create_error_response(e, "driveScanner")
        logger.error(f"Drive document scanner error: {error_response}")

        if is_pipeline_error(e):
            raise

        raise RuntimeError(f"Drive document scanner failed: {error_response['error']}") from e


def _resolve_project_id() -> str:
    """Project from the environment, else from Application Default Credentials."""
    try:
        return get_project_id()
    except ValidationError:
        _, project_id = google.auth.default()
        if not project_id:
            raise
        return project_id


if __name__ == "__main__":
    # For local testing
    import argparse

    from pipeline_shared.logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Scan a Drive folder and queue its documents")
    parser.add_argument("--folder", required=True, help="Google Drive folder ID")
    parser.add_argument("--project", required=True, help="Google Cloud project ID")
    parser.add_argument("--topic", default=DEFAULT_TOPIC_NAME, help="Pub/Sub topic name")

    args = parser.parse_args()
    configure_logging()

    scanner = DriveFolderScanner(topic_name=args.topic, project_id=args.project)
    result = scanner.scan_folder(args.folder)

    print(f"Found {result['filesFound']} document files")
    print(f"Published {result['publishedMessages']} messages to {result['topicName']}")
