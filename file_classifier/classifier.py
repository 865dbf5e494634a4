"""
File classifier for the document pipeline.
Classifies newly stored extracted text with Gemini and files the original
Google Drive document into the matching category folder.
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from google.cloud import firestore

from file_classifier.classification import (
    DEFAULT_LOCATION,
    DEFAULT_MODEL,
    CategoryFolder,
    GeminiClassifier,
)
from file_classifier.firestore_operations import (
    ClassificationUpdate,
    decode_document_event,
    document_fields_from_event,
    get_document_path,
    parse_document_data,
    update_document_with_classification,
)
from pipeline_shared.drive_client import DriveClient
from pipeline_shared.environment import get_environment_variables, get_project_id
from pipeline_shared.errors import create_error_response, is_pipeline_error
from pipeline_shared.parameter_parser import describe_cloud_event

logger = logging.getLogger(__name__)

UNCATEGORIZED_FOLDER_NAME = "Uncategorized"


class FileClassifier:
    """Classifies documents and moves them into category folders."""

    def __init__(
        self,
        project_id: str,
        category_root_folder_id: str,
        uncategorized_folder_id: str,
        drive_client: DriveClient = None,
        firestore_client: firestore.Client = None,
        gemini_classifier: GeminiClassifier = None,
        location: str = DEFAULT_LOCATION,
        model_name: str = DEFAULT_MODEL
    ):
        """Initialize the classifier.

        Args:
            project_id: Google Cloud project ID
            category_root_folder_id: Drive folder whose sub-folders are the categories
            uncategorized_folder_id: Drive folder for documents matching no category
            drive_client: Existing Drive client (or None to create one)
            firestore_client: Existing Firestore client (or None to create one)
            gemini_classifier: Existing Gemini classifier (or None to create one)
            location: Vertex AI region for the default classifier
            model_name: Generative model for the default classifier
        """
        self.project_id = project_id
        self.category_root_folder_id = category_root_folder_id
        self.uncategorized_folder_id = uncategorized_folder_id

        self.drive_client = drive_client or DriveClient(scopes=DriveClient.FULL_SCOPES)
        self.firestore_client = firestore_client or firestore.Client(project=project_id)
        self.gemini_classifier = gemini_classifier or GeminiClassifier(
            project_id, location=location, model_name=model_name
        )

    def list_category_folders(self) -> List[CategoryFolder]:
        """List the category folders under the root folder, ordered by name."""
        logger.info(f"Fetching category folders from: {self.category_root_folder_id}")
        folders = [
            CategoryFolder(id=folder["id"], name=folder["name"])
            for folder in self.drive_client.list_subfolders(self.category_root_folder_id)
        ]

        if folders:
            logger.info(f"Found {len(folders)} category folders: {', '.join(f.name for f in folders)}")
        else:
            logger.warning(f"No category folders found in root folder: {self.category_root_folder_id}")

        return folders

    def classify_document(self, document_path: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Classify one record, move its Drive file and store the outcome.

        Args:
            document_path: ``collection/docId`` path of the record
            document: Record fields, including fileId, fileName and extractedText

        Returns:
            Dictionary with classification results
        """
        file_id = document["fileId"]
        file_name = document["fileName"]
        logger.info(f"Processing classification for file: {file_name} ({file_id})")

        categories = self.list_category_folders()

        logger.info("Classifying document with Gemini...")
        classification = self.gemini_classifier.classify(document["extractedText"], categories)
        logger.info(f"Classification result: {asdict(classification)}")

        target_folder_id = classification.category_folder_id or self.uncategorized_folder_id
        target_folder_name = classification.category_name or UNCATEGORIZED_FOLDER_NAME

        logger.info(f"Moving file to folder: {target_folder_name} ({target_folder_id})")
        self.drive_client.move_file(file_id, target_folder_id)

        update_document_with_classification(
            self.firestore_client,
            document_path,
            ClassificationUpdate(
                category=classification.category_name,
                category_folder_id=target_folder_id,
                classification_confidence=classification.confidence,
                classification_reasoning=classification.reasoning,
                classified_at=datetime.now(timezone.utc).isoformat(),
            )
        )

        return {
            "message": f"Successfully classified and moved file: {file_name}",
            "category": classification.category_name,
            "confidence": classification.confidence,
            "fileId": file_id,
            "fileName": file_name,
        }


def file_classifier_entry(cloud_event) -> Dict[str, Any]:
    """Cloud Function entry point for file classification.

    Args:
        cloud_event: Firestore document created CloudEvent for ``extracted_texts``

    Returns:
        Classification result
    """
    try:
        logger.info(f"Received Firestore event: {describe_cloud_event(cloud_event)}")

        project_id = get_project_id()
        config = get_environment_variables({
            "CATEGORY_ROOT_FOLDER_ID": True,
            "UNCATEGORIZED_FOLDER_ID": True,
            "VERTEX_LOCATION": False,
            "CLASSIFIER_MODEL": False,
        })

        event_data = decode_document_event(cloud_event)
        document_path = get_document_path(cloud_event, event_data)
        document = parse_document_data(document_fields_from_event(event_data))

        classifier = FileClassifier(
            project_id=project_id,
            category_root_folder_id=config["CATEGORY_ROOT_FOLDER_ID"],
            uncategorized_folder_id=config["UNCATEGORIZED_FOLDER_ID"],
            location=config.get("VERTEX_LOCATION", DEFAULT_LOCATION),
            model_name=config.get("CLASSIFIER_MODEL", DEFAULT_MODEL),
        )
        result = classifier.classify_document(document_path, document)

        logger.info(f"Classification completed: {json.dumps(result)}")

        return result

    except Exception as e:
        error_response = create_error_response(e, "fileClassifier")
        logger.error(f"File classification error: {error_response}")

        if is_pipeline_error(e):
            raise

        raise RuntimeError(f"File classification failed: {error_response['error']}") from e


if __name__ == "__main__":
    # For local testing
    import argparse

    from pipeline_shared.logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Classify a stored document and file it in Drive")
    parser.add_argument("--project", required=True, help="Google Cloud project ID")
    parser.add_argument("--document", required=True, help="Firestore document path, e.g. extracted_texts/abc123")
    parser.add_argument("--root-folder", required=True, help="Drive folder holding the category folders")
    parser.add_argument("--uncategorized-folder", required=True, help="Drive folder for uncategorized files")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Gemini model name")

    args = parser.parse_args()
    configure_logging()

    classifier = FileClassifier(
        project_id=args.project,
        category_root_folder_id=args.root_folder,
        uncategorized_folder_id=args.uncategorized_folder,
        model_name=args.model,
    )
    snapshot = classifier.firestore_client.document(args.document).get()
    result = classifier.classify_document(args.document, parse_document_data(snapshot.to_dict() or {}))

    print(f"Category: {result['category'] or UNCATEGORIZED_FOLDER_NAME}")
    print(f"Confidence: {result['confidence']:.2f}")
