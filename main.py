"""
Cloud Function entry points for the document pipeline.

Every stage deploys from the repository root, so the shared package ships with
each function; select the stage with ``--entry-point``, e.g.
``gcloud functions deploy drive-scanner --gen2 --source . --entry-point drive_scanner``.
"""

from doc_processor.main import doc_processor
from drive_scanner.main import drive_scanner
from file_classifier.main import file_classifier
from text_firestore_writer.main import text_firestore_writer
from text_vision_processor.main import text_vision_processor

__all__ = [
    "drive_scanner",
    "doc_processor",
    "text_vision_processor",
    "text_firestore_writer",
    "file_classifier",
]
