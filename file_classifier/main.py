"""
Main Cloud Function entry point for file classification in the document pipeline.
"""

import functions_framework

from file_classifier.classifier import file_classifier_entry
from pipeline_shared.logging_config import configure_logging

configure_logging()


@functions_framework.cloud_event
def file_classifier(cloud_event):
    """Cloud Function triggered when a record is created in extracted_texts.

    Args:
        cloud_event: The Cloud Event that triggered the function

    Returns:
        Classification result
    """
    return file_classifier_entry(cloud_event)
