"""
Main Cloud Function entry point for document scan preparation in the document pipeline.
"""

import functions_framework

from doc_processor.preparation import doc_processor_entry
from pipeline_shared.logging_config import configure_logging

configure_logging()


@functions_framework.cloud_event
def doc_processor(cloud_event):
    """Cloud Function triggered by a per-file Pub/Sub message from the scanner.

    Args:
        cloud_event: The Cloud Event that triggered the function

    Returns:
        Preparation result
    """
    return doc_processor_entry(cloud_event)
