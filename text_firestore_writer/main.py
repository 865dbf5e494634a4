"""
Main Cloud Function entry point for extracted text persistence in the document pipeline.
"""

import functions_framework

from pipeline_shared.logging_config import configure_logging
from text_firestore_writer.firestore_writer import text_firestore_writer_entry

configure_logging()


@functions_framework.cloud_event
def text_firestore_writer(cloud_event):
    """Cloud Function triggered when a Vision result lands in the results bucket.

    Args:
        cloud_event: The Cloud Event that triggered the function

    Returns:
        Persistence result
    """
    return text_firestore_writer_entry(cloud_event)
