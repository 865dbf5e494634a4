"""
Main Cloud Function entry point for text extraction in the document pipeline.
"""

import functions_framework

from pipeline_shared.logging_config import configure_logging
from text_vision_processor.vision_processor import text_vision_processor_entry

configure_logging()


@functions_framework.cloud_event
def text_vision_processor(cloud_event):
    """Cloud Function triggered when a document lands in the document bucket.

    Args:
        cloud_event: The Cloud Event that triggered the function

    Returns:
        Extraction result
    """
    return text_vision_processor_entry(cloud_event)
