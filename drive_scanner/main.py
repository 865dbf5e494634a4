"""
Main Cloud Function entry point for Drive folder scanning in the document pipeline.
"""

import functions_framework

from drive_scanner.scanner import drive_scanner_entry
from pipeline_shared.logging_config import configure_logging

configure_logging()


@functions_framework.cloud_event
def drive_scanner(cloud_event):
    """Cloud Function triggered by the scheduler's Pub/Sub message.

    Args:
        cloud_event: The Cloud Event that triggered the function

    Returns:
        Scan result
    """
    return drive_scanner_entry(cloud_event)
