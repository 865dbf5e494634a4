"""
Cloud Storage bucket and object names shared by the pipeline stages.
"""


def document_bucket_name(project_id: str) -> str:
    return f"{project_id}-document-storage"


def document_object_name(content_hash: str) -> str:
    return f"documents/{content_hash}"


def vision_results_bucket_name(project_id: str) -> str:
    return f"{project_id}-vision-results"


def vision_results_prefix(content_hash: str) -> str:
    return f"results/{content_hash}/"
