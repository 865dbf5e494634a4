"""
Configuration lookup for the document pipeline Cloud Functions.
"""

import os
from collections.abc import Mapping
from typing import Dict, Optional

from pipeline_shared.errors import ValidationError

FALLBACK_PREFIX = "GOOGLE_CLOUD_"
PROJECT_ID_VARIABLES = ("PROJECT_ID", "GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT")


def get_environment_variables(
    env_vars: Mapping,
    environ: Optional[Mapping] = None
) -> Dict[str, str]:
    """Resolve named configuration values.

    Each name is looked up as-is and then with the ``GOOGLE_CLOUD_`` prefix.
    Optional names that resolve to nothing are left out of the result.

    Args:
        env_vars: Mapping of variable name to whether it is required
        environ: Read-only name to value store (defaults to ``os.environ``)

    Returns:
        Dictionary of resolved values

    Raises:
        ValidationError: One or more required variables are missing
    """
    if environ is None:
        environ = os.environ

    result = {}
    missing = []

    for name, required in env_vars.items():
        value = environ.get(name) or environ.get(f"{FALLBACK_PREFIX}{name}")

        if value:
            result[name] = value
        elif required:
            missing.append(name)

    if missing:
        raise ValidationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing[0],
        )

    return result


def get_project_id(environ: Optional[Mapping] = None) -> str:
    """Get the Google Cloud project ID from the first variable that is set."""
    if environ is None:
        environ = os.environ

    for name in PROJECT_ID_VARIABLES:
        project_id = environ.get(name)
        if project_id:
            return project_id

    raise ValidationError("PROJECT_ID environment variable is required", "PROJECT_ID")
