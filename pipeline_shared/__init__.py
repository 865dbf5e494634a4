"""
Shared event parsing, validation, configuration and error handling for the
document pipeline Cloud Functions.
"""

from pipeline_shared.environment import get_environment_variables, get_project_id
from pipeline_shared.errors import (
    ParameterParsingError,
    PipelineError,
    ValidationError,
    create_error_response,
    is_pipeline_error,
)
from pipeline_shared.parameter_parser import (
    EventEnvelope,
    PubSubMessage,
    StorageEventData,
    describe_cloud_event,
    envelope_from_cloud_event,
    get_event_attribute,
    parse_pubsub_event,
    parse_storage_event,
    validate_required_fields,
)

__all__ = [
    "EventEnvelope",
    "ParameterParsingError",
    "PipelineError",
    "PubSubMessage",
    "StorageEventData",
    "ValidationError",
    "create_error_response",
    "describe_cloud_event",
    "envelope_from_cloud_event",
    "get_event_attribute",
    "get_environment_variables",
    "get_project_id",
    "is_pipeline_error",
    "parse_pubsub_event",
    "parse_storage_event",
    "validate_required_fields",
]
