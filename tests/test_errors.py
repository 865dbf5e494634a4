"""
Tests for error normalization.
"""

import pytest

from pipeline_shared.errors import (
    ParameterParsingError,
    ValidationError,
    create_error_response,
    is_pipeline_error,
)


class BrokenMessage(Exception):
    def __str__(self):
        raise RuntimeError("cannot render")


def test_validation_error_keeps_its_kind():
    response = create_error_response(ValidationError("Missing required fields: b", "b"), "ctx")

    assert response == {"error": "Missing required fields: b", "context": "ctx", "kind": "ValidationError"}


def test_parsing_error_keeps_its_kind():
    response = create_error_response(ParameterParsingError("bad json", ValueError("x")), "ctx")

    assert response["kind"] == "ParameterParsingError"
    assert response["error"] == "bad json"


def test_generic_exception_uses_type_name():
    response = create_error_response(ValueError("boom"), "stage")

    assert response == {"error": "boom", "context": "stage", "kind": "ValueError"}


@pytest.mark.parametrize("value", [42, None, "text", {"error": "x"}, object()])
def test_unrecognized_values_map_to_unknown(value):
    assert create_error_response(value, "ctx") == {
        "error": "Unknown error occurred",
        "context": "ctx",
        "kind": "UnknownError",
    }


def test_exception_with_broken_message_does_not_raise():
    response = create_error_response(BrokenMessage(), "ctx")

    assert response["kind"] == "BrokenMessage"
    assert response["error"] == "Unknown error occurred"


def test_is_pipeline_error():
    assert is_pipeline_error(ValidationError("x"))
    assert is_pipeline_error(ParameterParsingError("x"))
    assert not is_pipeline_error(RuntimeError("x"))
    assert not is_pipeline_error("x")
