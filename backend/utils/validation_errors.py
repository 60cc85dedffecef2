"""
Structured Error Utilities

Standardized error bodies for the entries API, so the UI can tell bad input
apart from a corrupted stored entry or a missing one.

Error Response Format:
{
    "error": "invalid_parameter" | "malformed_input" | "normalization_error" | "not_found",
    "parameter": "values",
    "message": "Malformed values: expected a list"
}
"""

import uuid
from fastapi import HTTPException, status
from typing import Optional, Any

from entries.errors import MalformedEntryInputError, NormalizationError


class ValidationErrorResponse:
    """Structured error response builder."""

    @staticmethod
    def invalid_parameter(parameter: str, message: str, value: Optional[Any] = None) -> dict:
        """
        Create an invalid parameter error response.

        Args:
            parameter: Name of the invalid parameter
            message: Description of the validation error
            value: The invalid value (optional, for debugging)
        """
        response = {
            "error": "invalid_parameter",
            "parameter": parameter,
            "message": message
        }
        if value is not None:
            response["received_value"] = str(value)[:100]  # Truncate for safety
        return response

    @staticmethod
    def malformed_input(error: MalformedEntryInputError) -> dict:
        """Entry input (form, values, deductions, calculations) failed to parse."""
        return {
            "error": "malformed_input",
            "parameter": error.source,
            "message": str(error)
        }

    @staticmethod
    def normalization_error(entry_id: str, error: NormalizationError) -> dict:
        """Stored rows for an entry break the calculation-method invariant."""
        return {
            "error": "normalization_error",
            "parameter": "entry_id",
            "message": str(error),
            "entry_id": entry_id
        }

    @staticmethod
    def not_found(parameter: str, value: str) -> dict:
        return {
            "error": "not_found",
            "parameter": parameter,
            "message": f"{parameter} {value} not found"
        }


def raise_invalid_parameter(parameter: str, message: str, value: Optional[Any] = None):
    """
    Raises:
        HTTPException with 422 status and structured error body
    """
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=ValidationErrorResponse.invalid_parameter(parameter, message, value)
    )


def raise_malformed_input(error: MalformedEntryInputError):
    """
    Raises:
        HTTPException with 422 status and structured error body
    """
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=ValidationErrorResponse.malformed_input(error)
    ) from error


def raise_normalization_error(entry_id: str, error: NormalizationError):
    """
    Raises:
        HTTPException with 500 status; the stored entry is inconsistent
    """
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=ValidationErrorResponse.normalization_error(entry_id, error)
    ) from error


def raise_not_found(parameter: str, value: str):
    """
    Raises:
        HTTPException with 404 status
    """
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=ValidationErrorResponse.not_found(parameter, value)
    )


def validate_required_uuid(value: Optional[str], parameter: str) -> str:
    """
    Validate that a required UUID parameter is present and valid.

    Returns:
        The validated value

    Raises:
        HTTPException with structured error if validation fails
    """
    if not value:
        raise_invalid_parameter(parameter, f"{parameter} is required")

    try:
        uuid.UUID(value)
        return value
    except ValueError:
        raise_invalid_parameter(
            parameter,
            f"{parameter} must be a valid UUID format",
            value
        )
