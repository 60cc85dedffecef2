"""
Utils Package

Provides utility modules for:
- validation_errors: structured HTTP error bodies for the entries API
"""

from .validation_errors import (
    ValidationErrorResponse,
    raise_invalid_parameter,
    raise_malformed_input,
    raise_normalization_error,
    raise_not_found,
    validate_required_uuid,
)

__all__ = [
    'ValidationErrorResponse',
    'raise_invalid_parameter',
    'raise_malformed_input',
    'raise_normalization_error',
    'raise_not_found',
    'validate_required_uuid',
]
