"""
Entry Engine - Exceptions

Raised by the calculation engine and the normalization bridge.
Missing optional data (no value for a field, no GST config) is never an
error; only structurally broken input and broken row sets are.
"""


class EntryCalculationError(Exception):
    """Base exception for entry calculation and normalization errors"""
    pass


class MalformedEntryInputError(EntryCalculationError):
    """Raised when form fields, values, deductions or calculations fail to parse"""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Malformed {source}: {message}")


class NormalizationError(EntryCalculationError):
    """Raised when a normalized row set violates the calculation-method invariant"""
    pass
