"""Domain errors raised by the analytics core.

Every failed precondition aborts the whole call with one of these.
The API layer translates them into HTTP responses.
"""


class CRMInsightsError(Exception):
    """Base class for all analytics core errors."""


class InsufficientDataError(CRMInsightsError):
    """Not enough input records for the requested analysis."""

    def __init__(self, message: str, required: int, actual: int):
        super().__init__(message)
        self.required = required
        self.actual = actual


class UnsupportedQueryTypeError(CRMInsightsError):
    """The SQL builder has no template for this query type."""

    def __init__(self, query_type: str):
        super().__init__(f"Unsupported query type: {query_type}")
        self.query_type = query_type


class UnsafeQueryError(CRMInsightsError):
    """Generated SQL failed the safety check or touched a non-allow-listed name."""
