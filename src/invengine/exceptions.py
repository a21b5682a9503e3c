"""Exceptions raised by the investigation engine."""

from typing import Any, Optional


class InvestigationError(Exception):
    """Base exception for all investigation engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvestigationNotFoundError(InvestigationError):
    """Raised when an investigation id is unknown."""

    def __init__(self, investigation_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Investigation not found: {investigation_id}",
            {"investigation_id": investigation_id},
        )
        self.investigation_id = investigation_id


class ExportNotFoundError(InvestigationNotFoundError):
    """Raised when exporting an investigation that has no stored result."""

    def __init__(self, investigation_id: str):
        super().__init__(
            investigation_id, f"Investigation result not found: {investigation_id}"
        )


class ValidationFailure(InvestigationError):
    """Raised when input or a plan fails validation."""


class PlanValidationError(ValidationFailure):
    """Raised when a plan is rejected by the pre-flight validator."""

    def __init__(self, issues: list[str]):
        super().__init__(
            f"Investigation plan is invalid: {'; '.join(issues)}", {"issues": issues}
        )
        self.issues = issues


class InvestigationStateError(InvestigationError):
    """Raised when an operation is not allowed in the current state."""


class InvestigationPausedError(InvestigationStateError):
    """Raised when continuing a paused investigation."""


class QueryExecutionError(InvestigationError):
    """Raised when a single investigation query fails."""

    prefix = "Query failed"

    def __init__(self, query_id: str, purpose: str, cause: BaseException):
        super().__init__(
            f"{self.prefix}: {purpose} - {cause}",
            {"query_id": query_id, "purpose": purpose, "error": str(cause)},
        )
        self.query_id = query_id
        self.purpose = purpose
        self.cause = cause


class RequiredQueryFailedError(QueryExecutionError):
    """Raised when a required query fails; aborts the continuation."""

    prefix = "Required query failed"


class InvestigationTimeoutError(InvestigationError):
    """Raised when an investigation exceeds its execution budget."""


class AIAdapterError(InvestigationError):
    """Raised when the AI reasoning adapter cannot produce a response."""


class DataSourceError(InvestigationError):
    """Raised when the telemetry backend rejects or fails a query."""


class UnsupportedExportFormatError(InvestigationError):
    """Raised for an unknown export format."""
