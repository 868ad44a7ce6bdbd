"""
Exception hierarchy for the suggestion pipeline.

Row-level and entity-level failures are caught and counted by the pipelines
that raise them. Suggestion validation errors propagate to the caller of the
lifecycle operation. Ad platform errors carry enough context to decide
whether a retry is worthwhile.
"""
from typing import Iterable, Optional


class AdScaleError(Exception):
    """Base class for all pipeline errors"""


class MissingRequiredFieldError(AdScaleError):
    """A report row lacks one of the identifiers needed to store it."""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


# Suggestion validation

class SuggestionValidationError(AdScaleError):
    """Suggestion construction or transition violated an invariant."""


class InvalidBudgetError(SuggestionValidationError):
    def __init__(self, budget):
        self.budget = budget
        super().__init__(f"Budget must be greater than 0, got {budget}")


class InvalidMetricNameError(SuggestionValidationError):
    def __init__(self, metric_name: str):
        self.metric_name = metric_name
        super().__init__(f"Unknown metric name: {metric_name}")


class InvalidTransitionError(SuggestionValidationError):
    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(f"Cannot {action} suggestion with status '{current_status}'")


# Lookups

class SuggestionNotFoundError(AdScaleError):
    def __init__(self, suggestion_id):
        self.suggestion_id = suggestion_id
        super().__init__(f"Suggestion {suggestion_id} not found")


class EntityNotFoundError(AdScaleError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


# Ad platform

class AdPlatformError(AdScaleError):
    """Meta Marketing API call failed."""

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        self.status = status
        self.retryable = retryable
        super().__init__(message if status is None else f"{message} (HTTP {status})")


class ReportNotReadyError(AdPlatformError):
    """Async report still running after the poll budget was spent."""

    def __init__(self, report_run_id: str, attempts: int, percent_complete: Optional[float] = None):
        self.report_run_id = report_run_id
        self.attempts = attempts
        self.percent_complete = percent_complete
        super().__init__(
            f"Report {report_run_id} not ready after {attempts} polls "
            f"({percent_complete or 0}% complete)",
            retryable=True,
        )


class ReportFailedError(AdPlatformError):
    """Platform reported the async job as failed or skipped."""

    def __init__(self, report_run_id: str, async_status: str):
        self.report_run_id = report_run_id
        self.async_status = async_status
        super().__init__(f"Report {report_run_id} ended with status '{async_status}'")
