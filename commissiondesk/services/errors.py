"""
Domain errors raised by the commission services.

Each error carries a stable machine-readable code and the HTTP status the
API renders it with. The exception handler in main.py turns them into
{"detail": ..., "code": ...} responses.
"""

from fastapi import status


class CommissionError(Exception):
    """Base class for commission domain errors."""

    code = "commission_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoActivePlan(CommissionError):
    """No assignment, or no active effective plan, for the employee on the date."""
    code = "no_active_plan"
    status_code = 422


class AmbiguousAssignment(CommissionError):
    """More than one active assignment covers the date."""
    code = "ambiguous_assignment"
    status_code = status.HTTP_409_CONFLICT


class AlreadyFinalized(CommissionError):
    """The calculation for this period is approved or paid."""
    code = "already_finalized"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(CommissionError):
    """The requested status change is not allowed from the current status."""
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class SplitOverAllocation(CommissionError):
    """Split rows of one sale allocate more than the sale amount."""
    code = "split_over_allocation"
    status_code = 422


class TenantMismatch(CommissionError):
    code = "tenant_mismatch"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(CommissionError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTierSchedule(CommissionError):
    """Tier brackets do not partition [0, infinity) without gaps or overlaps."""
    code = "invalid_tier_schedule"
    status_code = 422


class SplitNotAllowed(CommissionError):
    code = "split_not_allowed"
    status_code = 422


class IncompleteResolution(CommissionError):
    """A dispute transition is missing a required field."""
    code = "incomplete_resolution"
    status_code = 422


class InvalidPeriod(CommissionError):
    code = "invalid_period"
    status_code = 422


class ConcurrentCalculation(CommissionError):
    """Another run stored a calculation for the same key first."""
    code = "concurrent_calculation"
    status_code = status.HTTP_409_CONFLICT


class Forbidden(CommissionError):
    """The caller's role does not allow the operation on this row."""
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
