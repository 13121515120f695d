"""
FlightDesk - Error taxonomy

Every failure the booking flow can surface is a FlightDeskError.
Network and pricing failures are converted into AppError state by the
wizard / enrichment layers; SessionExpiredError always propagates so the
caller can force a new login.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel


class AppError(BaseModel):
    """UI-visible error state."""
    code: str
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "AppError":
        if isinstance(exc, FlightDeskError):
            return AppError(code=exc.code, message=exc.message, retryable=exc.retryable)
        return AppError(code="UNEXPECTED_ERROR", message=str(exc) or exc.__class__.__name__)


class FlightDeskError(Exception):
    code = "FLIGHTDESK_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_app_error(self) -> AppError:
        return AppError.from_exception(self)


class BackendError(FlightDeskError):
    """Raw HTTP / transport failure talking to the agency backend."""
    code = "BACKEND_ERROR"

    def __init__(self, status_code: int, error: AppError):
        super().__init__(error.message)
        self.status_code = status_code
        self.error = error
        self.code = error.code
        self.retryable = error.retryable


class MalformedResponseError(FlightDeskError):
    code = "MALFORMED_RESPONSE"


class SessionExpiredError(FlightDeskError):
    code = "SESSION_EXPIRED"

    def __init__(self, message: str = "Your session has expired. Please login again."):
        super().__init__(message)


class SearchError(FlightDeskError):
    code = "SEARCH_FAILED"
    # Terminal until the user re-submits the search
    retryable = False


class ValidationError(FlightDeskError):
    """Background price re-confirmation failed. Never fatal to booking."""
    code = "PRICE_NOT_CONFIRMED"


class EnrichmentError(FlightDeskError):
    code = "ENRICHMENT_FAILED"
    retryable = True

    def __init__(self, category: str, message: str):
        super().__init__(message)
        self.category = category


class IncompleteManifestError(FlightDeskError):
    code = "INCOMPLETE_MANIFEST"

    def __init__(self, missing: Dict[int, List[str]]):
        self.missing = missing
        parts = [f"passenger {i + 1}: {', '.join(fields)}" for i, fields in sorted(missing.items())]
        super().__init__("Missing passenger details - " + "; ".join(parts))


class SubmissionError(FlightDeskError):
    code = "SUBMISSION_FAILED"
    retryable = True

    def __init__(self, message: str, retryable: bool = True, status_code: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class WizardStateError(FlightDeskError):
    code = "INVALID_STEP"
