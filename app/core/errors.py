"""
Error taxonomy shared by services and routes
"""

from typing import Optional


class EventFlowError(Exception):
    """Base class for all application errors"""

    error_code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EventFlowError):
    """Missing or blank required fields"""

    error_code = "validation_error"
    status_code = 422

    def __init__(self, message: str, fields: Optional[list] = None):
        super().__init__(message)
        self.fields = fields or []


class AuthError(EventFlowError):
    error_code = "auth_error"
    status_code = 401


class SyncError(EventFlowError):
    """Event feed delivery failure"""

    error_code = "sync_error"
    status_code = 503


class WriteError(EventFlowError):
    """Create or replace against the event store failed"""

    error_code = "write_error"
    status_code = 502


class UpstreamError(EventFlowError):
    """AI endpoint returned a non-success status or could not be reached"""

    error_code = "upstream_error"
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = status_code


class EventNotFoundError(EventFlowError):
    error_code = "event_not_found"
    status_code = 404


class SessionNotFoundError(EventFlowError):
    error_code = "session_not_found"
    status_code = 401


class GenerationInProgressError(EventFlowError):
    error_code = "generation_in_progress"
    status_code = 409


class SubmissionInProgressError(EventFlowError):
    error_code = "submission_in_progress"
    status_code = 409


class RateLimitError(EventFlowError):
    error_code = "rate_limited"
    status_code = 429
