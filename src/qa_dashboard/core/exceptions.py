"""
Error taxonomy for the QA dashboard.

Every failure that reaches the HTTP layer is one of these, so the frontend can
tell "log in again" apart from "ask an admin for access" or "try again later".
"""
from typing import Any, Dict, Optional


class DashboardError(Exception):
    """Base exception for all dashboard errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Any] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        data = {"error": self.code, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class NotAuthenticatedError(DashboardError):
    """Missing, invalid or expired Jira token."""

    def __init__(self, message: str = "Not authenticated", details: Optional[Any] = None):
        super().__init__(message, code="not_authenticated", details=details, status_code=401)


class PermissionDeniedError(DashboardError):
    """Token is valid but lacks the scope or project permission."""

    def __init__(self, message: str = "Insufficient permissions", details: Optional[Any] = None):
        super().__init__(message, code="insufficient_permission", details=details, status_code=403)


class NotFoundError(DashboardError):
    def __init__(self, message: str = "Not found", details: Optional[Any] = None):
        super().__init__(message, code="not_found", details=details, status_code=404)


class TransientError(DashboardError):
    """Timeouts, rate limits and 5xx from an upstream service. Safe to retry reads."""

    def __init__(
        self,
        message: str = "Temporary failure talking to an upstream service, please retry",
        details: Optional[Any] = None,
        status_code: int = 502,
    ):
        super().__init__(message, code="transient_failure", details=details, status_code=status_code)


class TrackerRequestError(DashboardError):
    """Jira rejected the request itself (validation errors, bad fields)."""

    def __init__(self, message: str = "Jira rejected the request", details: Optional[Any] = None):
        super().__init__(message, code="tracker_rejected", details=details, status_code=400)


class NothingToExportError(DashboardError):
    def __init__(self, message: str = "No valid items found to export", details: Optional[Any] = None):
        super().__init__(message, code="nothing_to_export", details=details, status_code=422)


class OAuthStateError(DashboardError):
    def __init__(self, message: str = "Invalid state parameter - possible CSRF attack"):
        super().__init__(message, code="invalid_state", status_code=400)
