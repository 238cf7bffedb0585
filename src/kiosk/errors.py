"""Typed failures raised by the session core.

Every failure carries a stable ``code`` so transports can report it without
inspecting message text:

- ``session_not_found``: no live handle (or no record) where one is required
- ``launch_failure``: the browser engine could not be started
- ``navigation_timeout``: a navigation exceeded its bound
- ``stale_target``: the page was already closed when the operation arrived
- ``transport_auth_failure``: a viewer failed identity or ownership checks
- ``file_input_not_found``: upload requested on a page without a file input
"""

from typing import Any


class KioskError(Exception):
    """Base class for all session core failures."""

    code: str = "internal_error"
    http_status: int = 500

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        error: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.session_id is not None:
            error["session_id"] = self.session_id
        return {"error": error}


class SessionNotFound(KioskError):
    code = "session_not_found"
    http_status = 404


class LaunchFailure(KioskError):
    code = "launch_failure"
    http_status = 503


class NavigationTimeout(KioskError):
    code = "navigation_timeout"
    http_status = 504


class StaleTarget(KioskError):
    """The page behind a handle has already been torn down.

    Expected when a viewer is still sending input while its session stops, so
    callers on the input path swallow it.
    """

    code = "stale_target"
    http_status = 410


class TransportAuthFailure(KioskError):
    code = "transport_auth_failure"
    http_status = 403


class FileInputNotFound(KioskError):
    code = "file_input_not_found"
    http_status = 404
