"""Error taxonomy shared by the services and the HTTP layer.

Each error carries the HTTP status it maps to. Handlers in
``bugtracker.api.errors`` render them as ``{"error": ..., "details": ...}``.
Anything outside this hierarchy is treated as fatal (500).
"""

from __future__ import annotations

from typing import Any


class BugTrackerError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationFailure(BugTrackerError):
    """Malformed or missing input; the client must resubmit."""

    status_code = 400
    default_message = "Invalid request data"


class Unauthorized(BugTrackerError):
    """Missing, invalid or expired credential."""

    status_code = 401
    default_message = "Unauthorized"


class Forbidden(BugTrackerError):
    """Valid credential, but the action is not allowed."""

    status_code = 403
    default_message = "Forbidden"


class EscalationForbidden(Forbidden):
    """Non-admin attempted to move a report to critical severity."""

    default_message = "Only admins can escalate severity to critical"


class NotFound(BugTrackerError):
    status_code = 404
    default_message = "Not found"


class Conflict(BugTrackerError):
    """Uniqueness violation."""

    status_code = 409
    default_message = "Conflict"
