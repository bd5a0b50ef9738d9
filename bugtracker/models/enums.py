"""Domain enums used across the domain models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Caller role embedded in the session token."""

    ADMIN = "admin"
    DEVELOPER = "developer"


class Severity(str, Enum):
    """Report severity. Only admins may move a report to CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SortOrder(str, Enum):
    """Entry listing order by creation time."""

    ASC = "asc"
    DESC = "desc"


# Fixed derived score exposed on every report summary
SEVERITY_SCORES: dict[Severity, int] = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}
