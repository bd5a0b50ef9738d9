"""Domain models for the bug tracker."""

from __future__ import annotations

from bugtracker.models.audit import AuditRecord
from bugtracker.models.enums import SEVERITY_SCORES, Role, Severity, SortOrder
from bugtracker.models.identity import Identity
from bugtracker.models.report import UPDATABLE_FIELDS, Attachment, Entry, Report

__all__ = [
    "Attachment",
    "AuditRecord",
    "Entry",
    "Identity",
    "Report",
    "Role",
    "SEVERITY_SCORES",
    "Severity",
    "SortOrder",
    "UPDATABLE_FIELDS",
]
