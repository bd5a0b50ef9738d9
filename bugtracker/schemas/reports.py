"""Request and response schemas for the HTTP API.

Wire format is camelCase (``createdAt``, ``entryCount``); Python code uses
snake_case. Request bodies are strict: unknown keys, empty strings and
explicit nulls are rejected.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from bugtracker.models.audit import AuditRecord
from bugtracker.models.enums import Role, Severity
from bugtracker.models.report import Attachment, Entry, Report

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_STRICT_BODY = ConfigDict(extra="forbid")


# ── Requests ─────────────────────────────────────────────────────────


class ReportCreate(BaseModel):
    model_config = _STRICT_BODY

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    severity: Severity = Severity.LOW


class ReportUpdate(BaseModel):
    """Partial update. Omitted fields stay as they are."""

    model_config = _STRICT_BODY

    title: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    severity: Severity | None = None

    @field_validator("title", "description", "severity", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        if v is None:
            msg = "may be omitted but not null"
            raise ValueError(msg)
        return v

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class EntryCreate(BaseModel):
    model_config = _STRICT_BODY

    comment: str = Field(min_length=1)


class LoginRequest(BaseModel):
    model_config = _STRICT_BODY

    id: str = Field(min_length=1, max_length=128)
    role: Role


# ── Responses ────────────────────────────────────────────────────────


class TokenResponse(BaseModel):
    token: str


class UploadResponse(BaseModel):
    model_config = _WIRE

    download_url: str


class ErrorResponse(BaseModel):
    error: str
    details: list[dict[str, Any]] | None = None


class EntryOut(BaseModel):
    model_config = _WIRE

    id: int
    author: str
    comment: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: Entry) -> EntryOut:
        return cls(id=entry.id, author=entry.author, comment=entry.comment, created_at=entry.created_at)


class AttachmentOut(BaseModel):
    model_config = _WIRE

    filename: str
    original_name: str
    mimetype: str
    size: int
    uploaded_at: datetime

    @classmethod
    def from_attachment(cls, attachment: Attachment) -> AttachmentOut:
        return cls(**attachment.model_dump())


class ReportSummary(BaseModel):
    model_config = _WIRE

    id: int
    title: str
    description: str
    severity: Severity
    created_at: datetime
    updated_at: datetime
    entry_count: int
    severity_score: int

    @classmethod
    def from_report(cls, report: Report) -> ReportSummary:
        return cls(
            id=report.id,
            title=report.title,
            description=report.description,
            severity=report.severity,
            created_at=report.created_at,
            updated_at=report.updated_at,
            entry_count=report.entry_count,
            severity_score=report.severity_score,
        )


class ReportDetail(ReportSummary):
    """Summary plus whichever nested collections were requested."""

    entries: list[EntryOut] | None = None
    attachments: list[AttachmentOut] | None = None


class AuditRecordOut(BaseModel):
    model_config = _WIRE

    report_id: int
    user_id: str
    changes: dict[str, list[Any]]
    timestamp: datetime

    @classmethod
    def from_record(cls, record: AuditRecord) -> AuditRecordOut:
        return cls(
            report_id=record.report_id,
            user_id=record.user_id,
            changes={
                field: [getattr(old, "value", old), getattr(new, "value", new)]
                for field, (old, new) in record.changes.items()
            },
            timestamp=record.timestamp,
        )
