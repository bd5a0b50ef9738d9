"""Report aggregate — a report with its append-only entries and attachments.

Instances live inside ReportRepository. Everything handed out by the
repository is a deep copy, so mutating a returned Report never reaches
the stored one.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from bugtracker.models.enums import SEVERITY_SCORES, Severity

# Fields an update may change; the audit diff is computed over these only
UPDATABLE_FIELDS: tuple[str, ...] = ("title", "description", "severity")


class Entry(BaseModel):
    """Comment appended to a report. Never edited or removed."""

    id: int
    author: str
    comment: str
    created_at: datetime

    model_config = {"frozen": True}


class Attachment(BaseModel):
    """Metadata for an uploaded file; the bytes live in FileStorage under ``filename``."""

    filename: str
    original_name: str
    mimetype: str
    size: int
    uploaded_at: datetime

    model_config = {"frozen": True}


class Report(BaseModel):
    """Bug report with nested entries and attachments."""

    id: int
    title: str
    description: str
    severity: Severity = Severity.LOW
    created_at: datetime
    updated_at: datetime
    entries: list[Entry] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def severity_score(self) -> int:
        return SEVERITY_SCORES[self.severity]

    def find_attachment(self, filename: str) -> Attachment | None:
        for attachment in self.attachments:
            if attachment.filename == filename:
                return attachment
        return None
