"""AuditRecord — immutable diff of one effective report update.

Records are append-only and global: they outlive the report they describe.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# field name -> (old value, new value)
Changes = dict[str, tuple[Any, Any]]


class AuditRecord(BaseModel):
    """Who changed what and when."""

    report_id: int
    user_id: str
    changes: Changes = Field(default_factory=dict)
    timestamp: datetime

    model_config = {"frozen": True}

    def __repr__(self) -> str:
        return f"<AuditRecord report={self.report_id} user={self.user_id} fields={sorted(self.changes)}>"
