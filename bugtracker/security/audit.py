"""Audit trail — field-level diffs of report updates.

``compute_diff`` compares proposed values against the stored report;
``AuditTrail`` keeps the resulting records in an append-only log.

The trail shares the repository lock, so a record and the change it
describes become visible together. It never hands out its internal list.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from bugtracker.models.audit import AuditRecord, Changes
from bugtracker.models.report import UPDATABLE_FIELDS, Report

logger = logging.getLogger(__name__)


def compute_diff(current: Report, proposed: Mapping[str, Any]) -> Changes:
    """Return ``{field: (old, new)}`` for every updatable field whose value changes.

    Fields absent from ``proposed`` are left alone. Unknown keys are ignored.
    """
    changes: Changes = {}
    for field in UPDATABLE_FIELDS:
        if field not in proposed:
            continue
        old = getattr(current, field)
        new = proposed[field]
        if new != old:
            changes[field] = (old, new)
    return changes


class AuditTrail:
    """Append-only, in-memory audit log."""

    def __init__(self, lock: threading.RLock | None = None) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self._records: list[AuditRecord] = []

    def append(self, record: AuditRecord) -> None:
        if not record.changes:
            msg = "Refusing to append an audit record without changes"
            raise ValueError(msg)
        with self._lock:
            self._records.append(record)
        logger.info(
            "Audit log: user %s updated report #%d %s",
            record.user_id,
            record.report_id,
            {field: [_plain(old), _plain(new)] for field, (old, new) in record.changes.items()},
        )

    def records(self, report_id: int | None = None) -> list[AuditRecord]:
        """Records in append order, optionally for one report."""
        with self._lock:
            selected = [r for r in self._records if report_id is None or r.report_id == report_id]
        return [r.model_copy(deep=True) for r in selected]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)
