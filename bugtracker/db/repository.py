"""In-memory report repository guarded by a single re-entrant lock.

Owns report identity allocation, the case-insensitive title invariant, and
the nested entry/attachment collections. Every read and mutation takes the
lock; ``locked()`` exposes it so a caller can make a compound
check-then-act sequence atomic (see ReportService.update_report).

Objects returned from here are deep copies; mutating them never touches
stored state.

Usage:
    repo = ReportRepository()
    report = repo.create("Crash on save", "Steps: ...", Severity.HIGH)
    repo.add_entry(report.id, author="alice", comment="Reproduced")
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime, timezone
from typing import Any

from bugtracker.errors import Conflict, NotFound
from bugtracker.models.enums import Severity, SortOrder
from bugtracker.models.report import UPDATABLE_FIELDS, Attachment, Entry, Report
from bugtracker.reports.pagination import Page, sort_entries

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _title_key(title: str) -> str:
    return title.casefold()


class ReportRepository:
    """Thread-safe store of reports keyed by a never-reused integer id."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._reports: dict[int, Report] = {}
        self._next_id = 1
        self._next_entry_id: dict[int, int] = {}

    # ── Locking ──────────────────────────────────────────────────────

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the repository lock for a compound operation."""
        with self._lock:
            yield

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    # ── Reads ────────────────────────────────────────────────────────

    def get(self, report_id: int) -> Report | None:
        with self._lock:
            report = self._reports.get(report_id)
            return report.model_copy(deep=True) if report is not None else None

    def require(self, report_id: int) -> Report:
        """Like get(), but raises NotFound."""
        report = self.get(report_id)
        if report is None:
            raise NotFound("Report not found")
        return report

    def list(self) -> list[Report]:
        """All reports, id ascending."""
        with self._lock:
            return [self._reports[rid].model_copy(deep=True) for rid in sorted(self._reports)]

    def title_exists(self, title: str, exclude_id: int | None = None) -> bool:
        key = _title_key(title)
        with self._lock:
            return any(
                _title_key(r.title) == key and r.id != exclude_id
                for r in self._reports.values()
            )

    def get_attachment(self, report_id: int, filename: str) -> Attachment | None:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return None
            return report.find_attachment(filename)

    def list_entries(self, report_id: int, order: SortOrder = SortOrder.DESC, page: Page | None = None) -> list[Entry]:
        """Entries sorted by creation time, then sliced to ``page`` if given."""
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound("Report not found")
            entries = sort_entries(report.entries, order)
        return page.slice(entries) if page is not None else entries

    # ── Mutations ────────────────────────────────────────────────────

    def create(self, title: str, description: str, severity: Severity = Severity.LOW) -> Report:
        """Check title uniqueness, allocate an id and insert as one atomic step."""
        with self._lock:
            if self.title_exists(title):
                raise Conflict("A report with this title already exists")
            now = self.now()
            report = Report(
                id=self._next_id,
                title=title,
                description=description,
                severity=severity,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._reports[report.id] = report
            self._next_entry_id[report.id] = 1
            return report.model_copy(deep=True)

    def update(self, report_id: int, fields: Mapping[str, Any]) -> Report:
        """Apply ``fields`` and bump updated_at.

        Callers decide whether anything changed; an empty mapping is a no-op
        that leaves updated_at alone.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            msg = f"Not updatable: {sorted(unknown)}"
            raise ValueError(msg)

        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound("Report not found")
            if not fields:
                return report.model_copy(deep=True)
            if "title" in fields and self.title_exists(fields["title"], exclude_id=report_id):
                raise Conflict("Another report with this title already exists")

            updated = report.model_copy(update={**fields, "updated_at": self.now()})
            # Re-validate so a bad value can never land in the store
            self._reports[report_id] = Report.model_validate(updated.model_dump())
            return self._reports[report_id].model_copy(deep=True)

    def delete(self, report_id: int) -> Report | None:
        """Hard-remove a report. Its id is never handed out again."""
        with self._lock:
            report = self._reports.pop(report_id, None)
            self._next_entry_id.pop(report_id, None)
            return report

    def add_entry(self, report_id: int, author: str, comment: str) -> Entry:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound("Report not found")
            now = self.now()
            entry = Entry(
                id=self._next_entry_id[report_id],
                author=author,
                comment=comment,
                created_at=now,
            )
            self._next_entry_id[report_id] += 1
            report.entries.append(entry)
            report.updated_at = now
            return entry

    def add_attachment(self, report_id: int, attachment: Attachment) -> Attachment:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound("Report not found")
            report.attachments.append(attachment)
            report.updated_at = self.now()
            return attachment

    def __len__(self) -> int:
        with self._lock:
            return len(self._reports)
