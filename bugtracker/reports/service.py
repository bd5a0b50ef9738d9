"""Report service — authorization, audit and events around the repository.

Every mutating method declares the roles it accepts, runs the relevant
rules, and only then touches the repository. Updates run the title check,
the escalation rule, the diff, the apply and the audit append inside one
repository critical section.

Events are published after the critical section; a failing subscriber
never changes the outcome of the operation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from bugtracker.db.repository import ReportRepository
from bugtracker.errors import Conflict, NotFound
from bugtracker.events.bus import EventBus
from bugtracker.models.audit import AuditRecord
from bugtracker.models.enums import Severity, SortOrder
from bugtracker.models.identity import Identity
from bugtracker.models.report import Attachment, Entry, Report
from bugtracker.reports.pagination import Page
from bugtracker.schemas.events import EventType, SystemEvent
from bugtracker.security.audit import AuditTrail, compute_diff
from bugtracker.security.capabilities import CapabilityTokens
from bugtracker.security.rules import ADMIN_ONLY, ALL_ROLES, check_severity_escalation, require_role
from bugtracker.storage.files import StoredFile

logger = logging.getLogger(__name__)


class ReportService:
    """Use cases over reports, entries and attachments."""

    def __init__(
        self,
        repository: ReportRepository,
        audit: AuditTrail,
        capabilities: CapabilityTokens,
        events: EventBus,
    ) -> None:
        self._repo = repository
        self._audit = audit
        self._capabilities = capabilities
        self._events = events

    # ── Reports ──────────────────────────────────────────────────────

    async def create_report(
        self,
        identity: Identity,
        title: str,
        description: str,
        severity: Severity = Severity.LOW,
    ) -> Report:
        require_role(identity, ALL_ROLES)
        report = self._repo.create(title, description, severity)
        logger.info(
            "Report #%d created by user %s (role: %s)", report.id, identity.id, identity.role.value
        )
        await self._emit(EventType.REPORT_CREATED, report.id, identity, {"title": report.title})
        return report

    def get_report(self, identity: Identity, report_id: int) -> Report:
        require_role(identity, ALL_ROLES)
        return self._repo.require(report_id)

    def list_reports(self, identity: Identity) -> list[Report]:
        require_role(identity, ALL_ROLES)
        return self._repo.list()

    async def update_report(self, identity: Identity, report_id: int, changes: Mapping[str, Any]) -> Report:
        """Apply a partial update.

        An update whose values all equal the stored ones records nothing
        and leaves updated_at untouched.
        """
        require_role(identity, ALL_ROLES)
        with self._repo.locked():
            current = self._repo.require(report_id)
            title = changes.get("title")
            if title is not None and self._repo.title_exists(title, exclude_id=report_id):
                raise Conflict("Another report with this title already exists")
            check_severity_escalation(identity, current.severity, changes.get("severity"))

            diff = compute_diff(current, changes)
            if not diff:
                logger.debug("Update of report #%d by %s changed nothing", report_id, identity.id)
                return current

            updated = self._repo.update(report_id, {field: new for field, (_, new) in diff.items()})
            self._audit.append(AuditRecord(
                report_id=report_id,
                user_id=identity.id,
                changes=diff,
                timestamp=updated.updated_at,
            ))

        await self._emit(EventType.REPORT_UPDATED, report_id, identity, {"fields": sorted(diff)})
        return updated

    async def delete_report(self, identity: Identity, report_id: int) -> Report:
        require_role(identity, ADMIN_ONLY)
        report = self._repo.delete(report_id)
        if report is None:
            raise NotFound("Report not found")
        logger.info("Report #%d deleted by user %s", report_id, identity.id)
        await self._emit(EventType.REPORT_DELETED, report_id, identity, {"title": report.title})
        return report

    def audit_trail(self, identity: Identity, report_id: int) -> list[AuditRecord]:
        require_role(identity, ADMIN_ONLY)
        return self._audit.records(report_id)

    # ── Entries ──────────────────────────────────────────────────────

    async def add_entry(self, identity: Identity, report_id: int, comment: str) -> Entry:
        require_role(identity, ALL_ROLES)
        entry = self._repo.add_entry(report_id, author=identity.id, comment=comment)
        logger.info("Entry #%d added to report #%d by user %s", entry.id, report_id, identity.id)
        await self._emit(EventType.ENTRY_ADDED, report_id, identity, {"entry_id": entry.id})
        return entry

    def list_entries(
        self,
        identity: Identity,
        report_id: int,
        order: SortOrder = SortOrder.DESC,
        page: Page | None = None,
    ) -> list[Entry]:
        require_role(identity, ALL_ROLES)
        return self._repo.list_entries(report_id, order, page)

    # ── Attachments ──────────────────────────────────────────────────

    async def attach_file(self, identity: Identity, report_id: int, stored: StoredFile) -> tuple[Attachment, str]:
        """Record attachment metadata, then mint its download token.

        Returns (attachment, token). Raises NotFound if the report is gone;
        the caller owns cleanup of the stored bytes.
        """
        require_role(identity, ALL_ROLES)
        attachment = self._repo.add_attachment(report_id, Attachment(
            filename=stored.filename,
            original_name=stored.original_name,
            mimetype=stored.mimetype,
            size=stored.size,
            uploaded_at=self._repo.now(),
        ))
        token = self._capabilities.mint(report_id, attachment.filename)
        logger.info(
            "Attachment uploaded for report #%d by user %s: %s (%d bytes)",
            report_id,
            identity.id,
            attachment.original_name,
            attachment.size,
        )
        await self._emit(EventType.ATTACHMENT_UPLOADED, report_id, identity, {
            "filename": attachment.filename,
            "mimetype": attachment.mimetype,
            "size": attachment.size,
        })
        return attachment, token

    async def authorize_download(self, token: str | None, report_id: int, filename: str) -> Attachment:
        """Resolve an anonymous download through its capability token."""
        attachment = self._capabilities.verify(token, report_id, filename)
        await self._emit(EventType.ATTACHMENT_DOWNLOADED, report_id, None, {"filename": filename})
        return attachment

    # ── Helpers ──────────────────────────────────────────────────────

    async def _emit(
        self,
        event_type: EventType,
        report_id: int,
        identity: Identity | None,
        data: dict[str, Any],
    ) -> None:
        await self._events.emit(SystemEvent(
            event_type=event_type,
            report_id=report_id,
            actor_id=identity.id if identity else None,
            actor_role=identity.role.value if identity else None,
            data=data,
            source_module="reports.service",
        ))
