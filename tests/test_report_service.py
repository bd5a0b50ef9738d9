"""Tests for ReportService — escalation, idempotent updates, audit, events."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from bugtracker.db.repository import ReportRepository
from bugtracker.errors import Conflict, EscalationForbidden, Forbidden, NotFound
from bugtracker.events.bus import EventBus
from bugtracker.models.enums import Severity
from bugtracker.models.identity import Identity
from bugtracker.reports.service import ReportService
from bugtracker.schemas.events import EventType, SystemEvent
from bugtracker.security.audit import AuditTrail
from bugtracker.security.capabilities import CapabilityTokens
from bugtracker.security.tokens import TokenCodec
from bugtracker.storage.files import StoredFile


@pytest.fixture
def repo(clock) -> ReportRepository:
    return ReportRepository(clock=clock)


@pytest.fixture
def audit(repo: ReportRepository) -> AuditTrail:
    return AuditTrail(lock=repo.lock)


@pytest.fixture
def received() -> list[SystemEvent]:
    return []


@pytest.fixture
def service(repo: ReportRepository, audit: AuditTrail, clock, received) -> ReportService:
    bus = EventBus()

    async def record(event: SystemEvent) -> None:
        received.append(event)

    bus.subscribe(record)
    caps = CapabilityTokens(TokenCodec("svc-secret", clock=clock), repo, ttl=900)
    return ReportService(repo, audit, caps, bus)


def _stored(filename: str = "f" * 32) -> StoredFile:
    return StoredFile(filename=filename, original_name="shot.png", mimetype="image/png", size=42)


# ── Create ───────────────────────────────────────────────────────────


class TestCreate:
    @pytest.mark.asyncio()
    async def test_create_emits_event(self, service: ReportService, developer: Identity, received) -> None:
        report = await service.create_report(developer, "A", "B")
        assert report.id == 1
        assert [e.event_type for e in received] == [EventType.REPORT_CREATED]
        assert received[0].actor_id == "bob"
        assert received[0].data == {"title": "A"}

    @pytest.mark.asyncio()
    async def test_failing_subscriber_does_not_fail_create(
        self, repo: ReportRepository, audit: AuditTrail, clock, developer: Identity
    ) -> None:
        bus = EventBus()

        async def broken(event: SystemEvent) -> None:
            raise RuntimeError("queue down")

        bus.subscribe(broken)
        caps = CapabilityTokens(TokenCodec("x", clock=clock), repo)
        report = await ReportService(repo, audit, caps, bus).create_report(developer, "A", "B")
        assert repo.get(report.id) is not None

    @pytest.mark.asyncio()
    async def test_duplicate_title(self, service: ReportService, developer: Identity) -> None:
        await service.create_report(developer, "Same", "B")
        with pytest.raises(Conflict):
            await service.create_report(developer, "same", "C")


# ── Update ───────────────────────────────────────────────────────────


class TestUpdate:
    @pytest.mark.asyncio()
    async def test_developer_escalation_forbidden(
        self, service: ReportService, audit: AuditTrail, developer: Identity
    ) -> None:
        report = await service.create_report(developer, "A", "B", Severity.HIGH)
        with pytest.raises(EscalationForbidden):
            await service.update_report(developer, report.id, {"severity": Severity.CRITICAL})
        assert len(audit) == 0

    @pytest.mark.asyncio()
    async def test_rejected_escalation_applies_nothing(
        self, service: ReportService, repo: ReportRepository, developer: Identity
    ) -> None:
        report = await service.create_report(developer, "A", "B")
        with pytest.raises(EscalationForbidden):
            await service.update_report(developer, report.id, {"title": "New", "severity": Severity.CRITICAL})
        assert repo.get(report.id).title == "A"

    @pytest.mark.asyncio()
    async def test_admin_escalation_audited_once(
        self, service: ReportService, audit: AuditTrail, admin: Identity
    ) -> None:
        report = await service.create_report(admin, "A", "B")
        updated = await service.update_report(admin, report.id, {"severity": Severity.CRITICAL})
        assert updated.severity is Severity.CRITICAL
        records = audit.records(report.id)
        assert len(records) == 1
        assert records[0].changes == {"severity": (Severity.LOW, Severity.CRITICAL)}
        assert records[0].user_id == "alice"
        assert records[0].timestamp == updated.updated_at

    @pytest.mark.parametrize("who", ["admin", "developer"])
    @pytest.mark.asyncio()
    async def test_resubmitting_critical(
        self, service: ReportService, audit: AuditTrail, admin: Identity, developer: Identity, clock, who
    ) -> None:
        report = await service.create_report(admin, "A", "B", Severity.CRITICAL)
        clock.advance(60)
        identity = admin if who == "admin" else developer
        result = await service.update_report(identity, report.id, {"severity": Severity.CRITICAL})
        assert result.updated_at == report.updated_at
        assert len(audit) == 0

    @pytest.mark.asyncio()
    async def test_identical_payload_is_idempotent(
        self, service: ReportService, audit: AuditTrail, developer: Identity, clock, received
    ) -> None:
        report = await service.create_report(developer, "A", "B", Severity.MEDIUM)
        clock.advance(60)
        same = {"title": "A", "description": "B", "severity": Severity.MEDIUM}
        result = await service.update_report(developer, report.id, same)
        result = await service.update_report(developer, report.id, same)
        assert result.updated_at == report.updated_at
        assert len(audit) == 0
        assert EventType.REPORT_UPDATED not in [e.event_type for e in received]

    @pytest.mark.asyncio()
    async def test_multi_field_update_single_record(
        self, service: ReportService, audit: AuditTrail, developer: Identity, clock
    ) -> None:
        report = await service.create_report(developer, "A", "B")
        clock.advance(10)
        updated = await service.update_report(
            developer, report.id, {"title": "A2", "description": "B", "severity": Severity.HIGH}
        )
        assert updated.updated_at > report.updated_at
        (record,) = audit.records(report.id)
        assert record.changes == {"title": ("A", "A2"), "severity": (Severity.LOW, Severity.HIGH)}

    @pytest.mark.asyncio()
    async def test_title_conflict_wins_over_escalation(self, service: ReportService, developer: Identity) -> None:
        await service.create_report(developer, "Taken", "B")
        report = await service.create_report(developer, "Mine", "B")
        with pytest.raises(Conflict):
            await service.update_report(developer, report.id, {"title": "TAKEN", "severity": Severity.CRITICAL})

    @pytest.mark.asyncio()
    async def test_missing_report(self, service: ReportService, admin: Identity) -> None:
        with pytest.raises(NotFound):
            await service.update_report(admin, 404, {"title": "x"})


# ── Delete & audit access ────────────────────────────────────────────


class TestDelete:
    @pytest.mark.asyncio()
    async def test_developer_cannot_delete(self, service: ReportService, developer: Identity) -> None:
        report = await service.create_report(developer, "A", "B")
        with pytest.raises(Forbidden) as exc:
            await service.delete_report(developer, report.id)
        assert not isinstance(exc.value, EscalationForbidden)

    @pytest.mark.asyncio()
    async def test_admin_deletes(self, service: ReportService, repo: ReportRepository, admin: Identity) -> None:
        report = await service.create_report(admin, "A", "B")
        await service.delete_report(admin, report.id)
        assert repo.get(report.id) is None

    @pytest.mark.asyncio()
    async def test_delete_missing(self, service: ReportService, admin: Identity) -> None:
        with pytest.raises(NotFound):
            await service.delete_report(admin, 1)

    @pytest.mark.asyncio()
    async def test_audit_survives_delete(self, service: ReportService, admin: Identity) -> None:
        report = await service.create_report(admin, "A", "B")
        await service.update_report(admin, report.id, {"description": "C"})
        await service.delete_report(admin, report.id)
        assert len(service.audit_trail(admin, report.id)) == 1

    def test_audit_trail_admin_only(self, service: ReportService, developer: Identity) -> None:
        with pytest.raises(Forbidden):
            service.audit_trail(developer, 1)


# ── Entries & attachments ────────────────────────────────────────────


class TestChildren:
    @pytest.mark.asyncio()
    async def test_entry_author_is_caller(self, service: ReportService, developer: Identity) -> None:
        report = await service.create_report(developer, "A", "B")
        entry = await service.add_entry(developer, report.id, "Looks like a race")
        assert entry.author == "bob"
        assert service.get_report(developer, report.id).entry_count == 1

    @pytest.mark.asyncio()
    async def test_attach_mints_scoped_token(self, service: ReportService, developer: Identity) -> None:
        report = await service.create_report(developer, "A", "B")
        attachment, token = await service.attach_file(developer, report.id, _stored())
        assert attachment.original_name == "shot.png"
        resolved = await service.authorize_download(token, report.id, attachment.filename)
        assert resolved == attachment

    @pytest.mark.asyncio()
    async def test_attach_to_missing_report(self, service: ReportService, developer: Identity, received) -> None:
        with pytest.raises(NotFound):
            await service.attach_file(developer, 9, _stored())
        assert received == []

    @pytest.mark.asyncio()
    async def test_download_emits_anonymous_event(self, service: ReportService, developer: Identity, received) -> None:
        report = await service.create_report(developer, "A", "B")
        attachment, token = await service.attach_file(developer, report.id, _stored())
        await service.authorize_download(token, report.id, attachment.filename)
        assert received[-1].event_type is EventType.ATTACHMENT_DOWNLOADED
        assert received[-1].actor_id is None


# ── Concurrency ──────────────────────────────────────────────────────


class TestConcurrency:
    def test_racing_escalations_audited_once(
        self, service: ReportService, audit: AuditTrail, admin: Identity
    ) -> None:
        report = asyncio.run(service.create_report(admin, "A", "B"))
        barrier = threading.Barrier(8)

        def escalate(_: int) -> None:
            barrier.wait()
            asyncio.run(service.update_report(admin, report.id, {"severity": Severity.CRITICAL}))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(escalate, range(8)))

        transitions = [r for r in audit.records(report.id) if "severity" in r.changes]
        assert len(transitions) == 1
        assert transitions[0].changes["severity"] == (Severity.LOW, Severity.CRITICAL)

    def test_create_racing_retitle_one_wins(
        self, service: ReportService, repo: ReportRepository, developer: Identity
    ) -> None:
        def create(title: str, barrier: threading.Barrier) -> str:
            barrier.wait()
            try:
                asyncio.run(service.create_report(developer, title, "d"))
            except Conflict:
                return "conflict"
            return "ok"

        def retitle(report_id: int, title: str, barrier: threading.Barrier) -> str:
            barrier.wait()
            try:
                asyncio.run(service.update_report(developer, report_id, {"title": title}))
            except Conflict:
                return "conflict"
            return "ok"

        for round_no in range(20):
            existing = asyncio.run(service.create_report(developer, f"base {round_no}", "d"))
            barrier = threading.Barrier(2)
            with ThreadPoolExecutor(max_workers=2) as pool:
                futures = [
                    pool.submit(create, f"X{round_no}", barrier),
                    pool.submit(retitle, existing.id, f"x{round_no}", barrier),
                ]
                results = sorted(f.result() for f in futures)

            assert results == ["conflict", "ok"]
            titles = [r.title.casefold() for r in repo.list()]
            assert titles.count(f"x{round_no}") == 1
