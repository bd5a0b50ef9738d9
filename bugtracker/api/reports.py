"""Report routes — CRUD, entries, audit trail, attachment upload and download.

Everything except the download requires a session token. The download is
authorized solely by the ``token`` query parameter minted at upload time.
"""
# ruff: noqa: B008 - Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status
from fastapi.responses import FileResponse

from bugtracker.api.deps import get_identity, get_service, get_settings, get_storage
from bugtracker.config import Settings
from bugtracker.errors import NotFound, ValidationFailure
from bugtracker.models.identity import Identity
from bugtracker.reports.pagination import parse_order, parse_pagination
from bugtracker.reports.service import ReportService
from bugtracker.schemas.reports import (
    AttachmentOut,
    AuditRecordOut,
    EntryCreate,
    EntryOut,
    ErrorResponse,
    ReportCreate,
    ReportDetail,
    ReportSummary,
    ReportUpdate,
    UploadResponse,
)
from bugtracker.security.capabilities import CapabilityTokens
from bugtracker.storage.files import FileStorage

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)

_INCLUDABLE = frozenset({"entries", "attachments"})


def _parse_include(raw: str | None) -> set[str]:
    if not raw:
        return set()
    return {part.strip() for part in raw.split(",") if part.strip() in _INCLUDABLE}


# ── Reports ──────────────────────────────────────────────────────────


@router.get("", response_model=list[ReportSummary])
async def list_reports(
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> list[ReportSummary]:
    return [ReportSummary.from_report(r) for r in service.list_reports(identity)]


@router.post("", response_model=ReportSummary, status_code=status.HTTP_201_CREATED)
async def create_report(
    body: ReportCreate,
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> ReportSummary:
    report = await service.create_report(identity, body.title, body.description, body.severity)
    return ReportSummary.from_report(report)


@router.get("/{report_id}", response_model=ReportDetail, response_model_exclude_none=True)
async def get_report(
    report_id: int,
    include: str | None = Query(None, description="Comma-separated: entries, attachments"),
    order: str | None = Query(None, description="Entry order by creation time: asc or desc"),
    page: str | None = Query(None),
    page_size: str | None = Query(None, alias="pageSize"),
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> ReportDetail:
    """Summary by default; ``include=entries`` adds sorted, paginated entries."""
    report = service.get_report(identity, report_id)
    detail = ReportDetail(**ReportSummary.from_report(report).model_dump())

    wanted = _parse_include(include)
    if "entries" in wanted:
        window = parse_pagination(page, page_size)
        entries = service.list_entries(identity, report_id, parse_order(order), window)
        detail.entries = [EntryOut.from_entry(e) for e in entries]
    if "attachments" in wanted:
        detail.attachments = [AttachmentOut.from_attachment(a) for a in report.attachments]
    return detail


@router.put("/{report_id}", response_model=ReportSummary)
async def update_report(
    report_id: int,
    body: ReportUpdate,
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> ReportSummary:
    changes = body.changes()
    if not changes:
        raise ValidationFailure("No update data provided")
    report = await service.update_report(identity, report_id, changes)
    return ReportSummary.from_report(report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: int,
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
    storage: FileStorage = Depends(get_storage),
) -> Response:
    """Admin only. Stored bytes are removed best-effort after the report is gone."""
    report = await service.delete_report(identity, report_id)
    for attachment in report.attachments:
        try:
            await storage.delete(attachment.filename)
        except OSError:
            logger.exception("Failed to remove stored file %s of deleted report #%d", attachment.filename, report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{report_id}/audit", response_model=list[AuditRecordOut])
async def get_audit_trail(
    report_id: int,
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> list[AuditRecordOut]:
    """Admin only. Every recorded change to the report, oldest first."""
    return [AuditRecordOut.from_record(r) for r in service.audit_trail(identity, report_id)]


# ── Entries ──────────────────────────────────────────────────────────


@router.post("/{report_id}/entries", response_model=EntryOut, status_code=status.HTTP_201_CREATED)
async def add_entry(
    report_id: int,
    body: EntryCreate,
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
) -> EntryOut:
    entry = await service.add_entry(identity, report_id, body.comment)
    return EntryOut.from_entry(entry)


# ── Attachments ──────────────────────────────────────────────────────


@router.post("/{report_id}/attachment", response_model=UploadResponse)
async def upload_attachment(
    request: Request,
    report_id: int,
    file: UploadFile | None = File(None),
    identity: Identity = Depends(get_identity),
    service: ReportService = Depends(get_service),
    storage: FileStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """Store the file, attach it to the report, and return a signed download URL.

    A missing report is reported (404) before the file itself is validated.
    """
    service.get_report(identity, report_id)
    if file is None:
        raise ValidationFailure("No file uploaded")

    stored = await storage.store(file, settings.storage.max_upload_bytes, settings.storage.mimetypes)
    try:
        attachment, token = await service.attach_file(identity, report_id, stored)
    except NotFound:
        # Report deleted while the bytes were being stored; drop them
        await storage.delete(stored.filename)
        raise

    base_url = settings.public_base_url or str(request.base_url)
    url = CapabilityTokens.download_url(base_url, report_id, attachment.filename, token)
    return UploadResponse(download_url=url)


@router.get("/{report_id}/attachment/{filename}")
async def download_attachment(
    report_id: int,
    filename: str,
    token: str | None = Query(None),
    service: ReportService = Depends(get_service),
    storage: FileStorage = Depends(get_storage),
) -> FileResponse:
    """Anonymous download. Authorization headers are ignored here."""
    attachment = await service.authorize_download(token, report_id, filename)
    path = storage.path_for(attachment.filename)
    return FileResponse(path, media_type=attachment.mimetype, filename=attachment.original_name)
