"""FastAPI dependencies — collaborators from app.state and the caller's Identity."""
# ruff: noqa: B008 - Depends() in function defaults is standard FastAPI

from __future__ import annotations

from fastapi import Depends, Request

from bugtracker.config import Settings
from bugtracker.models.identity import Identity
from bugtracker.reports.service import ReportService
from bugtracker.security.sessions import SessionAuthenticator
from bugtracker.storage.files import FileStorage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(request: Request) -> ReportService:
    return request.app.state.reports


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_authenticator(request: Request) -> SessionAuthenticator:
    return request.app.state.sessions


async def get_identity(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> Identity:
    """Resolve the bearer token once and pin the Identity to the request.

    Raises Unauthorized (401) for any credential problem.
    """
    identity = authenticator.authenticate(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity
