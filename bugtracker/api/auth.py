"""Login route — trades an ``{id, role}`` pair for a session token.

There is no credential store; the login is deliberately simple and exists
to mint session tokens for the API.
"""
# ruff: noqa: B008

from __future__ import annotations

from fastapi import APIRouter, Depends

from bugtracker.api.deps import get_authenticator
from bugtracker.models.identity import Identity
from bugtracker.schemas.reports import ErrorResponse, LoginRequest, TokenResponse
from bugtracker.security.sessions import SessionAuthenticator

router = APIRouter(prefix="/auth", tags=["auth"], responses={400: {"model": ErrorResponse}})


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> TokenResponse:
    """Issue a session token valid for one hour."""
    token = authenticator.issue(Identity(id=body.id, role=body.role))
    return TokenResponse(token=token)
