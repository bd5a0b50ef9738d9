"""Stateless session tokens — issue at login, resolve an Identity per request.

Every failure mode (no header, wrong scheme, bad signature, expired token,
garbage claims) collapses to the same ``Unauthorized`` so callers learn
nothing about why validation failed. The reason is logged instead.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from bugtracker.errors import Unauthorized
from bugtracker.models.identity import Identity
from bugtracker.security.tokens import TokenCodec, TokenError

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


class SessionAuthenticator:
    """Issues and verifies session tokens carrying an Identity."""

    def __init__(self, codec: TokenCodec, ttl: int = 3600) -> None:
        self._codec = codec
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        return self._ttl

    def issue(self, identity: Identity) -> str:
        """Sign a session token for ``identity`` valid for the session TTL."""
        token = self._codec.sign({"id": identity.id, "role": identity.role.value}, self._ttl)
        logger.info("Session token issued for user %s (role=%s)", identity.id, identity.role.value)
        return token

    def authenticate(self, authorization: str | None) -> Identity:
        """Resolve the Identity behind an ``Authorization: Bearer <token>`` header."""
        if not authorization or not authorization.startswith(_BEARER_PREFIX):
            logger.warning("Auth failure: missing or invalid Authorization header")
            raise Unauthorized()

        token = authorization[len(_BEARER_PREFIX):].strip()
        if not token:
            logger.warning("Auth failure: empty bearer token")
            raise Unauthorized()

        try:
            claims = self._codec.verify(token)
            identity = Identity(id=claims.get("id"), role=claims.get("role"))
        except TokenError as exc:
            logger.warning("Auth failure: invalid token - %s", exc)
            raise Unauthorized() from None
        except ValidationError:
            logger.warning("Auth failure: token claims do not describe an identity")
            raise Unauthorized() from None

        logger.debug("Authenticated user %s with role %s", identity.id, identity.role.value)
        return identity
