"""Download capability tokens — file-scoped, short-lived, no session needed.

A token is minted once per successful upload and names exactly one
``(reportId, file)`` pair. Holding it is the only access control on the
download URL; an Authorization header there is irrelevant.

Verification runs cheapest-and-safest first so forged tokens learn nothing
about what exists:

1. signature / expiry        -> Unauthorized
2. claim vs requested path   -> Forbidden
3. report + attachment exist -> NotFound
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from bugtracker.db.repository import ReportRepository
from bugtracker.errors import Forbidden, NotFound, Unauthorized
from bugtracker.models.report import Attachment
from bugtracker.security.tokens import TokenCodec, TokenError

logger = logging.getLogger(__name__)


class CapabilityTokens:
    """Issues and verifies download tokens for attachments."""

    def __init__(self, codec: TokenCodec, repository: ReportRepository, ttl: int = 900) -> None:
        self._codec = codec
        self._repository = repository
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        return self._ttl

    def mint(self, report_id: int, filename: str) -> str:
        return self._codec.sign({"reportId": report_id, "file": filename}, self._ttl)

    @staticmethod
    def download_url(base_url: str, report_id: int, filename: str, token: str) -> str:
        """Fully qualified download URL embedding ``token``."""
        base = base_url.rstrip("/")
        return f"{base}/reports/{report_id}/attachment/{quote(filename, safe='')}?token={quote(token, safe='')}"

    def verify(self, token: str | None, report_id: int, filename: str) -> Attachment:
        """Return the attachment the token grants, or raise."""
        if not token:
            raise Unauthorized("Missing access token")

        try:
            claims = self._codec.verify(token)
        except TokenError as exc:
            logger.warning("Invalid or expired token for file download: %s", exc)
            raise Unauthorized("Unauthorized or expired token") from None

        claimed_id = claims.get("reportId")
        if (
            not isinstance(claimed_id, int)
            or isinstance(claimed_id, bool)
            or claimed_id != report_id
            or claims.get("file") != filename
        ):
            logger.warning("Download token payload mismatch (report %s, file %s)", report_id, filename)
            raise Forbidden("Invalid token for this file")

        attachment = self._repository.get_attachment(report_id, filename)
        if attachment is None:
            raise NotFound("File not found")
        return attachment
