"""Local-disk byte storage for attachments.

Bytes are addressed only by an opaque random filename (32 hex chars); the
original name and mimetype live in the repository. Disk I/O runs in a
worker thread so neither the event loop nor the repository lock is held
while bytes move.

Usage:
    storage = FileStorage("uploads")
    stored = await storage.store(upload, max_bytes=10 * 1024 * 1024, allowed_mimetypes={"text/plain"})
    path = storage.path_for(stored.filename)
    await storage.delete(stored.filename)
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Collection
from pathlib import Path

from fastapi import UploadFile
from pydantic import BaseModel

from bugtracker.errors import NotFound, ValidationFailure

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r"^[0-9a-f]{32}$")
_CHUNK_SIZE = 64 * 1024
_DEFAULT_MIMETYPE = "application/octet-stream"


class StoredFile(BaseModel):
    """Result of a successful store()."""

    filename: str
    original_name: str
    mimetype: str
    size: int


def is_valid_filename(filename: str) -> bool:
    return bool(_FILENAME_RE.match(filename))


class FileStorage:
    """Stores upload bytes under ``root`` using generated filenames."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def store(
        self,
        upload: UploadFile,
        max_bytes: int,
        allowed_mimetypes: Collection[str] = (),
    ) -> StoredFile:
        """Persist an upload, enforcing size and mimetype constraints.

        Raises ValidationFailure("File too large") once more than
        ``max_bytes`` have been read, before anything is written.
        """
        mimetype = (upload.content_type or _DEFAULT_MIMETYPE).split(";")[0].strip().lower()
        if allowed_mimetypes and mimetype not in allowed_mimetypes:
            raise ValidationFailure(f"Unsupported file type: {mimetype}")

        chunks: list[bytes] = []
        size = 0
        while chunk := await upload.read(_CHUNK_SIZE):
            size += len(chunk)
            if size > max_bytes:
                raise ValidationFailure("File too large")
            chunks.append(chunk)

        filename = uuid.uuid4().hex
        await asyncio.to_thread(self._write, filename, b"".join(chunks))
        logger.debug("Stored %d bytes as %s", size, filename)

        return StoredFile(
            filename=filename,
            original_name=upload.filename or filename,
            mimetype=mimetype,
            size=size,
        )

    def path_for(self, filename: str) -> Path:
        """Resolve a stored filename to its path. Raises NotFound for unknown or invalid names."""
        if not is_valid_filename(filename):
            raise NotFound("File not found")
        path = self._root / filename
        if not path.is_file():
            raise NotFound("File not found")
        return path

    async def delete(self, filename: str) -> None:
        """Remove stored bytes; missing files are ignored."""
        if not is_valid_filename(filename):
            return
        await asyncio.to_thread((self._root / filename).unlink, True)
        logger.debug("Deleted stored file %s", filename)

    def _write(self, filename: str, data: bytes) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / filename).write_bytes(data)
