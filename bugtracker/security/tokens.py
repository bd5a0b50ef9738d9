"""Compact signed tokens with an absolute expiry (HMAC-SHA256, JWT HS256 layout).

Token format: base64url(header) "." base64url(payload) "." base64url(signature),
unpadded. The payload holds the caller's claims plus ``iat`` and ``exp``
(integer epoch seconds). Expiry is absolute and fixed at signing time;
tokens are never refreshed.

Usage:
    codec = TokenCodec(secret)

    token = codec.sign({"id": "alice", "role": "admin"}, ttl=3600)
    claims = codec.verify(token)  # raises TokenError
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_HEADER: dict[str, str] = {"alg": "HS256", "typ": "JWT"}
_RESERVED_CLAIMS = frozenset({"iat", "exp"})

# Reject absurdly large tokens before doing any crypto
MAX_TOKEN_LENGTH = 4096

Clock = Callable[[], float]


class TokenError(Exception):
    """Token could not be trusted."""


class MalformedTokenError(TokenError):
    """Token is not three well-formed segments with a JSON header and payload."""


class BadSignatureError(TokenError):
    """Signature does not match the header and payload."""


class ExpiredTokenError(TokenError):
    """Signature is valid but ``exp`` is in the past."""


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise MalformedTokenError("Invalid base64 segment") from exc


def _json_segment(obj: dict[str, Any]) -> str:
    return _b64encode(json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8"))


class TokenCodec:
    """Signs and verifies tokens with a single process-wide secret.

    Rotating the secret invalidates every outstanding token.
    Stateless apart from the secret, so safe to share across threads.
    """

    def __init__(self, secret: str | bytes, clock: Clock = time.time) -> None:
        if not secret:
            msg = "Token secret must not be empty"
            raise ValueError(msg)
        self._key = secret.encode("utf-8") if isinstance(secret, str) else secret
        self._clock = clock

    def sign(self, claims: dict[str, Any], ttl: int) -> str:
        """Sign ``claims`` with an absolute expiry of now + ``ttl`` seconds."""
        if ttl <= 0:
            msg = f"ttl must be positive, got {ttl}"
            raise ValueError(msg)
        clash = _RESERVED_CLAIMS.intersection(claims)
        if clash:
            msg = f"Reserved claim names: {sorted(clash)}"
            raise ValueError(msg)

        now = int(self._clock())
        payload = {**claims, "iat": now, "exp": now + ttl}
        signing_input = f"{_json_segment(_HEADER)}.{_json_segment(payload)}"
        token = f"{signing_input}.{self._signature(signing_input)}"
        if len(token) > MAX_TOKEN_LENGTH:
            msg = f"Token would exceed {MAX_TOKEN_LENGTH} characters"
            raise ValueError(msg)
        return token

    def verify(self, token: str) -> dict[str, Any]:
        """Return the claims (without ``iat``/``exp``) or raise TokenError."""
        if not isinstance(token, str) or not token or len(token) > MAX_TOKEN_LENGTH:
            raise MalformedTokenError("Token missing or oversized")
        if not token.isascii():
            raise MalformedTokenError("Token contains non-ASCII characters")

        parts = token.split(".")
        if len(parts) != 3:
            raise MalformedTokenError("Token must have three segments")
        header_seg, payload_seg, signature_seg = parts

        # Signature first: nothing from an unsigned payload is trusted
        expected = self._signature(f"{header_seg}.{payload_seg}")
        if not hmac.compare_digest(expected, signature_seg):
            raise BadSignatureError("Signature mismatch")

        header = self._decode_json(header_seg)
        if header.get("alg") != _HEADER["alg"]:
            raise MalformedTokenError("Unsupported algorithm")

        payload = self._decode_json(payload_seg)
        exp = payload.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise MalformedTokenError("Missing or invalid exp claim")
        if self._clock() > exp:
            raise ExpiredTokenError("Token expired")

        return {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}

    def _signature(self, signing_input: str) -> str:
        digest = hmac.new(self._key, signing_input.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    @staticmethod
    def _decode_json(segment: str) -> dict[str, Any]:
        try:
            value = json.loads(_b64decode(segment))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedTokenError("Segment is not JSON") from exc
        if not isinstance(value, dict):
            raise MalformedTokenError("Segment is not a JSON object")
        return value


def load_secret(configured: str) -> str:
    """Return the configured secret, or an ephemeral one with a warning."""
    if not configured:
        logger.warning("JWT_SECRET not set, using a random ephemeral secret (tokens won't survive restarts)")
        return secrets.token_urlsafe(32)
    return configured
