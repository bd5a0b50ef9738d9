"""Tests for download capability tokens — scope, expiry and check ordering."""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from bugtracker.db.repository import ReportRepository
from bugtracker.errors import Forbidden, NotFound, Unauthorized
from bugtracker.models.report import Attachment
from bugtracker.security.capabilities import CapabilityTokens
from bugtracker.security.tokens import TokenCodec

FILE_X = "0" * 32
FILE_Y = "1" * 32


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec("cap-secret", clock=clock)


@pytest.fixture
def repo(clock) -> ReportRepository:
    repo = ReportRepository(clock=clock)
    for i in range(1, 7):
        repo.create(f"report {i}", "d")
    for report_id, filename in [(5, FILE_X), (5, FILE_Y), (6, FILE_X)]:
        repo.add_attachment(report_id, Attachment(
            filename=filename,
            original_name="trace.txt",
            mimetype="text/plain",
            size=10,
            uploaded_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        ))
    return repo


@pytest.fixture
def caps(codec: TokenCodec, repo: ReportRepository) -> CapabilityTokens:
    return CapabilityTokens(codec, repo, ttl=900)


class TestScope:
    def test_exact_pair_grants_access(self, caps: CapabilityTokens) -> None:
        token = caps.mint(5, FILE_X)
        assert caps.verify(token, 5, FILE_X).filename == FILE_X

    def test_other_file_same_report_forbidden(self, caps: CapabilityTokens) -> None:
        token = caps.mint(5, FILE_X)
        with pytest.raises(Forbidden, match="Invalid token for this file"):
            caps.verify(token, 5, FILE_Y)

    def test_same_file_other_report_forbidden(self, caps: CapabilityTokens) -> None:
        token = caps.mint(5, FILE_X)
        with pytest.raises(Forbidden):
            caps.verify(token, 6, FILE_X)

    def test_string_report_id_claim_forbidden(self, caps: CapabilityTokens, codec: TokenCodec) -> None:
        token = codec.sign({"reportId": "5", "file": FILE_X}, ttl=60)
        with pytest.raises(Forbidden):
            caps.verify(token, 5, FILE_X)

    def test_session_token_is_not_a_capability(self, caps: CapabilityTokens, codec: TokenCodec) -> None:
        session = codec.sign({"id": "alice", "role": "admin"}, ttl=3600)
        with pytest.raises(Forbidden):
            caps.verify(session, 5, FILE_X)

    def test_reusable_within_ttl(self, caps: CapabilityTokens) -> None:
        token = caps.mint(5, FILE_X)
        caps.verify(token, 5, FILE_X)
        caps.verify(token, 5, FILE_X)


class TestExpiry:
    def test_unauthorized_after_fifteen_minutes(self, caps: CapabilityTokens, clock) -> None:
        token = caps.mint(5, FILE_X)
        clock.advance(15 * 60 + 1)
        with pytest.raises(Unauthorized):
            caps.verify(token, 5, FILE_X)

    def test_still_valid_at_fifteen_minutes(self, caps: CapabilityTokens, clock) -> None:
        token = caps.mint(5, FILE_X)
        clock.advance(15 * 60)
        caps.verify(token, 5, FILE_X)


class TestOrdering:
    def test_missing_token(self, caps: CapabilityTokens) -> None:
        with pytest.raises(Unauthorized, match="Missing access token"):
            caps.verify(None, 5, FILE_X)

    def test_forged_token_learns_nothing_about_existence(self, caps: CapabilityTokens, clock) -> None:
        forged = CapabilityTokens(TokenCodec("wrong", clock=clock), caps._repository).mint(99, FILE_X)
        with pytest.raises(Unauthorized):
            caps.verify(forged, 99, FILE_X)

    def test_mismatch_checked_before_existence(self, caps: CapabilityTokens) -> None:
        token = caps.mint(1, FILE_X)
        with pytest.raises(Forbidden):
            caps.verify(token, 99, FILE_X)

    def test_valid_token_for_deleted_report(self, caps: CapabilityTokens, repo: ReportRepository) -> None:
        token = caps.mint(5, FILE_X)
        repo.delete(5)
        with pytest.raises(NotFound, match="File not found"):
            caps.verify(token, 5, FILE_X)

    def test_valid_token_for_unknown_attachment(self, caps: CapabilityTokens) -> None:
        token = caps.mint(4, FILE_X)
        with pytest.raises(NotFound):
            caps.verify(token, 4, FILE_X)


class TestDownloadUrl:
    def test_fully_qualified_with_token(self, caps: CapabilityTokens) -> None:
        token = caps.mint(5, FILE_X)
        url = CapabilityTokens.download_url("http://bugs.example.com/", 5, FILE_X, token)
        parts = urlsplit(url)
        assert parts.scheme == "http"
        assert parts.netloc == "bugs.example.com"
        assert parts.path == f"/reports/5/attachment/{FILE_X}"
        assert parse_qs(parts.query)["token"] == [token]
