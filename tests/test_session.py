"""
tests/test_session.py -- Access-token renewal and logout.
"""

from __future__ import annotations

import pytest

from auth.models import TokenClaims, TokenKind
from core.errors import AuthError, ErrorKind

ALICE = {"username": "alice", "password": "Secret123!"}


@pytest.fixture
def session(service, active_cashier):
    """Log alice in and return the login result."""
    return service.login_cashier(ALICE)


class TestRefresh:
    def test_mints_new_access_token_without_rotating(self, service, store, tokens, session):
        first = service.refresh_token(session["refreshToken"])
        second = service.refresh_token(session["refreshToken"])
        assert first["accessToken"] != second["accessToken"]
        assert tokens.expect(TokenKind.ACCESS, first["accessToken"]).id == tokens.expect(
            TokenKind.ACCESS, second["accessToken"]
        ).id
        with store.transaction() as tx:
            assert store.find_by_username(tx, "alice").refresh_token == session["refreshToken"]

    def test_missing_token(self, service):
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(None)
        assert exc_info.value.status == 401

    def test_unknown_token(self, service, session):
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(session["accessToken"])
        assert exc_info.value.message == "Authentication failed"

    def test_expired_refresh_token(self, service, clock, tokens, session):
        clock.advance(tokens.ttl(TokenKind.REFRESH) + 1)
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(session["refreshToken"])
        assert exc_info.value.message == "Token expired"


class TestLogout:
    def test_logout_revokes_refresh(self, service, store, session):
        service.logout(session["refreshToken"])
        with store.transaction() as tx:
            assert store.find_by_username(tx, "alice").refresh_token is None
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(session["refreshToken"])
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED

    def test_logout_without_token_is_no_content(self, service):
        with pytest.raises(AuthError) as exc_info:
            service.logout(None)
        assert exc_info.value.kind is ErrorKind.NO_CONTENT
        assert exc_info.value.status == 204

    def test_second_logout_is_no_content(self, service, session):
        service.logout(session["refreshToken"])
        with pytest.raises(AuthError) as exc_info:
            service.logout(session["refreshToken"])
        assert exc_info.value.kind is ErrorKind.NO_CONTENT

    def test_login_after_logout_starts_new_session(self, service, session):
        service.logout(session["refreshToken"])
        fresh = service.login_cashier(ALICE)
        assert service.refresh_token(fresh["refreshToken"])["accessToken"]


class TestRefreshRecordMismatch:
    def test_token_subject_differs_from_stored_row(self, service, store, tokens, session):
        with store.transaction() as tx:
            alice = store.find_by_username(tx, "alice")
            foreign = tokens.issue(
                TokenKind.REFRESH, TokenClaims(id="someone-else", username="alice", email=alice.email)
            )
            store.set_refresh_token(tx, alice.id, foreign)
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(foreign)
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Authentication failed"

    def test_unactivated_row_cannot_refresh(self, service, store, tokens, register_cashier):
        register_cashier()
        with store.transaction() as tx:
            alice = store.find_by_username(tx, "alice")
            assert alice.activated is False
            refresh = tokens.issue(
                TokenKind.REFRESH, TokenClaims(id=alice.id, username=alice.username, email=alice.email)
            )
            store.set_refresh_token(tx, alice.id, refresh)
        with pytest.raises(AuthError) as exc_info:
            service.refresh_token(refresh)
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.message == "Authentication failed"
