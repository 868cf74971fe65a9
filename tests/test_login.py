"""
tests/test_login.py -- Role-scoped cashier/admin login.
"""

from __future__ import annotations

import pytest

from auth.models import TokenKind
from core.errors import AuthError, ErrorKind


def _stored_refresh(store, username):
    with store.transaction() as tx:
        return store.find_by_username(tx, username).refresh_token


class TestCashierLogin:
    def test_register_activate_login(self, service, store, tokens, register_cashier):
        """The full cashier onboarding path, end to end at the service level."""
        registered, token = register_cashier()
        assert registered["userCredential"]["activated"] is False
        assert registered["roles"] == ["CASHIER"]

        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "alice", "password": "Secret123!"})
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Cashier not activated, please check your email"

        service.activate_account(token)
        result = service.login_cashier({"username": "alice", "password": "Secret123!"})
        assert result["username"] == "alice"
        assert result["roles"] == ["CASHIER"]
        claims = tokens.expect(TokenKind.ACCESS, result["accessToken"])
        assert claims.username == "alice"
        assert claims.role == "CASHIER"
        assert _stored_refresh(store, "alice") == result["refreshToken"]

    def test_unactivated_rejected_even_with_wrong_password(self, service, register_cashier):
        register_cashier()
        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "alice", "password": "WrongPass1"})
        assert exc_info.value.message == "Cashier not activated, please check your email"

    def test_unknown_user(self, service):
        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "nobody", "password": "Secret123!"})
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message == "User not found"

    def test_wrong_password(self, service, store, active_cashier):
        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "alice", "password": "WrongPass1"})
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.message == "Authentication failed"
        assert _stored_refresh(store, "alice") is None

    def test_admin_cannot_use_cashier_entry_point(self, service, active_admin):
        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "bob", "password": "Admin123!"})
        assert exc_info.value.message == "Authentication failed for role: CASHIER"

    def test_new_login_replaces_stored_refresh_token(self, service, store, active_cashier):
        first = service.login_cashier({"username": "alice", "password": "Secret123!"})
        second = service.login_cashier({"username": "alice", "password": "Secret123!"})
        assert first["refreshToken"] != second["refreshToken"]
        assert _stored_refresh(store, "alice") == second["refreshToken"]
        with pytest.raises(AuthError):
            service.refresh_token(first["refreshToken"])

    def test_body_validation(self, service):
        with pytest.raises(AuthError) as exc_info:
            service.login_cashier({"username": "alice"})
        assert exc_info.value.kind is ErrorKind.VALIDATION


class TestAdminLogin:
    def test_success_returns_pin(self, service, store, tokens, active_admin):
        result = service.login_admin({"username": "bob", "password": "Admin123!", "pin": "4321"})
        assert result["pin"] == "4321"
        assert result["roles"] == ["ADMIN"]
        assert tokens.expect(TokenKind.ACCESS, result["accessToken"]).role == "ADMIN"
        assert _stored_refresh(store, "bob") == result["refreshToken"]

    def test_unactivated_admin(self, service, register_admin):
        register_admin()
        with pytest.raises(AuthError) as exc_info:
            service.login_admin({"username": "bob", "password": "Admin123!", "pin": "4321"})
        assert exc_info.value.message == "Admin not activated, please check your email"

    def test_wrong_pin(self, service, store, active_admin):
        with pytest.raises(AuthError) as exc_info:
            service.login_admin({"username": "bob", "password": "Admin123!", "pin": "1111"})
        assert exc_info.value.status == 401
        assert _stored_refresh(store, "bob") is None

    def test_another_admins_pin_is_rejected(self, service, active_admin, register_admin):
        _, token = register_admin(username="dave", email="dave@mail.tillgate.dev", pin="8765")
        service.activate_account(token)
        with pytest.raises(AuthError) as exc_info:
            service.login_admin({"username": "bob", "password": "Admin123!", "pin": "8765"})
        assert exc_info.value.message == "Authentication failed"

    def test_cashier_cannot_use_admin_entry_point(self, service, active_cashier):
        with pytest.raises(AuthError) as exc_info:
            service.login_admin({"username": "alice", "password": "Secret123!", "pin": "4321"})
        assert exc_info.value.message == "Authentication failed for role: ADMIN"
