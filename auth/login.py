"""
auth/login.py -- Role-scoped login for cashiers and admins.

Each entry point authenticates against one role. A valid ADMIN account cannot
log in through the cashier entry point (and vice versa) unless it also holds
that role.

Check order: username -> activated -> password -> role -> (admin) PIN.
An unactivated account is rejected before the password is checked, so the
answer does not depend on whether the caller knows the password.

A successful login mints an access/refresh pair and stores the refresh token
on the credential row, overwriting (and thereby revoking) any earlier one.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.models import AdminProfile, Role, RoleName, TokenClaims, TokenKind, UserCredential
from auth.schemas import LoginAdminRequest, LoginCashierRequest, validate
from auth.store import CredentialStore, Transaction
from auth.tokens import PasswordHasher, TokenService
from core.errors import not_found, unauthorized

logger = logging.getLogger("tillgate.auth")

_ROLE_LABEL = {RoleName.CASHIER: "Cashier", RoleName.ADMIN: "Admin"}


class LoginWorkflow:
    def __init__(self, store: CredentialStore, tokens: TokenService, hasher: PasswordHasher) -> None:
        self.store = store
        self.tokens = tokens
        self.hasher = hasher

    def login_cashier(self, raw: Any) -> dict:
        body = validate(LoginCashierRequest, raw)
        with self.store.transaction() as tx:
            credential, role = self._authenticate(tx, body.username, body.password, RoleName.CASHIER)
            tokens = self._rotate(tx, credential, role)
        logger.info("Cashier %s logged in", credential.username)
        return {"username": credential.username, **tokens, "roles": [role.name]}

    def login_admin(self, raw: Any) -> dict:
        """Admin login additionally requires the PIN of the admin profile owned by this account."""
        body = validate(LoginAdminRequest, raw)
        with self.store.transaction() as tx:
            credential, role = self._authenticate(tx, body.username, body.password, RoleName.ADMIN)
            admin = self.store.find_admin_by_pin(tx, body.pin)
            if not _owns(admin, credential):
                logger.warning("Admin login for %s rejected: PIN mismatch", credential.username)
                raise unauthorized("Authentication failed")
            tokens = self._rotate(tx, credential, role)
        logger.info("Admin %s logged in", credential.username)
        return {"username": credential.username, "pin": admin.pin, **tokens, "roles": [role.name]}

    def _authenticate(
        self, tx: Transaction, username: str, password: str, expected: RoleName
    ) -> tuple[UserCredential, Role]:
        credential = self.store.find_by_username(tx, username)
        if credential is None:
            # Equalize timing with the wrong-password path.
            self.hasher.burn(password)
            raise not_found("User not found")
        if not credential.activated:
            raise unauthorized(f"{_ROLE_LABEL[expected]} not activated, please check your email")
        if not self.hasher.verify(password, credential.password_digest):
            logger.warning("Failed login for %s: bad password", username)
            raise unauthorized("Authentication failed")

        role = next((r for r in self.store.roles_for_user(tx, credential.id) if r.name == expected.value), None)
        if role is None:
            logger.warning("Failed login for %s: no %s role", username, expected.value)
            raise unauthorized(f"Authentication failed for role: {expected.value}")
        return credential, role

    def _rotate(self, tx: Transaction, credential: UserCredential, role: Role) -> dict:
        claims = TokenClaims(
            id=credential.id,
            username=credential.username,
            email=credential.email,
            role=role.name,
        )
        access_token = self.tokens.issue(TokenKind.ACCESS, claims)
        refresh_token = self.tokens.issue(TokenKind.REFRESH, claims)
        self.store.set_refresh_token(tx, credential.id, refresh_token)
        return {"accessToken": access_token, "refreshToken": refresh_token}


def _owns(admin: AdminProfile | None, credential: UserCredential) -> bool:
    return admin is not None and admin.user_id == credential.id
