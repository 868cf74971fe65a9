"""
auth/password.py -- Forgot/reset/change password.

Reset tokens are never stored. Possession of the emailed link is the proof,
and each token also carries "pwd", a fingerprint of the password digest it
was issued against. A successful reset replaces the digest, which makes every
outstanding reset token for that account stale: a link works exactly once.

Subject binding: both the link landing (get_reset_password) and the reset
itself load the account by the token's own subject id. The landing also
requires the id in the URL to equal that subject.

Reset and change both clear the stored refresh token, so every existing
session has to log in again with the new password.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from auth.mailer import Mailer, deliver
from auth.models import TokenClaims, TokenKind, TokenStatus, UserCredential
from auth.registration import build_link
from auth.schemas import ChangePasswordRequest, ForgetPasswordRequest, ResetPasswordRequest, validate
from auth.store import CredentialStore, Transaction
from auth.tokens import PasswordHasher, TokenService
from core.errors import not_found, unauthorized, validation_error

logger = logging.getLogger("tillgate.auth")

RESET_PATH = "/api/v1/auth/reset-password/{id}/{token}"
RESET_SUBJECT = "Reset your password"

_NOT_ACTIVATED = "User not activated, please check your email"


def _digest_fingerprint(digest: str) -> str:
    return hashlib.sha256(digest.encode("utf-8")).hexdigest()[:32]


class PasswordWorkflow:
    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        hasher: PasswordHasher,
        mailer: Mailer,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.hasher = hasher
        self.mailer = mailer

    def forget_password(self, raw: Any, base_url: str) -> None:
        """Email a short-lived reset link to an activated account."""
        body = validate(ForgetPasswordRequest, raw)
        with self.store.transaction() as tx:
            credential = self.store.find_by_username(tx, body.username)
            if credential is None:
                raise not_found("User not found")
            if not credential.activated:
                raise unauthorized(_NOT_ACTIVATED)

            roles = self.store.roles_for_user(tx, credential.id)
            token = self.tokens.issue(
                TokenKind.RESET,
                TokenClaims(
                    id=credential.id,
                    username=credential.username,
                    email=credential.email,
                    role=roles[0].name if roles else None,
                ),
                extra={"pwd": _digest_fingerprint(credential.password_digest)},
            )
            link = build_link(base_url, RESET_PATH.format(id=credential.id, token=token))
            deliver(self.mailer, credential.email, RESET_SUBJECT, link)
        logger.info("Password reset link sent for %s", credential.username)

    def get_reset_password(self, user_id: str, token: str) -> dict:
        """Validate a reset link and return what the reset form needs to display."""
        with self.store.transaction() as tx:
            credential = self._load_for_reset(tx, token)
        if user_id != credential.id:
            raise not_found("User not found")
        return {"username": credential.username, "email": credential.email, "token": token}

    def reset_password(self, token: str | None, raw: Any) -> dict:
        if not token:
            raise validation_error("Token not found")
        body = validate(ResetPasswordRequest, raw)
        if body.password != body.confirm_password:
            raise validation_error("Password and confirm password not match")

        digest = self.hasher.hash(body.password)
        with self.store.transaction() as tx:
            credential = self._load_for_reset(tx, token)
            self.store.set_password(tx, credential.id, digest)
            self.store.set_refresh_token(tx, credential.id, None)
        logger.info("Password reset for %s", credential.username)
        return {"username": credential.username, "email": credential.email}

    def change_password(self, raw: Any) -> dict:
        """Self-service change; proves identity with the old password."""
        body = validate(ChangePasswordRequest, raw)
        with self.store.transaction() as tx:
            credential = self.store.find_by_id(tx, body.id)
            if credential is None:
                raise not_found("User not found")
            if not credential.activated:
                raise unauthorized(_NOT_ACTIVATED)
            if not self.hasher.verify(body.old_password, credential.password_digest):
                raise unauthorized("Old password not match")
            if body.new_password != body.confirm_password:
                raise validation_error("Password and confirm password not match")

            self.store.set_password(tx, credential.id, self.hasher.hash(body.new_password))
            self.store.set_refresh_token(tx, credential.id, None)
        logger.info("Password changed for %s", credential.username)
        return {"username": credential.username, "email": credential.email}

    def _load_for_reset(self, tx: Transaction, token: str) -> UserCredential:
        """Verify a reset token and return the activated account it names.

        Expired -> "Token expired"; bad signature -> "Invalid token";
        already used (digest changed since issue) -> "Token already used".
        """
        result = self.tokens.verify(TokenKind.RESET, token)
        if result.status is TokenStatus.EXPIRED:
            raise unauthorized("Token expired")
        if not result.ok or result.claims is None:
            raise unauthorized("Invalid token")

        credential = self.store.find_by_id(tx, result.claims.id)
        if credential is None:
            raise not_found("User not found")
        if not credential.activated:
            raise unauthorized(_NOT_ACTIVATED)
        fingerprint = str(result.payload.get("pwd", ""))
        if not hmac.compare_digest(fingerprint, _digest_fingerprint(credential.password_digest)):
            raise unauthorized("Token already used")
        return credential
