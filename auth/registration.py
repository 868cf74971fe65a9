"""
auth/registration.py -- Cashier/admin registration and account activation.

Both registration variants run the same sequence inside one transaction:

  validate -> password match -> username pre-check -> insert credential
  -> resolve role + link -> secondary-key pre-check -> insert profile
  -> mint activation token -> send activation email -> commit

The secondary-key check (phone number for cashiers, PIN for admins) runs after
the credential insert. When it fails the whole transaction rolls back, so the
credential never outlives a rejected registration. Email delivery happens
before commit for the same reason: an account nobody can activate is worse
than a failed registration.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.mailer import Mailer, deliver
from auth.models import (
    AdminProfile,
    CashierProfile,
    Role,
    RoleName,
    TokenClaims,
    TokenKind,
    UserCredential,
)
from auth.schemas import RegisterAdminRequest, RegisterCashierRequest, validate
from auth.store import CredentialStore, Transaction
from auth.tokens import PasswordHasher, TokenService
from core.errors import conflict, not_found, validation_error

logger = logging.getLogger("tillgate.auth")

ACTIVATION_PATH = "/api/v1/auth/activate-account/{token}"
ACTIVATION_SUBJECT = "Please activate your account"


def build_link(base_url: str, path: str) -> str:
    """Join the caller's scheme+host with an API path."""
    return base_url.rstrip("/") + path


class RegistrationWorkflow:
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

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_cashier(self, raw: Any, base_url: str) -> dict:
        """Create a non-activated cashier account and email its activation link."""
        body = validate(RegisterCashierRequest, raw)
        _require_match(body.password, body.confirm_password)

        with self.store.transaction() as tx:
            credential, role = self._create_credential(
                tx, body.username, body.email, body.password, RoleName.CASHIER, "User already exists"
            )
            if self.store.find_cashier_by_phone(tx, body.phone_number) is not None:
                raise conflict("Cashier already exists")
            cashier = self.store.create_cashier(
                tx,
                CashierProfile(
                    user_id=credential.id,
                    full_name=body.full_name,
                    call_name=body.call_name,
                    phone_number=body.phone_number,
                    street=body.street,
                    city=body.city,
                    province=body.province,
                    country=body.country,
                    postal_code=body.postal_code,
                ),
            )
            self._send_activation(credential, role, base_url)

        logger.info("Registered cashier %s (activation pending)", credential.username)
        return _cashier_response(cashier, credential, role)

    def register_admin(self, raw: Any, base_url: str) -> dict:
        """Create a non-activated admin account and email its activation link."""
        body = validate(RegisterAdminRequest, raw)
        _require_match(body.password, body.confirm_password)

        with self.store.transaction() as tx:
            credential, role = self._create_credential(
                tx, body.username, body.email, body.password, RoleName.ADMIN, "Admin already exists"
            )
            if self.store.find_admin_by_pin(tx, body.pin) is not None:
                raise conflict("Admin already exists")
            admin = self.store.create_admin(
                tx,
                AdminProfile(
                    user_id=credential.id,
                    full_name=body.full_name,
                    call_name=body.call_name,
                    pin=body.pin,
                    phone_number=body.phone_number,
                ),
            )
            self._send_activation(credential, role, base_url)

        logger.info("Registered admin %s (activation pending)", credential.username)
        return _admin_response(admin, credential, role)

    def _create_credential(
        self,
        tx: Transaction,
        username: str,
        email: str,
        password: str,
        role_name: RoleName,
        exists_message: str,
    ) -> tuple[UserCredential, Role]:
        if self.store.find_by_username(tx, username) is not None:
            raise conflict(exists_message)
        credential = self.store.create_credential(
            tx,
            UserCredential(
                username=username,
                email=email,
                password_digest=self.hasher.hash(password),
            ),
        )
        role = self.store.resolve_role(tx, role_name.value)
        self.store.create_role_link(tx, credential.id, role.id)
        return credential, role

    def _send_activation(self, credential: UserCredential, role: Role, base_url: str) -> None:
        token = self.tokens.issue(
            TokenKind.ACTIVATION,
            TokenClaims(id=credential.id, username=credential.username, email=credential.email, role=role.name),
        )
        link = build_link(base_url, ACTIVATION_PATH.format(token=token))
        deliver(self.mailer, credential.email, ACTIVATION_SUBJECT, link)

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate_account(self, token: str) -> dict:
        """Flip activated to True for the account named by a valid activation token.

        Activation is terminal: a second valid activation is a no-op success.
        """
        claims = self.tokens.expect(TokenKind.ACTIVATION, token)
        with self.store.transaction() as tx:
            credential = self.store.find_by_id(tx, claims.id)
            if credential is None:
                raise not_found("User not found")
            if not credential.activated:
                self.store.set_activated(tx, credential.id)
                logger.info("Activated account %s", credential.username)
        return {"username": credential.username, "email": credential.email, "activated": True}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_match(password: str, confirm_password: str) -> None:
    if password != confirm_password:
        raise validation_error("Passwords do not match")


def _credential_projection(credential: UserCredential) -> dict:
    return {
        "username": credential.username,
        "email": credential.email,
        "activated": credential.activated,
    }


def _cashier_response(cashier: CashierProfile, credential: UserCredential, role: Role) -> dict:
    return {
        "cashierId": cashier.id,
        "fullName": cashier.full_name,
        "callName": cashier.call_name,
        "phoneNumber": cashier.phone_number,
        "street": cashier.street,
        "city": cashier.city,
        "province": cashier.province,
        "country": cashier.country,
        "postalCode": cashier.postal_code,
        "createdAt": cashier.created_at,
        "updatedAt": cashier.updated_at,
        "userCredential": _credential_projection(credential),
        "roles": [role.name],
    }


def _admin_response(admin: AdminProfile, credential: UserCredential, role: Role) -> dict:
    return {
        "adminId": admin.id,
        "fullName": admin.full_name,
        "callName": admin.call_name,
        "pin": admin.pin,
        "phoneNumber": admin.phone_number,
        "createdAt": admin.created_at,
        "updatedAt": admin.updated_at,
        "userCredential": _credential_projection(credential),
        "roles": [role.name],
    }
