"""
auth/service.py -- The eleven auth operations behind one object.

AuthService wires the four workflows to a single store, token service, hasher
and mailer. The transport layer (api/) holds one instance on app.state; tests
build one from in-memory collaborators.

Every method either returns a plain dict payload or raises core.errors.AuthError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from auth.login import LoginWorkflow
from auth.mailer import Mailer, build_mailer
from auth.password import PasswordWorkflow
from auth.registration import RegistrationWorkflow
from auth.session import SessionWorkflow
from auth.store import CredentialStore
from auth.tokens import PasswordHasher, TokenService

if TYPE_CHECKING:
    from core.config import Settings


class AuthService:
    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        mailer: Mailer,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.hasher = hasher or PasswordHasher()
        self._registration = RegistrationWorkflow(store, tokens, self.hasher, mailer)
        self._login = LoginWorkflow(store, tokens, self.hasher)
        self._session = SessionWorkflow(store, tokens)
        self._password = PasswordWorkflow(store, tokens, self.hasher, mailer)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthService":
        """Build the production object graph from validated settings."""
        return cls(
            store=CredentialStore(settings.database_url, busy_timeout=settings.database_busy_timeout_seconds),
            tokens=TokenService(settings),
            mailer=build_mailer(settings),
        )

    # Registration + activation
    def register_cashier(self, raw: Any, base_url: str) -> dict:
        return self._registration.register_cashier(raw, base_url)

    def register_admin(self, raw: Any, base_url: str) -> dict:
        return self._registration.register_admin(raw, base_url)

    def activate_account(self, token: str) -> dict:
        return self._registration.activate_account(token)

    # Login
    def login_cashier(self, raw: Any) -> dict:
        return self._login.login_cashier(raw)

    def login_admin(self, raw: Any) -> dict:
        return self._login.login_admin(raw)

    # Session
    def refresh_token(self, presented: str | None) -> dict:
        return self._session.refresh_token(presented)

    def logout(self, presented: str | None) -> None:
        self._session.logout(presented)

    # Password lifecycle
    def forget_password(self, raw: Any, base_url: str) -> None:
        self._password.forget_password(raw, base_url)

    def get_reset_password(self, user_id: str, token: str) -> dict:
        return self._password.get_reset_password(user_id, token)

    def reset_password(self, token: str | None, raw: Any) -> dict:
        return self._password.reset_password(token, raw)

    def change_password(self, raw: Any) -> dict:
        return self._password.change_password(raw)

    def close(self) -> None:
        self.store.close()
