"""
tests/conftest.py -- Shared fixtures for TillGate tests.

This module provides:
  - settings / clock / tokens: a TokenService on fixed, distinct secrets and a
    clock the test can move forward
  - store: an in-memory CredentialStore with the roles seeded
  - mailer: a LogMailer whose outbox holds the recent (to, subject, link) sends
  - service: an AuthService wired from the above with a cheap bcrypt cost
  - register_cashier / register_admin / active_cashier / active_admin: flow helpers
  - cashier_body / admin_body / link_token / failing_mailer: builders
  - api_client: TestClient over the real FastAPI app with a patched lifespan

The DEBUG env var must be set before any app import so get_settings() (used
lazily by the API layer) generates secrets instead of refusing to start.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# Set before importing anything that reads settings.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("MAIL_BACKEND", "log")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.mailer import LogMailer, MailDeliveryError
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import PasswordHasher, TokenService
from core.config import Settings

# Lowest bcrypt cost the library accepts.
TEST_BCRYPT_ROUNDS = 4

BASE_URL = "http://till.test"


class FrozenClock:
    """Callable clock that only moves when the test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FailingMailer:
    """Mailer whose relay is always down."""

    def send(self, to_address: str, subject: str, link: str) -> None:
        raise MailDeliveryError(f"relay refused {to_address}")


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def cashier_payload(**overrides) -> dict:
    body = {
        "username": "alice",
        "email": "alice@mail.tillgate.dev",
        "password": "Secret123!",
        "confirmPassword": "Secret123!",
        "fullName": "Alice Liddell",
        "callName": "Alice",
        "phoneNumber": "555-0100",
        "street": "1 Market St",
        "city": "Springfield",
        "province": "West",
        "country": "US",
        "postalCode": "12345",
    }
    body.update(overrides)
    return body


def admin_payload(**overrides) -> dict:
    body = {
        "username": "bob",
        "email": "bob@mail.tillgate.dev",
        "password": "Admin123!",
        "confirmPassword": "Admin123!",
        "fullName": "Bob Builder",
        "callName": "Bob",
        "pin": "4321",
        "phoneNumber": "555-0199",
    }
    body.update(overrides)
    return body


def token_from_link(link: str) -> str:
    """Return the last path segment of an emailed link (the token)."""
    return link.rstrip("/").rsplit("/", 1)[1]


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=False,
        access_token_secret="a" * 32 + "-access",
        refresh_token_secret="r" * 32 + "-refresh",
        activation_token_secret="v" * 32 + "-activation",
        reset_token_secret="p" * 32 + "-reset",
        _env_file=None,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def tokens(settings: Settings, clock: FrozenClock) -> TokenService:
    return TokenService(settings, clock=clock)


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mailer() -> LogMailer:
    return LogMailer()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def service(store: CredentialStore, tokens: TokenService, mailer: LogMailer, hasher: PasswordHasher) -> AuthService:
    return AuthService(store, tokens, mailer, hasher)


# ---------------------------------------------------------------------------
# Flow helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def register_cashier(service: AuthService, mailer: LogMailer):
    """Register a cashier and return (response, activation_token)."""

    def _register(**overrides) -> tuple[dict, str]:
        response = service.register_cashier(cashier_payload(**overrides), BASE_URL)
        return response, token_from_link(mailer.outbox[-1][2])

    return _register


@pytest.fixture
def register_admin(service: AuthService, mailer: LogMailer):
    """Register an admin and return (response, activation_token)."""

    def _register(**overrides) -> tuple[dict, str]:
        response = service.register_admin(admin_payload(**overrides), BASE_URL)
        return response, token_from_link(mailer.outbox[-1][2])

    return _register


@pytest.fixture
def active_cashier(service: AuthService, register_cashier) -> dict:
    """A registered and activated cashier; returns the registration response."""
    response, token = register_cashier()
    service.activate_account(token)
    return response


@pytest.fixture
def active_admin(service: AuthService, register_admin) -> dict:
    response, token = register_admin()
    service.activate_account(token)
    return response


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return a lifespan that wires a pre-built test AuthService into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    Named shared-memory SQLite URIs are required because TestClient runs
    route handlers in a thread pool; plain :memory: DBs are per-connection and
    would present a blank schema to each worker thread.
    """
    test_settings = Settings(debug=True, _env_file=None)
    store = CredentialStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    service = AuthService(
        store,
        TokenService(test_settings),
        LogMailer(),
        PasswordHasher(rounds=TEST_BCRYPT_ROUNDS),
    )
    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service

    store.close()


# ---------------------------------------------------------------------------
# Builder fixtures (tests/ is not a package, so helpers travel as fixtures)
# ---------------------------------------------------------------------------


@pytest.fixture
def cashier_body():
    return cashier_payload


@pytest.fixture
def admin_body():
    return admin_payload


@pytest.fixture
def link_token():
    return token_from_link


@pytest.fixture
def failing_mailer() -> FailingMailer:
    return FailingMailer()
