"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and the workflows do the work.

Timestamps are ISO 8601 UTC strings, the same representation the store writes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RoleName(str, Enum):
    """The fixed role set. Rows are seeded by the store, never by a workflow."""

    CASHIER = "CASHIER"
    ADMIN = "ADMIN"


class TokenKind(str, Enum):
    """Token families. Each family has its own signing secret and lifetime."""

    ACCESS = "access"
    REFRESH = "refresh"
    ACTIVATION = "activation"
    RESET = "reset"


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass
class UserCredential:
    """The identity anchor for one account.

    activated flips from False to True exactly once (via the activation link)
    and never goes back. refresh_token is the single currently-valid refresh
    token; it is the only thing that makes a refresh JWT usable, so clearing
    it revokes the session server-side.
    """

    username: str
    email: str
    password_digest: str
    id: str | None = None
    activated: bool = False
    refresh_token: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Role:
    id: int
    name: str


@dataclass
class UserRole:
    user_id: str
    role_id: int
    created_at: str | None = None


@dataclass
class CashierProfile:
    """Cashier attributes, owned one-to-one by a UserCredential. phone_number is unique."""

    user_id: str
    full_name: str
    call_name: str
    phone_number: str
    street: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    postal_code: str | None = None
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class AdminProfile:
    """Admin attributes, owned one-to-one by a UserCredential. pin is unique."""

    user_id: str
    full_name: str
    call_name: str
    pin: str
    phone_number: str | None = None
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class TokenClaims:
    """Identity claims carried by every token family."""

    id: str
    username: str
    email: str
    role: str | None = None

    def as_payload(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username, "email": self.email, "role": self.role}


@dataclass
class VerifiedToken:
    """Tagged result of TokenService.verify().

    claims is populated only when status is VALID. Callers branch on status
    so that an expired link and a forged one produce different messages.
    """

    status: TokenStatus
    claims: TokenClaims | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID
