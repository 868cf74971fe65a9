"""
auth/tokens.py -- JWT minting/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Four token families (access, refresh,
       activation, reset) are each signed with their own secret and carry the
       same identity claims (id, username, email, role) plus iat, exp, sub and
       a "kind" claim. A token presented to the wrong family fails signature
       verification and is reported as INVALID, never decoded.

  Expiry: the library's own exp check is switched off and expiry is evaluated
       here as `exp < now` against the injected clock. Callers need to tell
       "signed by us but expired" apart from "never valid" to pick the right
       message, and tests need to move the clock.

  Passwords: bcrypt used directly (no passlib wrapper). PasswordHasher keeps
       a lazily computed dummy digest so a login for an unknown username still
       pays one bcrypt check and response time does not reveal whether the
       username exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenClaims, TokenKind, TokenStatus, VerifiedToken
from core.errors import fatal, unauthorized

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tillgate.auth")

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes; longer input raises on bcrypt>=4.1.
_BCRYPT_MAX_BYTES = 72

BCRYPT_ROUNDS = 12

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt digest of the plaintext password."""
    pw_bytes = plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, digest: str) -> bool:
    """Return True if the plaintext matches the digest. Malformed digests never raise."""
    pw_bytes = plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, digest.encode("utf-8"))
    except (ValueError, TypeError):
        return False


class PasswordHasher:
    """hash/verify capability handed to the workflows.

    rounds is the bcrypt cost factor. Tests pass the minimum (4) to keep the
    suite fast; production uses BCRYPT_ROUNDS.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_digest: str | None = None

    def hash(self, plain: str) -> str:
        return hash_password(plain, self.rounds)

    def verify(self, plain: str, digest: str) -> bool:
        return verify_password(plain, digest)

    def burn(self, plain: str) -> None:
        """Run one bcrypt check against a dummy digest (timing equalization)."""
        if self._dummy_digest is None:
            self._dummy_digest = self.hash("tillgate_timing_dummy")
        verify_password(plain, self._dummy_digest)


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Stateless minting and verification for the four token families.

    Usage:
        tokens = TokenService(get_settings())
        raw = tokens.issue(TokenKind.ACCESS, claims)
        result = tokens.verify(TokenKind.ACCESS, raw)
        if result.ok:
            result.claims.username

    clock and nonce are injectable. Each token carries a random "jti" from
    nonce() so two tokens minted in the same second for the same user still
    differ; pass a constant nonce to make issue() fully deterministic.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Clock = utc_now,
        nonce: Callable[[], str] | None = None,
    ) -> None:
        self._secrets = {
            TokenKind.ACCESS: settings.access_token_secret,
            TokenKind.REFRESH: settings.refresh_token_secret,
            TokenKind.ACTIVATION: settings.activation_token_secret,
            TokenKind.RESET: settings.reset_token_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: settings.access_token_ttl_seconds,
            TokenKind.REFRESH: settings.refresh_token_ttl_seconds,
            TokenKind.ACTIVATION: settings.activation_token_ttl_seconds,
            TokenKind.RESET: settings.reset_token_ttl_seconds,
        }
        self._clock = clock
        self._nonce = nonce or (lambda: uuid.uuid4().hex)

    def ttl(self, kind: TokenKind) -> int:
        """Return the configured lifetime of a token family in seconds."""
        return self._ttls[kind]

    def _secret(self, kind: TokenKind) -> str:
        secret = self._secrets.get(kind)
        if not secret:
            # Settings validates this at startup; reaching here means the
            # service was built from an unvalidated config object.
            logger.error("Signing secret for %s tokens is not configured", kind.value)
            raise fatal("Token signing is not configured.")
        return secret

    def issue(
        self,
        kind: TokenKind,
        claims: TokenClaims,
        ttl: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """Sign claims as a token of the given family.

        ttl overrides the family's configured lifetime (seconds). extra adds
        workflow-specific claims; it cannot override the reserved ones.
        """
        secret = self._secret(kind)
        now = self._clock()
        lifetime = ttl if ttl is not None else self._ttls[kind]
        payload: dict[str, Any] = {
            **(extra or {}),
            **claims.as_payload(),
            "sub": claims.username,
            "kind": kind.value,
            "jti": self._nonce(),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=lifetime)).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def verify(self, kind: TokenKind, token: str) -> VerifiedToken:
        """Check signature under the family's secret, then expiry against the clock.

        Never raises for bad input. Returns INVALID for a bad signature, a
        malformed token, a token of another family, or missing claims; EXPIRED
        when the signature is good but exp < now.
        """
        secret = self._secret(kind)
        if not token:
            return VerifiedToken(status=TokenStatus.INVALID)
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return VerifiedToken(status=TokenStatus.INVALID)

        if payload.get("kind") != kind.value:
            return VerifiedToken(status=TokenStatus.INVALID)
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return VerifiedToken(status=TokenStatus.INVALID)
        try:
            claims = TokenClaims(
                id=str(payload["id"]),
                username=str(payload["username"]),
                email=str(payload["email"]),
                role=payload.get("role"),
            )
        except KeyError:
            return VerifiedToken(status=TokenStatus.INVALID)

        if exp < self._clock().timestamp():
            return VerifiedToken(status=TokenStatus.EXPIRED, payload=payload)
        return VerifiedToken(status=TokenStatus.VALID, claims=claims, payload=payload)

    def expect(self, kind: TokenKind, token: str) -> TokenClaims:
        """verify(), raising AuthError(UNAUTHORIZED) unless the token is valid.

        Expired and invalid tokens get different messages: the first means
        "ask for a new link", the second means the link was never ours.
        """
        result = self.verify(kind, token)
        if result.status is TokenStatus.EXPIRED:
            raise unauthorized("Token expired")
        if not result.ok or result.claims is None:
            raise unauthorized("Invalid token")
        return result.claims
