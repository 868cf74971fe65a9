"""
auth/session.py -- Access-token renewal and logout.

The refresh_token column on the credential row is the source of truth for
session validity. A refresh JWT with a good signature is still rejected when
it no longer matches the stored value (logged out, or replaced by a newer
login). Refresh itself does not rotate the stored token: the same refresh
token can renew access tokens until it expires or the user logs out.
"""

from __future__ import annotations

import logging

from auth.models import TokenKind
from auth.store import CredentialStore
from auth.tokens import TokenService
from core.errors import no_content, unauthorized

logger = logging.getLogger("tillgate.auth")


class SessionWorkflow:
    def __init__(self, store: CredentialStore, tokens: TokenService) -> None:
        self.store = store
        self.tokens = tokens

    def refresh_token(self, presented: str | None) -> dict:
        """Mint a new access token from a refresh token that is still on record."""
        if not presented:
            raise unauthorized("Authentication failed")
        with self.store.transaction() as tx:
            credential = self.store.find_by_refresh_token(tx, presented)
        if credential is None:
            raise unauthorized("Authentication failed")

        claims = self.tokens.expect(TokenKind.REFRESH, presented)
        if claims.id != credential.id or not credential.activated:
            raise unauthorized("Authentication failed")

        access_token = self.tokens.issue(TokenKind.ACCESS, claims)
        logger.debug("Renewed access token for %s", credential.username)
        return {"accessToken": access_token}

    def logout(self, presented: str | None) -> None:
        """Clear the stored refresh token.

        Raises AuthError(NO_CONTENT) when there is nothing to revoke; callers
        treat that as an idempotent success, not a failure.
        """
        if not presented:
            raise no_content("No refresh token supplied")
        with self.store.transaction() as tx:
            credential = self.store.find_by_refresh_token(tx, presented)
            if credential is None:
                raise no_content("Session already ended")
            self.store.set_refresh_token(tx, credential.id, None)
        logger.info("User %s logged out", credential.username)
