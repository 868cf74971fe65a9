"""
core/errors.py -- Failure taxonomy shared by every auth workflow.

Workflows signal failure through exactly one exception type, AuthError, which
carries a discriminated ErrorKind. The transport layer maps the kind to a
status code; nothing else in the stack needs to know HTTP.

Kinds:
  VALIDATION    malformed or missing input                      400
  UNAUTHORIZED  bad password, inactive account, role mismatch,
                expired/invalid token, stale refresh token      401
  NOT_FOUND     no matching identity or credential              404
  CONFLICT      uniqueness violation                            409
  NO_CONTENT    idempotent absence (logout with nothing to do)  204
  FATAL         misconfiguration: missing seed role or secret   500

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    NO_CONTENT = "no_content"
    FATAL = "fatal"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NO_CONTENT: 204,
    ErrorKind.FATAL: 500,
}


class AuthError(Exception):
    """A classified workflow failure.

    detail holds structured extra information (e.g. field-level validation
    errors) and is safe to show to clients. message is the user-legible text.
    """

    def __init__(self, kind: ErrorKind, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail

    @property
    def status(self) -> int:
        return _STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return f"AuthError({self.kind.name}, {self.message!r})"


def validation_error(message: str, detail: Any = None) -> AuthError:
    return AuthError(ErrorKind.VALIDATION, message, detail)


def unauthorized(message: str) -> AuthError:
    return AuthError(ErrorKind.UNAUTHORIZED, message)


def not_found(message: str) -> AuthError:
    return AuthError(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> AuthError:
    return AuthError(ErrorKind.CONFLICT, message)


def no_content(message: str) -> AuthError:
    return AuthError(ErrorKind.NO_CONTENT, message)


def fatal(message: str) -> AuthError:
    return AuthError(ErrorKind.FATAL, message)
