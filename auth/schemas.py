"""
auth/schemas.py -- Typed request structs for every auth workflow.

Each workflow runs its raw input through validate() before any business logic.
The models forbid unknown fields, so a typo or an injected field is rejected
rather than silently ignored. Field names are snake_case in Python and
camelCase on the wire (confirmPassword, phoneNumber, ...).

Password/confirmPassword equality is deliberately NOT checked here: the
workflows check it themselves so the mismatch gets its own message.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from pydantic.alias_generators import to_camel

from core.errors import validation_error

# Upper bound matches bcrypt's 72-byte input window for ASCII passwords.
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 72

_PHONE_PATTERN = r"^\+?[0-9][0-9 \-]{5,19}$"
_PIN_PATTERN = r"^[0-9]{4,8}$"

_Username = Annotated[str, Field(min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.\-]+$")]
_Password = Annotated[str, Field(min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)]


class _Request(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class RegisterCashierRequest(_Request):
    username: _Username
    email: EmailStr
    password: _Password
    confirm_password: str = Field(max_length=PASSWORD_MAX_LEN)
    full_name: str = Field(min_length=1, max_length=255)
    call_name: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(pattern=_PHONE_PATTERN)
    street: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    province: str | None = Field(default=None, max_length=100)
    country: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)


class RegisterAdminRequest(_Request):
    username: _Username
    email: EmailStr
    password: _Password
    confirm_password: str = Field(max_length=PASSWORD_MAX_LEN)
    full_name: str = Field(min_length=1, max_length=255)
    call_name: str = Field(min_length=1, max_length=100)
    pin: str = Field(pattern=_PIN_PATTERN)
    phone_number: str | None = Field(default=None, pattern=_PHONE_PATTERN)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class LoginCashierRequest(_Request):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)


class LoginAdminRequest(_Request):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)
    pin: str = Field(pattern=_PIN_PATTERN)


# ---------------------------------------------------------------------------
# Password lifecycle
# ---------------------------------------------------------------------------


class ForgetPasswordRequest(_Request):
    username: str = Field(min_length=1, max_length=100)


class ResetPasswordRequest(_Request):
    password: _Password
    confirm_password: str = Field(max_length=PASSWORD_MAX_LEN)


class ChangePasswordRequest(_Request):
    id: str = Field(min_length=1, max_length=36)
    old_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: _Password
    confirm_password: str = Field(max_length=PASSWORD_MAX_LEN)


# ---------------------------------------------------------------------------
# validate()
# ---------------------------------------------------------------------------

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def validate(schema: type[SchemaT], raw: Any) -> SchemaT:
    """Return raw parsed as schema, or raise AuthError(VALIDATION) with field-level detail.

    Already-parsed instances of schema pass through unchanged so callers that
    build the struct themselves (CLI, tests) do not pay a second validation.
    """
    if isinstance(raw, schema):
        return raw
    if not isinstance(raw, Mapping):
        raise validation_error("Request body must be an object.")
    try:
        return schema.model_validate(dict(raw))
    except ValidationError as exc:
        detail = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        raise validation_error("Request validation failed.", detail) from exc
