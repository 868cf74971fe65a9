"""
api/routes/v1/auth.py -- Registration, login, session and password endpoints.

Routes (all under /api/v1/auth):
  POST   /cashier/register                -- register cashier; 201
  POST   /cashier/login                   -- cashier login; sets refreshToken cookie
  POST   /admin/register                  -- register admin; 201
  POST   /admin/login                     -- admin login; sets refreshToken cookie
  GET    /activate-account/{token}        -- activate from the emailed link
  POST   /forget-password                 -- email a reset link
  GET    /reset-password/{id}/{token}     -- validate a reset link for the form
  POST   /reset-password?token=...        -- set a new password with a reset token
  POST   /change-password                 -- change password with the old one
  GET    /refresh-token                   -- new access token from the cookie
  DELETE /logout                          -- revoke the stored refresh token

The handlers are thin: they pass the raw JSON object and the caller's
scheme+host to AuthService and wrap the result in the response envelope.
AuthError propagates to the handler in api/main.py, which maps its kind to a
status code.

Security:
  Login and forget-password are rate limited (LOGIN_RATE_LIMIT).
  The refresh token only travels in an httpOnly cookie; it is never part of a
  JSON response body. Cache-Control: no-store on responses carrying tokens.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse, Response

from api.limiter import limiter, login_rate_limit
from api.models import Envelope
from auth.models import TokenKind
from auth.service import AuthService
from core.config import get_settings
from core.errors import AuthError, ErrorKind

REFRESH_COOKIE = "refreshToken"

router = APIRouter(prefix="/auth")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _envelope(status: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status, content=Envelope(status=status, message=message, data=data).model_dump())


def _login_response(result: dict, message: str, service: AuthService) -> JSONResponse:
    """Move the refresh token into an httpOnly cookie and return the rest."""
    data = {key: value for key, value in result.items() if key != "refreshToken"}
    resp = _envelope(200, message, data)
    resp.set_cookie(
        REFRESH_COOKIE,
        value=result["refreshToken"],
        httponly=True,
        samesite="lax",
        secure=get_settings().secure_cookies,
        max_age=service.tokens.ttl(TokenKind.REFRESH),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Registration + activation
# ---------------------------------------------------------------------------


@router.post("/cashier/register", status_code=201)
def register_cashier(request: Request, body: dict = Body(...)) -> JSONResponse:
    data = _service(request).register_cashier(body, _base_url(request))
    return _envelope(
        201,
        "Cashier created successfully, please check your email for activation your account",
        data,
    )


@router.post("/admin/register", status_code=201)
def register_admin(request: Request, body: dict = Body(...)) -> JSONResponse:
    data = _service(request).register_admin(body, _base_url(request))
    return _envelope(
        201,
        "Admin created successfully, please check your email for activation your account",
        data,
    )


@router.get("/activate-account/{token}")
def activate_account(request: Request, token: str) -> JSONResponse:
    data = _service(request).activate_account(token)
    return _envelope(200, "Account activated successfully", data)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/cashier/login")
@limiter.limit(login_rate_limit)
def login_cashier(request: Request, body: dict = Body(...)) -> JSONResponse:
    service = _service(request)
    result = service.login_cashier(body)
    return _login_response(result, "Cashier logged in successfully", service)


@router.post("/admin/login")
@limiter.limit(login_rate_limit)
def login_admin(request: Request, body: dict = Body(...)) -> JSONResponse:
    service = _service(request)
    result = service.login_admin(body)
    return _login_response(result, "Admin logged in successfully", service)


# ---------------------------------------------------------------------------
# Password lifecycle
# ---------------------------------------------------------------------------


@router.post("/forget-password")
@limiter.limit(login_rate_limit)
def forget_password(request: Request, body: dict = Body(...)) -> JSONResponse:
    _service(request).forget_password(body, _base_url(request))
    return _envelope(200, "Password reset link sent to your email")


@router.get("/reset-password/{user_id}/{token}")
def get_reset_password(request: Request, user_id: str, token: str) -> JSONResponse:
    data = _service(request).get_reset_password(user_id, token)
    return _envelope(200, "Success to get reset password link", data)


@router.post("/reset-password")
def reset_password(
    request: Request,
    body: dict = Body(...),
    token: Optional[str] = Query(default=None),
) -> JSONResponse:
    data = _service(request).reset_password(token, body)
    return _envelope(200, "Password changed successfully", data)


@router.post("/change-password")
def change_password(request: Request, body: dict = Body(...)) -> JSONResponse:
    data = _service(request).change_password(body)
    return _envelope(200, "Password changed successfully", data)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/refresh-token")
def refresh_token(request: Request) -> JSONResponse:
    data = _service(request).refresh_token(request.cookies.get(REFRESH_COOKIE))
    resp = _envelope(200, "Token refreshed successfully", data)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/logout")
def logout(request: Request) -> Response:
    """Revoke the session. Nothing to revoke is answered with 204, not an error."""
    try:
        _service(request).logout(request.cookies.get(REFRESH_COOKIE))
    except AuthError as exc:
        if exc.kind is not ErrorKind.NO_CONTENT:
            raise
        resp = Response(status_code=204)
        resp.delete_cookie(REFRESH_COOKIE)
        return resp
    resp = _envelope(200, "logged out successfully")
    resp.delete_cookie(REFRESH_COOKIE)
    return resp
