"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /auth/register         -- create account; returns token pair + user (201)
  POST /auth/login            -- password login; returns token pair + user
  POST /auth/refresh          -- rotate a refresh token into a new pair
  POST /auth/logout           -- revoke one or all refresh tokens (requires auth)
  GET  /auth/me               -- current user info (requires auth)
  PUT  /auth/change-password  -- change password (requires auth)
  POST /auth/forgot-password  -- start a reset; always 200
  POST /auth/reset-password   -- redeem a reset token

Security:
  Every mutating route depends on verify_csrf (double-submit precondition).
  Login, register, forgot-password, and reset-password are rate-limited per IP.
  Login, register, and refresh responses carry Cache-Control: no-store.
  forgot-password returns the same body whether or not the email exists.

Route limits are applied by @limiter.limit() placed directly under the
@router decorator, so the function FastAPI registers is the rate-limited one.

Handlers are plain `def` so FastAPI runs them in its thread pool; bcrypt and
the SQLite calls block and must not stall the event loop.

Every AuthService call returns Ok or Err. _fail() turns an Err into an
HTTPException whose detail is the uniform {code, message, statusCode} envelope.
"""

from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.csrf import verify_csrf
from api.limiter import FORGOT_PASSWORD_LIMIT, LOGIN_LIMIT, REGISTER_LIMIT, RESET_PASSWORD_LIMIT, limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    UserPublic,
)
from auth.dependencies import get_current_user
from auth.errors import Err
from auth.models import User
from auth.service import AuthService

router = APIRouter()

_FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent."


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _fail(result: Err) -> NoReturn:
    raise HTTPException(status_code=result.error.status_code, detail=result.error.envelope())


def _no_store(status_code: int, body) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201, dependencies=[Depends(verify_csrf)])
@limiter.limit(REGISTER_LIMIT)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and sign it in. 409 if the email is already registered."""
    result = _service(request).register(body.email, body.password, body.display_name)
    if isinstance(result, Err):
        _fail(result)
    session = result.value
    return _no_store(
        201,
        AuthResponse(
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            user=UserPublic.from_user(session.user),
        ),
    )


@router.post("/auth/login", response_model=AuthResponse, dependencies=[Depends(verify_csrf)])
@limiter.limit(LOGIN_LIMIT)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong password and unknown email produce the same 401 body. A locked
    account gets 429 whether or not the password is right.
    """
    result = _service(request).login(body.email, body.password)
    if isinstance(result, Err):
        _fail(result)
    session = result.value
    return _no_store(
        200,
        AuthResponse(
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            user=UserPublic.from_user(session.user),
        ),
    )


@router.post("/auth/refresh", response_model=TokenPairResponse, dependencies=[Depends(verify_csrf)])
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is single-use."""
    result = _service(request).refresh(body.refresh_token)
    if isinstance(result, Err):
        _fail(result)
    pair = result.value
    return _no_store(200, TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token))


@router.post("/auth/forgot-password", response_model=MessageResponse, dependencies=[Depends(verify_csrf)])
@limiter.limit(FORGOT_PASSWORD_LIMIT)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Start a password reset. The response never reveals whether the account exists."""
    _service(request).forgot_password(body.email)
    return MessageResponse(message=_FORGOT_PASSWORD_MESSAGE)


@router.post("/auth/reset-password", response_model=MessageResponse, dependencies=[Depends(verify_csrf)])
@limiter.limit(RESET_PASSWORD_LIMIT)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Redeem a reset token. 404 for wrong, expired, or already-used tokens alike."""
    result = _service(request).reset_password(body.token, body.new_password)
    if isinstance(result, Err):
        _fail(result)
    return MessageResponse(message="Password has been reset. Please log in with your new password.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse, dependencies=[Depends(verify_csrf)])
def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Revoke the given refresh token, or every session when none is given."""
    refresh_token = body.refresh_token if body is not None else None
    result = _service(request).logout(current_user, refresh_token)
    if isinstance(result, Err):
        _fail(result)
    if refresh_token is None:
        return MessageResponse(message="Logged out of all sessions.")
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=UserPublic)
def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    """Return identity information for the currently authenticated user."""
    return UserPublic.from_user(current_user)


@router.put("/auth/change-password", response_model=MessageResponse, dependencies=[Depends(verify_csrf)])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Change the password of the signed-in user. Every session must log in again."""
    result = _service(request).change_password(current_user, body.current_password, body.new_password)
    if isinstance(result, Err):
        _fail(result)
    return MessageResponse(message="Password changed. Please log in again.")
