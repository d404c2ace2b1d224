"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Authenticated endpoints take the access token from the
"Authorization: Bearer <token>" header. Verification is delegated to
AuthService.authenticate(), which checks signature, expiry, and staleness
against the user's password_changed_at.

get_current_user() raises HTTP 401 carrying the specific AuthError envelope.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. It must not import from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import AuthError, Err
from auth.models import User
from auth.service import AuthService


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail=AuthError.UNAUTHORIZED.envelope())
    service: AuthService = request.app.state.auth_service
    result = service.authenticate(token)
    if isinstance(result, Err):
        raise HTTPException(status_code=result.error.status_code, detail=result.error.envelope())
    return result.value
