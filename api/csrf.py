"""
api/csrf.py -- CSRF precondition for state-changing auth routes.

Double-submit cookie check: the client echoes the value of the csrf_token
cookie in the X-CSRF-Token header. A cross-site form post can make the
browser send the cookie but cannot read it to fill in the header.

Token issuance happens elsewhere (the front end or an edge service sets the
cookie); this module only validates. Disabled with CSRF_PROTECTION=false.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def verify_csrf(request: Request) -> None:
    """FastAPI dependency: raise 403 unless header and cookie carry the same token."""
    if not request.app.state.settings.csrf_protection:
        return
    cookie = request.cookies.get(CSRF_COOKIE, "")
    header = request.headers.get(CSRF_HEADER, "")
    if not cookie or not header or not hmac.compare_digest(cookie.encode(), header.encode()):
        raise HTTPException(
            status_code=403,
            detail={"code": "CSRF_INVALID", "message": "Invalid CSRF token. Please try again.", "statusCode": 403},
        )
