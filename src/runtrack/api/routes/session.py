"""Admin login and logout."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from runtrack.api.auth import SESSION_COOKIE, check_password, issue_session_token
from runtrack.api.deps import get_settings
from runtrack.api.schemas import LoginRequest
from runtrack.core.config import AppSettings
from runtrack.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["session"])


@router.post("/login")
def login(
    body: LoginRequest,
    response: Response,
    settings: AppSettings = Depends(get_settings),
) -> str:
    if not check_password(settings.auth, body.password):
        logger.warning("Rejected admin login")
        raise UnauthorizedError("Invalid Password")
    response.set_cookie(
        SESSION_COOKIE,
        issue_session_token(settings.auth),
        max_age=settings.auth.session_max_age_s,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.auth.cookie_secure,
    )
    return "Login Successful"


@router.post("/logout")
def logout(response: Response) -> str:
    response.delete_cookie(SESSION_COOKIE, path="/")
    return "Logged Out"
