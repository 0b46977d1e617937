"""Session tokens and the admin guard for mutating endpoints.

The ``session`` cookie carries ``admin_authorized.<issued_at>.<signature>``
where the signature is an HMAC-SHA256 of the first two parts under the
configured session secret. Tokens older than ``session_max_age_s`` are
rejected.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from fastapi import Cookie, Depends

from runtrack.api.deps import get_settings
from runtrack.core.config import AppSettings, AuthConfig
from runtrack.core.exceptions import UnauthorizedError

SESSION_COOKIE = "session"
SESSION_SUBJECT = "admin_authorized"


def _sign(secret: str, message: str) -> str:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def check_password(config: AuthConfig, password: str) -> bool:
    return hmac.compare_digest(password.encode(), config.admin_password.encode())


def issue_session_token(config: AuthConfig, now: float | None = None) -> str:
    issued_at = int(time.time() if now is None else now)
    message = f"{SESSION_SUBJECT}.{issued_at}"
    return f"{message}.{_sign(config.session_secret, message)}"


def verify_session_token(config: AuthConfig, token: str | None, now: float | None = None) -> None:
    """Raises UnauthorizedError unless ``token`` is a valid, unexpired session."""
    if not token:
        raise UnauthorizedError("Please log in first")
    parts = token.split(".")
    if len(parts) != 3 or parts[0] != SESSION_SUBJECT or not parts[1].isdigit():
        raise UnauthorizedError("Malformed session")
    subject, issued_at, signature = parts
    expected = _sign(config.session_secret, f"{subject}.{issued_at}")
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        raise UnauthorizedError("Invalid session")
    current = time.time() if now is None else now
    if current - int(issued_at) > config.session_max_age_s:
        raise UnauthorizedError("Session expired")


def require_admin(
    session: str | None = Cookie(default=None),
    settings: AppSettings = Depends(get_settings),
) -> None:
    """FastAPI dependency applied to every mutating route."""
    verify_session_token(settings.auth, session)
