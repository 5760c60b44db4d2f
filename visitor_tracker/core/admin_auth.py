"""
Admin Gate

Shared-secret protection for the admin page, the visitor API and the
realtime admin channel.

The password is accepted once through the ``password`` query parameter; a
successful login sets an HttpOnly cookie so later requests do not have to
repeat it. The cookie carries an HMAC of the password rather than the
password itself.
"""

import enum
import hashlib
import hmac
import logging

from fastapi import HTTPException, Request, Response, status
from starlette.requests import HTTPConnection

from visitor_tracker.core.setting import settings

logger = logging.getLogger(__name__)

_COOKIE_CONTEXT = b"visitor-tracker-admin"


class AdminAuth(enum.Enum):
    """How a connection proved it belongs to an admin."""
    DENIED = "denied"
    PASSWORD = "password"
    COOKIE = "cookie"

    def __bool__(self) -> bool:
        return self is not AdminAuth.DENIED


def admin_cookie_value(password: str) -> str:
    """Derive the cookie token for a given admin password."""
    return hmac.new(password.encode("utf-8"), _COOKIE_CONTEXT, hashlib.sha256).hexdigest()


def authenticate(connection: HTTPConnection) -> AdminAuth:
    """
    Check the admin credential on a request or WebSocket.

    Returns:
        AdminAuth.PASSWORD if the query parameter matched,
        AdminAuth.COOKIE if a previously issued cookie matched,
        AdminAuth.DENIED otherwise (always, when no password is configured)
    """
    expected = settings.ADMIN_PASSWORD
    if not expected:
        return AdminAuth.DENIED

    supplied = connection.query_params.get("password")
    if supplied and hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        return AdminAuth.PASSWORD

    cookie = connection.cookies.get(settings.ADMIN_COOKIE_NAME)
    if cookie and hmac.compare_digest(
        cookie.encode("utf-8"), admin_cookie_value(expected).encode("utf-8")
    ):
        return AdminAuth.COOKIE

    return AdminAuth.DENIED


def set_admin_cookie(response: Response) -> None:
    """Issue the admin cookie, valid for ADMIN_COOKIE_MAX_AGE seconds."""
    response.set_cookie(
        key=settings.ADMIN_COOKIE_NAME,
        value=admin_cookie_value(settings.ADMIN_PASSWORD),
        max_age=settings.ADMIN_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )


async def require_admin(request: Request, response: Response) -> AdminAuth:
    """
    FastAPI dependency for the JSON admin API.

    Raises:
        HTTPException 401: If no valid credential was supplied
    """
    auth = authenticate(request)
    if not auth:
        logger.warning(f"Rejected admin API call to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin credential required"
        )

    if auth is AdminAuth.PASSWORD:
        set_admin_cookie(response)
    return auth
