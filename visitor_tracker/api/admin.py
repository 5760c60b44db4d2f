"""
Admin Endpoints

The password-gated dashboard page and the visitor API behind it:
- GET /admin                       dashboard (login form on 401)
- GET /api/visitors                paginated list, newest first
- GET /api/visitors/stats          summary numbers
- DELETE /api/visitors/{id}        delete one visitor
- DELETE /api/visitors             delete every visitor
"""

import html
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from visitor_tracker.api.schemas import (
    DeleteResponse,
    StatsResponse,
    VisitorListResponse,
    VisitorOut,
)
from visitor_tracker.core.admin_auth import AdminAuth, authenticate, require_admin, set_admin_cookie
from visitor_tracker.core.exceptions import DatabaseError, VisitorNotFoundError
from visitor_tracker.core.rate_limit import RATE_LIMITS, limiter
from visitor_tracker.core.setting import settings
from visitor_tracker.db.session import get_session
from visitor_tracker.services.stats_service import StatsService
from visitor_tracker.services.visitor_service import VisitorService, total_pages

logger = logging.getLogger(__name__)

router = APIRouter()
api_router = APIRouter(prefix="/api/visitors", dependencies=[Depends(require_admin)])

LOGIN_FORM = """<!DOCTYPE html>
<html>
  <head>
    <title>Admin Login</title>
    <link rel="stylesheet" href="/static/style.css" />
  </head>
  <body class="login">
    <form method="GET" action="/admin">
      <h2>Admin Login</h2>
      {error}
      <input type="password" name="password" placeholder="Enter admin password" required />
      <button type="submit">Login</button>
    </form>
  </body>
</html>
"""

LOGIN_ERROR = '<p class="error" role="alert">{message}</p>'


def render_login_form(message: str = "") -> str:
    error = LOGIN_ERROR.format(message=html.escape(message)) if message else ""
    return LOGIN_FORM.format(error=error)


@router.get("/admin", include_in_schema=False)
async def admin_page(request: Request):
    """
    Serve the dashboard to an authenticated admin.

    A correct ?password= sets the cookie and redirects to /admin so the
    password does not stay in the address bar; a valid cookie gets the page;
    anything else gets the login form with HTTP 401.
    """
    auth = authenticate(request)

    if auth is AdminAuth.PASSWORD:
        response = RedirectResponse(url="/admin", status_code=status.HTTP_303_SEE_OTHER)
        set_admin_cookie(response)
        logger.info("Admin logged in")
        return response

    if auth is AdminAuth.COOKIE:
        return FileResponse(settings.STATIC_DIR / "admin.html", media_type="text/html")

    message = "Incorrect password" if request.query_params.get("password") else ""
    if message:
        logger.warning(f"Failed admin login from {request.client.host if request.client else 'unknown'}")
    return HTMLResponse(
        content=render_login_form(message),
        status_code=status.HTTP_401_UNAUTHORIZED,
    )


@api_router.get(
    "",
    response_model=VisitorListResponse,
    response_model_by_alias=True,
    summary="List visitors",
)
@limiter.limit(RATE_LIMITS["admin_api"])
async def list_visitors(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> VisitorListResponse:
    """Paginated visitors, newest first; page N starts at (N-1)*limit."""
    visitors, total = await VisitorService(session).list_page(page=page, limit=limit)
    return VisitorListResponse(
        visitors=[VisitorOut.model_validate(visitor) for visitor in visitors],
        total=total,
        page=page,
        total_pages=total_pages(total, limit),
    )


@api_router.get(
    "/stats",
    response_model=StatsResponse,
    response_model_by_alias=True,
    summary="Visitor statistics",
)
@limiter.limit(RATE_LIMITS["admin_api"])
async def visitor_stats(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> StatsResponse:
    stats = await StatsService(session).get_stats()
    return StatsResponse(**stats)


@api_router.delete(
    "/{visitor_id}",
    response_model=DeleteResponse,
    summary="Delete a visitor",
)
@limiter.limit(RATE_LIMITS["admin_api"])
async def delete_visitor(
    visitor_id: int,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> DeleteResponse:
    """
    Delete exactly one visitor.

    Raises:
        HTTPException 404: If no visitor has this id
    """
    try:
        await VisitorService(session).delete_visitor(visitor_id)
    except VisitorNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    logger.info(f"Deleted visitor {visitor_id}")
    return DeleteResponse(deleted=1)


@api_router.delete(
    "",
    response_model=DeleteResponse,
    summary="Delete all visitors",
)
@limiter.limit(RATE_LIMITS["admin_api"])
async def delete_all_visitors(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> DeleteResponse:
    try:
        deleted = await VisitorService(session).delete_all()
    except DatabaseError as e:
        logger.error(f"Delete all failed: {e.original_error!r}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    logger.info(f"Deleted all visitors ({deleted})")
    return DeleteResponse(deleted=deleted)
