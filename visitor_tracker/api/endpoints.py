"""
Public Endpoints

Routes reachable by visitors:
- GET /                     serve the page, track the visit in the background
- POST /api/update-location client-side location for the visitor's pending record
- GET /debug                provider and store diagnostics (admin only)

Endpoints stay thin: request parsing, rate limiting and HTTP status codes
here, everything else in services.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import FileResponse, JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from visitor_tracker.api.schemas import (
    DebugResponse,
    LocationUpdateRequest,
    LocationUpdateResponse,
    visitor_payload,
)
from visitor_tracker.core.admin_auth import require_admin
from visitor_tracker.core.exceptions import InvalidLocationUpdateError
from visitor_tracker.core.rate_limit import RATE_LIMITS, limiter
from visitor_tracker.core.setting import settings
from visitor_tracker.core.validators import get_client_ip
from visitor_tracker.db.session import get_session, ping_database
from visitor_tracker.services.background_tasks import track_visit_background
from visitor_tracker.services.broadcaster import LOCATION_UPDATED
from visitor_tracker.services.geo_resolver import GeoResolver, GeoResult, build_providers
from visitor_tracker.services.visit_recorder import VisitRecorderService
from visitor_tracker.services.visitor_service import VisitorService

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_location_update(request: Request) -> LocationUpdateRequest:
    """
    Parse and validate the update-location body.

    Raises:
        InvalidLocationUpdateError: If the body is not JSON or fails validation
    """
    try:
        data = await request.json()
    except ValueError:
        raise InvalidLocationUpdateError("body is not valid JSON")

    try:
        return LocationUpdateRequest.model_validate(data)
    except ValidationError as e:
        raise InvalidLocationUpdateError(e.errors()[0]["msg"])


def _rejected_update(reason: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "reason": reason},
    )


@router.get(
    "/",
    response_class=FileResponse,
    summary="Visitor page",
    description="Serves the visitor page; the visit is recorded after the response is sent"
)
@limiter.limit(RATE_LIMITS["track"])
async def track_visit(
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    background_tasks: BackgroundTasks,
) -> FileResponse:
    """
    Serve the visitor page and schedule tracking.

    The page never waits for geolocation or persistence: both run as a
    background task once the response has been sent.
    """
    client_ip = get_client_ip(request, settings.TRUST_PROXY_HEADERS)
    logger.info(f"Visit from IP: {client_ip}")

    background_tasks.add_task(
        track_visit_background,
        session_factory=request.app.state.session_factory,
        resolver=request.app.state.resolver,
        broadcaster=request.app.state.broadcaster,
        ip=client_ip,
        user_agent=request.headers.get("User-Agent"),
        referrer=request.headers.get("Referer"),
    )

    return FileResponse(settings.STATIC_DIR / "index.html", media_type="text/html")


@router.post(
    "/api/update-location",
    response_model=LocationUpdateResponse,
    summary="Submit client-side location",
    description="Patches the caller's most recent visit whose location is still unknown"
)
@limiter.limit(RATE_LIMITS["update_location"])
async def update_location(
    request: Request,
    session: AsyncSession = Depends(get_session)
):
    """
    Apply a location obtained in the visitor's browser.

    Returns:
        {success: true, visitor} when a pending visit was patched,
        {success: false, reason} otherwise (HTTP 400 for malformed input)
    """
    try:
        body = await read_location_update(request)
    except InvalidLocationUpdateError as e:
        logger.info(f"Rejected location update: {e.reason}")
        return _rejected_update(e.reason)

    client_ip = get_client_ip(request, settings.TRUST_PROXY_HEADERS)
    recorder = VisitRecorderService(session)
    visitor = await recorder.apply_location_update(
        ip=client_ip,
        fields=body.location_fields(),
        lookup_source=body.lookup_source,
        window_seconds=settings.LOCATION_UPDATE_WINDOW_SECONDS,
    )

    if visitor is None:
        logger.info(f"No pending visit to update for {client_ip}")
        return LocationUpdateResponse(success=False, reason="no_pending_record")

    await session.commit()
    payload = visitor_payload(visitor)
    logger.info(
        f"Location updated for visitor {visitor.id} via {body.lookup_source}: "
        f"{visitor.city}, {visitor.country}"
    )
    await request.app.state.broadcaster.broadcast(LOCATION_UPDATED, payload)

    return LocationUpdateResponse(success=True, visitor=payload)


@router.get(
    "/debug",
    response_model=DebugResponse,
    response_model_by_alias=True,
    summary="Tracking diagnostics",
    dependencies=[Depends(require_admin)],
)
@limiter.limit(RATE_LIMITS["debug"])
async def debug(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> DebugResponse:
    """
    Show what the tracker sees for the calling client.

    Queries every provider (not just the first that answers) so a failing
    provider is visible even when the fallback hides it.
    """
    client_ip = get_client_ip(request, settings.TRUST_PROXY_HEADERS)

    resolver = request.app.state.resolver or GeoResolver(
        build_providers(settings.GEO_PROVIDERS),
        request.app.state.http_client,
        timeout=settings.GEO_PROVIDER_TIMEOUT,
    )
    geo: GeoResult = await resolver.resolve(client_ip)
    attempts = await resolver.probe(client_ip)

    store_connected = await ping_database(session)
    visitor_count = await VisitorService(session).count() if store_connected else None

    return DebugResponse(
        ip=client_ip,
        geo=geo.model_dump(),
        providers=[attempt.model_dump(exclude={"location"}) for attempt in attempts],
        store_connected=store_connected,
        visitor_count=visitor_count,
    )
