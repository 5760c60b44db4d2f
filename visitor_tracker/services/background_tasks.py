"""
Background Task Helpers

The record-and-broadcast sequence that runs after the visitor page has been
sent. Background tasks cannot use the endpoint's session as it's closed after
the endpoint returns, so each task opens its own from the session factory it
is handed.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from visitor_tracker.api.schemas import visitor_payload
from visitor_tracker.services.broadcaster import NEW_VISITOR, Broadcaster
from visitor_tracker.services.geo_resolver import GeoResolver
from visitor_tracker.services.visit_recorder import VisitRecorderService

logger = logging.getLogger(__name__)


async def track_visit_background(
    session_factory: async_sessionmaker,
    resolver: Optional[GeoResolver],
    broadcaster: Broadcaster,
    ip: str,
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
) -> Optional[dict]:
    """
    Background task: resolve location, save the visit, notify admins.

    Args:
        session_factory: Store handle used to open a fresh session
        resolver: Geo resolver, or None to save a pending visit without lookup
        broadcaster: Admin fan-out
        ip: Client IP
        user_agent: User agent string (optional)
        referrer: Referer header (optional)

    Returns:
        The broadcast payload, or None if the visit could not be saved
    """
    try:
        geo = await resolver.resolve(ip) if resolver is not None else None

        async with session_factory() as session:
            recorder = VisitRecorderService(session)
            visitor = await recorder.record_visit(
                ip=ip,
                geo=geo,
                user_agent=user_agent,
                referrer=referrer,
            )
            await session.commit()
            payload = visitor_payload(visitor)
    except Exception as e:
        logger.error(
            f"Failed to record visit from {ip}: {str(e)}",
            exc_info=True,
            extra={"client_ip": ip},
        )
        return None

    logger.info(
        f"Saved visitor {payload['id']} | {payload['city']}, {payload['country']}",
        extra={"client_ip": ip, "session_id": payload["sessionId"]},
    )
    await broadcaster.broadcast(NEW_VISITOR, payload)
    return payload
