"""
Visit Recorder Service

Turns request metadata plus a geolocation result into a persisted Visitor,
and applies client-submitted location updates to pending visits.

Design Decisions:
- Called from background tasks, after the visitor page has been sent
- Commit is handled by the caller (background task or request dependency)
- Location updates patch the newest placeholder row for the IP inside a
  short window; concurrent visits from one IP (shared NAT) can still
  race, the window only narrows it
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from visitor_tracker.core.validators import (
    MAX_REFERRER_LENGTH,
    MAX_USER_AGENT_LENGTH,
    truncate,
)
from visitor_tracker.db.models import (
    DEFAULT_PLACE,
    DEFAULT_REFERRER,
    LOOKUP_PENDING,
    LOOKUP_UNRESOLVED,
    Visitor,
    utcnow,
)
from visitor_tracker.services.geo_resolver import GeoResult

# Visitor columns a client location update may overwrite
LOCATION_FIELDS = ("lat", "lon", "city", "region", "country", "country_code", "zip")


class VisitRecorderService:
    """Creates visit rows and patches their location."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record_visit(
        self,
        ip: str,
        geo: Optional[GeoResult] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> Visitor:
        """
        Build and persist a visit.

        Args:
            ip: Client IP as detected on the request
            geo: Resolver output; None means the lookup was not attempted
                 (pending, awaiting a client update)
            user_agent: User-Agent header
            referrer: Referer header ("direct" when absent)

        Returns:
            The flushed Visitor, with id and session_id assigned
        """
        visitor = Visitor(
            ip=ip,
            user_agent=truncate(user_agent, MAX_USER_AGENT_LENGTH),
            referrer=truncate(referrer, MAX_REFERRER_LENGTH) or DEFAULT_REFERRER,
        )

        if geo is None:
            visitor.lookup_source = LOOKUP_PENDING
        elif geo.resolved:
            location = geo.location
            visitor.country = location.country
            visitor.country_code = location.country_code
            visitor.region = location.region
            visitor.city = location.city
            visitor.zip = location.zip
            visitor.lat = location.lat
            visitor.lon = location.lon
            visitor.isp = location.isp
            visitor.org = location.org
            visitor.timezone = location.timezone
            visitor.lookup_source = geo.provider
        else:
            visitor.lookup_source = LOOKUP_UNRESOLVED

        self.session.add(visitor)
        await self.session.flush()
        await self.session.refresh(visitor)
        return visitor

    async def find_pending_visit(
        self,
        ip: str,
        window_seconds: int,
        now: Optional[datetime] = None,
    ) -> Optional[Visitor]:
        """
        Newest visit from this IP whose location is still a placeholder.

        Only rows created in the last window_seconds are considered.
        """
        now = now or utcnow()
        since = now - timedelta(seconds=window_seconds)

        statement = (
            select(Visitor)
            .where(Visitor.ip == ip)
            .where(Visitor.timestamp >= since)
            .where(
                or_(
                    Visitor.lat.is_(None),
                    Visitor.city == DEFAULT_PLACE,
                    Visitor.lookup_source == LOOKUP_PENDING,
                )
            )
            .order_by(Visitor.timestamp.desc(), Visitor.id.desc())
            .limit(1)
        )
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def apply_location_update(
        self,
        ip: str,
        fields: dict,
        lookup_source: str,
        window_seconds: int,
    ) -> Optional[Visitor]:
        """
        Patch the newest pending visit for an IP with client-side location data.

        Args:
            ip: Client IP of the submitting request
            fields: Subset of LOCATION_FIELDS to overwrite; None values are skipped
            lookup_source: How the client obtained the location
            window_seconds: Maximum age of the row to patch

        Returns:
            The updated Visitor, or None if no pending visit matched
        """
        visitor = await self.find_pending_visit(ip, window_seconds)
        if visitor is None:
            return None

        for name in LOCATION_FIELDS:
            value = fields.get(name)
            if value is not None:
                setattr(visitor, name, value)
        visitor.lookup_source = lookup_source
        visitor.updated_at = utcnow()

        self.session.add(visitor)
        await self.session.flush()
        await self.session.refresh(visitor)
        return visitor
