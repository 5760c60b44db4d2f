"""
Tests for VisitRecorderService: creating visits and applying client
location updates.
"""

from datetime import timedelta

import pytest

from conftest import visitor_rows
from visitor_tracker.db.models import LOOKUP_PENDING, LOOKUP_UNRESOLVED, Visitor, utcnow
from visitor_tracker.services.geo_resolver import GeoLocation, GeoResult
from visitor_tracker.services.visit_recorder import VisitRecorderService

WINDOW = 600


def resolved(ip: str = "8.8.8.8") -> GeoResult:
    return GeoResult.from_location(
        "ipwho.is",
        GeoLocation(
            ip=ip,
            country="United States",
            country_code="US",
            region="California",
            city="Mountain View",
            lat=37.42,
            lon=-122.08,
            isp="Google LLC",
        ),
    )


class TestRecordVisit:

    @pytest.mark.asyncio
    async def test_resolved_visit(self, session_factory):
        async with session_factory() as session:
            visitor = await VisitRecorderService(session).record_visit(
                ip="8.8.8.8",
                geo=resolved(),
                user_agent="Mozilla/5.0",
                referrer="https://example.com/",
            )
            await session.commit()

        assert visitor.id is not None
        assert visitor.city == "Mountain View"
        assert visitor.country == "United States"
        assert visitor.lookup_source == "ipwho.is"
        assert visitor.user_agent == "Mozilla/5.0"
        assert visitor.referrer == "https://example.com/"

    @pytest.mark.asyncio
    async def test_unresolved_visit_uses_defaults(self, session_factory):
        async with session_factory() as session:
            visitor = await VisitRecorderService(session).record_visit(
                ip="8.8.8.8", geo=GeoResult.unresolved("8.8.8.8")
            )
            await session.commit()

        assert visitor.country == "Unknown"
        assert visitor.city == "Unknown"
        assert visitor.region == "Unknown"
        assert visitor.country_code == ""
        assert visitor.lat is None and visitor.lon is None
        assert visitor.referrer == "direct"
        assert visitor.user_agent == ""
        assert visitor.lookup_source == LOOKUP_UNRESOLVED
        assert visitor.has_placeholder_location

    @pytest.mark.asyncio
    async def test_no_lookup_saves_pending(self, session_factory):
        async with session_factory() as session:
            visitor = await VisitRecorderService(session).record_visit(ip="8.8.8.8")
            await session.commit()

        assert visitor.lookup_source == LOOKUP_PENDING

    @pytest.mark.asyncio
    async def test_session_ids_are_unique(self, session_factory):
        async with session_factory() as session:
            recorder = VisitRecorderService(session)
            visitors = [
                await recorder.record_visit(ip="8.8.8.8", geo=GeoResult.unresolved("8.8.8.8"))
                for _ in range(20)
            ]
            await session.commit()

        assert len({v.session_id for v in visitors}) == 20

    @pytest.mark.asyncio
    async def test_long_user_agent_is_clipped(self, session_factory):
        async with session_factory() as session:
            visitor = await VisitRecorderService(session).record_visit(
                ip="8.8.8.8", user_agent="x" * 2000
            )
            await session.commit()

        assert len(visitor.user_agent) == 500


class TestLocationUpdate:

    @pytest.mark.asyncio
    async def test_patches_latest_placeholder(self, session_factory):
        older, newer = visitor_rows(2, ip="8.8.8.8")
        older.timestamp = utcnow() - timedelta(seconds=60)
        newer.timestamp = utcnow() - timedelta(seconds=10)
        newer.city = "Unknown"

        async with session_factory() as session:
            session.add_all([older, newer])
            await session.commit()
            newer_id, newer_session = newer.id, newer.session_id
            created_at = newer.timestamp

            visitor = await VisitRecorderService(session).apply_location_update(
                ip="8.8.8.8",
                fields={"city": "Paris", "country": "France"},
                lookup_source="reverseGeocoding",
                window_seconds=WINDOW,
            )
            await session.commit()

        assert visitor.id == newer_id
        assert visitor.session_id == newer_session
        assert visitor.city == "Paris"
        assert visitor.country == "France"
        assert visitor.lookup_source == "reverseGeocoding"
        assert visitor.updated_at is not None
        # SQLite hands datetimes back naive
        assert visitor.timestamp.replace(tzinfo=None) == created_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_resolved_rows_are_not_patched(self, session_factory):
        async with session_factory() as session:
            recorder = VisitRecorderService(session)
            await recorder.record_visit(ip="8.8.8.8", geo=resolved())
            await session.commit()

            visitor = await recorder.apply_location_update(
                ip="8.8.8.8",
                fields={"city": "Paris"},
                lookup_source="reverseGeocoding",
                window_seconds=WINDOW,
            )

        assert visitor is None

    @pytest.mark.asyncio
    async def test_other_ip_is_not_patched(self, session_factory):
        async with session_factory() as session:
            recorder = VisitRecorderService(session)
            await recorder.record_visit(ip="8.8.4.4")
            await session.commit()

            visitor = await recorder.apply_location_update(
                ip="8.8.8.8",
                fields={"city": "Paris"},
                lookup_source="reverseGeocoding",
                window_seconds=WINDOW,
            )

        assert visitor is None

    @pytest.mark.asyncio
    async def test_rows_outside_window_are_ignored(self, session_factory):
        stale = Visitor(ip="8.8.8.8", timestamp=utcnow() - timedelta(hours=2))

        async with session_factory() as session:
            session.add(stale)
            await session.commit()

            visitor = await VisitRecorderService(session).apply_location_update(
                ip="8.8.8.8",
                fields={"city": "Paris"},
                lookup_source="reverseGeocoding",
                window_seconds=WINDOW,
            )

        assert visitor is None

    @pytest.mark.asyncio
    async def test_only_supplied_fields_change(self, session_factory):
        async with session_factory() as session:
            recorder = VisitRecorderService(session)
            original = await recorder.record_visit(ip="8.8.8.8", user_agent="UA")
            await session.commit()

            visitor = await recorder.apply_location_update(
                ip="8.8.8.8",
                fields={"lat": 48.85, "lon": 2.35, "city": None},
                lookup_source="browserGeolocation",
                window_seconds=WINDOW,
            )
            await session.commit()

        assert visitor.id == original.id
        assert visitor.lat == 48.85
        assert visitor.lon == 2.35
        assert visitor.city == "Unknown"
        assert visitor.user_agent == "UA"
