"""
Tests for VisitorService and StatsService.
"""

from datetime import timedelta

import pytest

from conftest import visitor_rows
from visitor_tracker.core.exceptions import VisitorNotFoundError
from visitor_tracker.db.models import Visitor, utcnow
from visitor_tracker.services.stats_service import StatsService
from visitor_tracker.services.visitor_service import VisitorService, page_offset, total_pages


async def seed(session_factory, rows):
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


class TestPagination:

    def test_page_offset(self):
        assert page_offset(1, 50) == 0
        assert page_offset(3, 20) == 40
        assert page_offset(0, 20) == 0

    def test_total_pages(self):
        assert total_pages(0, 50) == 0
        assert total_pages(50, 50) == 1
        assert total_pages(51, 50) == 2


class TestListing:
    """Newest-first listing used by the admin API and the backfill."""

    @pytest.mark.asyncio
    async def test_newest_first(self, session_factory):
        await seed(session_factory, visitor_rows(5))

        async with session_factory() as session:
            visitors, total = await VisitorService(session).list_page(page=1, limit=50)

        assert total == 5
        assert [v.city for v in visitors] == ["City 4", "City 3", "City 2", "City 1", "City 0"]

    @pytest.mark.asyncio
    async def test_second_page_skips_first(self, session_factory):
        await seed(session_factory, visitor_rows(7))

        async with session_factory() as session:
            first, _ = await VisitorService(session).list_page(page=1, limit=3)
            second, total = await VisitorService(session).list_page(page=2, limit=3)
            third, _ = await VisitorService(session).list_page(page=3, limit=3)

        assert total == 7
        assert [v.city for v in second] == ["City 3", "City 2", "City 1"]
        assert [v.city for v in third] == ["City 0"]
        assert not {v.id for v in first} & {v.id for v in second}

    @pytest.mark.asyncio
    async def test_same_timestamp_orders_by_id(self, session_factory):
        moment = utcnow()
        await seed(
            session_factory,
            [Visitor(ip="203.0.113.7", city=f"Tie {n}", timestamp=moment) for n in range(3)],
        )

        async with session_factory() as session:
            visitors = await VisitorService(session).recent()

        assert [v.city for v in visitors] == ["Tie 2", "Tie 1", "Tie 0"]

    @pytest.mark.asyncio
    async def test_recent_is_capped(self, session_factory):
        await seed(session_factory, visitor_rows(60))

        async with session_factory() as session:
            visitors = await VisitorService(session).recent(limit=50)

        assert len(visitors) == 50
        assert visitors[0].city == "City 59"


class TestDeletion:

    @pytest.mark.asyncio
    async def test_delete_one(self, session_factory):
        rows = visitor_rows(3)
        await seed(session_factory, rows)
        target = rows[1].id

        async with session_factory() as session:
            service = VisitorService(session)
            await service.delete_visitor(target)
            await session.commit()

        async with session_factory() as session:
            visitors, total = await VisitorService(session).list_page()

        assert total == 2
        assert target not in [v.id for v in visitors]

    @pytest.mark.asyncio
    async def test_delete_missing(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(VisitorNotFoundError) as exc_info:
                await VisitorService(session).delete_visitor(9999)

        assert exc_info.value.visitor_id == 9999

    @pytest.mark.asyncio
    async def test_delete_all(self, session_factory):
        await seed(session_factory, visitor_rows(4))

        async with session_factory() as session:
            deleted = await VisitorService(session).delete_all()
            await session.commit()

        async with session_factory() as session:
            assert await VisitorService(session).count() == 0

        assert deleted == 4


class TestStats:

    @pytest.mark.asyncio
    async def test_summary(self, session_factory):
        rows = [
            Visitor(ip="203.0.113.1", city="Paris", country="France", isp="Orange"),
            Visitor(ip="203.0.113.2", city="Paris", country="France", isp="Free"),
            Visitor(ip="203.0.113.3", city="Lyon", country="France", isp="Orange"),
            Visitor(
                ip="203.0.113.4",
                city="Berlin",
                country="Germany",
                isp="Orange",
                timestamp=utcnow() - timedelta(days=30),
            ),
        ]
        await seed(session_factory, rows)

        async with session_factory() as session:
            stats = await StatsService(session).get_stats()

        assert stats["total"] == 4
        assert stats["recent_count"] == 3
        assert stats["top_cities"][0] == {"name": "Paris", "count": 2}
        assert stats["top_countries"] == [
            {"name": "France", "count": 3},
            {"name": "Germany", "count": 1},
        ]
        assert stats["top_isps"][0] == {"name": "Orange", "count": 3}

    @pytest.mark.asyncio
    async def test_top_lists_are_capped(self, session_factory):
        await seed(session_factory, visitor_rows(8))

        async with session_factory() as session:
            stats = await StatsService(session).get_stats()

        assert len(stats["top_cities"]) == 5

    @pytest.mark.asyncio
    async def test_empty_store(self, session_factory):
        async with session_factory() as session:
            stats = await StatsService(session).get_stats()

        assert stats == {
            "total": 0,
            "recent_count": 0,
            "top_cities": [],
            "top_countries": [],
            "top_isps": [],
        }
