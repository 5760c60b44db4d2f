"""
Statistics Service

Summary numbers for the admin dashboard.

Aggregates:
- total visitors
- visitors in the last 7 days
- top 5 cities, countries and ISPs by visit count
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from visitor_tracker.db.models import Visitor, utcnow

RECENT_DAYS = 7
TOP_LIMIT = 5


class StatsService:
    """
    Service for visitor statistics.

    Each top list is a GROUP BY over an indexed column, so the summary stays
    a handful of small queries regardless of table size.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _top(self, column) -> List[dict]:
        visits = func.count(Visitor.id).label("visits")
        statement = (
            select(column, visits)
            .group_by(column)
            .order_by(visits.desc(), column)
            .limit(TOP_LIMIT)
        )
        result = await self.session.execute(statement)
        return [{"name": name, "count": count} for name, count in result.all()]

    async def get_stats(self, now: Optional[datetime] = None) -> dict:
        """
        Get the dashboard summary.

        Returns:
            Dictionary with total, recent_count, top_cities, top_countries, top_isps
        """
        now = now or utcnow()
        since = now - timedelta(days=RECENT_DAYS)

        total = (
            await self.session.execute(select(func.count()).select_from(Visitor))
        ).scalar_one()
        recent_count = (
            await self.session.execute(
                select(func.count()).select_from(Visitor).where(Visitor.timestamp >= since)
            )
        ).scalar_one()

        return {
            "total": total,
            "recent_count": recent_count,
            "top_cities": await self._top(Visitor.city),
            "top_countries": await self._top(Visitor.country),
            "top_isps": await self._top(Visitor.isp),
        }
