"""
Visitor Query Service

Read and delete operations behind the admin API and the realtime backfill.

Design Decisions:
- Newest first everywhere: ORDER BY timestamp DESC, id DESC (id breaks ties)
- Offset pagination: page N reads from skip = (N - 1) * limit
- Deletes return what they removed so endpoints can report it
"""

import math
from typing import List, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from visitor_tracker.core.exceptions import DatabaseError, VisitorNotFoundError
from visitor_tracker.db.models import Visitor


def page_offset(page: int, limit: int) -> int:
    """Rows to skip before the given 1-based page."""
    return (max(page, 1) - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class VisitorService:
    """Service for listing, counting and deleting visitors."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _newest_first(self):
        return select(Visitor).order_by(Visitor.timestamp.desc(), Visitor.id.desc())

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Visitor))
        return result.scalar_one()

    async def list_page(self, page: int = 1, limit: int = 50) -> Tuple[List[Visitor], int]:
        """
        One page of visitors, newest first.

        Returns:
            (visitors on the page, total number of visitors)
        """
        statement = self._newest_first().offset(page_offset(page, limit)).limit(limit)
        result = await self.session.execute(statement)
        visitors = list(result.scalars().all())
        return visitors, await self.count()

    async def recent(self, limit: int = 50) -> List[Visitor]:
        """The most recent visitors, newest first (admin backfill)."""
        result = await self.session.execute(self._newest_first().limit(limit))
        return list(result.scalars().all())

    async def delete_visitor(self, visitor_id: int) -> None:
        """
        Delete a single visitor by id.

        Raises:
            VisitorNotFoundError: If no visitor has this id
        """
        visitor = await self.session.get(Visitor, visitor_id)
        if visitor is None:
            raise VisitorNotFoundError(visitor_id)
        await self.session.delete(visitor)
        await self.session.flush()

    async def delete_all(self) -> int:
        """
        Delete every visitor and return how many rows were removed.

        Raises:
            DatabaseError: If the delete statement fails
        """
        try:
            result = await self.session.execute(delete(Visitor))
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to delete visitors", original_error=e)
        return result.rowcount or 0
