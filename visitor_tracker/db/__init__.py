"""
Database module.

This module provides:
- Visitor: the SQLModel table of recorded visits
- Engine and session factory construction for the visitor store
- get_session: FastAPI dependency yielding a session from app.state
"""

from visitor_tracker.db.models import Visitor
from visitor_tracker.db.session import (
    async_session_maker,
    build_engine,
    build_session_factory,
    engine,
    get_session,
    init_database,
)

__all__ = [
    "Visitor",
    "async_session_maker",
    "build_engine",
    "build_session_factory",
    "engine",
    "get_session",
    "init_database",
]
