"""
Database Models for the Visitor Tracker

This module defines the SQLModel schema for:
- Visitor: One row per page load, with request metadata and resolved location

Design Decisions:
- Flat event log: no relationships between rows
- session_id is an opaque per-visit token (not a login session), unique
- Index on timestamp for the newest-first listing and the admin backfill
- Indexes on city/country for the stats aggregation, ip for location updates
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Float, String
from sqlmodel import Column, Field, SQLModel

DEFAULT_PLACE = "Unknown"
DEFAULT_REFERRER = "direct"

# lookup_source values written by the server; clients supply their own
LOOKUP_PENDING = "pending"
LOOKUP_UNRESOLVED = "unresolved"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return str(uuid.uuid4())


class Visitor(SQLModel, table=True):
    """
    A single recorded page visit.

    Fields:
    - id: Auto-incrementing primary key (identity used by the admin API)
    - session_id: Unique token generated per visit, never reused
    - ip / location fields: Defaults to "Unknown" or empty when unresolved
    - user_agent, referrer: Request context ("direct" when no referrer)
    - lookup_source: Provider name, "pending", "unresolved", or the client's source
    - timestamp: Creation time, set once
    - updated_at: Set when a client location update patched the row
    """
    __tablename__ = "visitors"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(
        default_factory=new_session_id,
        sa_column=Column(String(36), nullable=False, unique=True, index=True)
    )
    ip: str = Field(
        default="Unknown",
        sa_column=Column(String(45), nullable=False, index=True)  # IPv6 max length
    )
    country: str = Field(
        default=DEFAULT_PLACE,
        sa_column=Column(String(100), nullable=False, index=True)
    )
    country_code: str = Field(default="", sa_column=Column(String(8), nullable=False))
    region: str = Field(default=DEFAULT_PLACE, sa_column=Column(String(100), nullable=False))
    city: str = Field(
        default=DEFAULT_PLACE,
        sa_column=Column(String(100), nullable=False, index=True)
    )
    zip: str = Field(default="", sa_column=Column(String(20), nullable=False))
    lat: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    lon: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    isp: str = Field(default=DEFAULT_PLACE, sa_column=Column(String(200), nullable=False))
    org: str = Field(default="", sa_column=Column(String(200), nullable=False))
    timezone: str = Field(default="", sa_column=Column(String(64), nullable=False))
    user_agent: str = Field(default="", sa_column=Column(String(500), nullable=False))
    referrer: str = Field(
        default=DEFAULT_REFERRER,
        sa_column=Column(String(1000), nullable=False)
    )
    lookup_source: str = Field(default="", sa_column=Column(String(50), nullable=False))
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @property
    def has_placeholder_location(self) -> bool:
        """True while the row is still waiting for a usable location."""
        return (
            self.lat is None
            or self.city == DEFAULT_PLACE
            or self.lookup_source == LOOKUP_PENDING
        )
