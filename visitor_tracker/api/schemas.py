"""
API Request and Response Schemas

Pydantic models for the HTTP API and the realtime channel.

Design Principles:
- Wire format is camelCase (sessionId, countryCode, ...) for the dashboard JS;
  Python attributes stay snake_case
- VisitorOut is the single serialized form of a visit, shared by the list
  endpoint, the backfill snapshot and the broadcast events
"""

from datetime import datetime, timezone as dt_timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from visitor_tracker.db.models import Visitor


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VisitorOut(CamelModel):
    """Serialized visit record."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    session_id: str
    ip: str
    country: str
    country_code: str
    region: str
    city: str
    zip: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    isp: str
    org: str
    timezone: str
    user_agent: str
    referrer: str
    lookup_source: str
    timestamp: datetime
    updated_at: Optional[datetime] = None

    @field_validator("timestamp", "updated_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite returns the stored UTC times without an offset
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value


def visitor_payload(visitor: Visitor) -> dict:
    """JSON-ready camelCase dict for a Visitor row."""
    return VisitorOut.model_validate(visitor).model_dump(mode="json", by_alias=True)


class VisitorListResponse(CamelModel):
    """Response model for the paginated visitor list."""
    visitors: List[VisitorOut]
    total: int
    page: int
    total_pages: int


class TopEntry(BaseModel):
    name: str
    count: int


class StatsResponse(CamelModel):
    """Response model for the stats summary endpoint."""
    total: int
    recent_count: int
    top_cities: List[TopEntry]
    top_countries: List[TopEntry]
    top_isps: List[TopEntry]


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: int = Field(..., description="Number of visitors removed")


class LocationUpdateRequest(CamelModel):
    """
    Client-side location submitted by the visitor page.

    Coordinates come from the browser's geolocation API, place names from a
    reverse geocoding pass; either half may be missing, but not both.
    """
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )

    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)
    city: Optional[str] = Field(default=None, max_length=100)
    region: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)
    country_code: Optional[str] = Field(default=None, max_length=8)
    zip: Optional[str] = Field(default=None, max_length=20)
    lookup_source: str = Field(default="client", min_length=1, max_length=50)

    @field_validator("city", "region", "country", "country_code", "zip")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @model_validator(mode="after")
    def check_location_present(self) -> "LocationUpdateRequest":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be supplied together")
        if self.lat is None and not (self.city or self.region or self.country):
            raise ValueError("no location fields supplied")
        return self

    def location_fields(self) -> dict:
        return self.model_dump(exclude={"lookup_source"}, exclude_none=True)


class LocationUpdateResponse(BaseModel):
    success: bool
    reason: Optional[str] = None
    visitor: Optional[dict] = None


class ProviderAttemptOut(BaseModel):
    provider: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    raw: Any = None


class DebugResponse(CamelModel):
    """Diagnostic dump for /debug."""
    ip: str
    geo: dict
    providers: List[ProviderAttemptOut]
    store_connected: bool
    visitor_count: Optional[int] = None
