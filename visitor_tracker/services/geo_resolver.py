"""
Geolocation Resolver

Maps a visitor IP to an approximate location using free public geolocation
APIs, tried one after another.

Design Decisions:
- Each API is a LocationProvider with the same contract: IP in, GeoLocation
  out, GeoProviderError on an unusable answer
- Providers are tried in order; the first well-formed positive answer wins
- Every attempt is bounded by a timeout; timeouts, network errors and bad
  answers all fall through to the next provider
- resolve() never raises: exhaustion (or a private/loopback IP) gives an
  explicit unresolved result, and callers carry on with unknown location
- No caching, no backoff: free-tier APIs are unreliable individually, the
  fallback chain is what buys availability
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Type

import httpx
from pydantic import BaseModel

from visitor_tracker.core.exceptions import GeoProviderError
from visitor_tracker.core.validators import is_public_ip
from visitor_tracker.db.models import DEFAULT_PLACE

logger = logging.getLogger(__name__)


class GeoLocation(BaseModel):
    """Provider-independent location, with the same defaults as the Visitor row."""
    ip: str
    country: str = DEFAULT_PLACE
    country_code: str = ""
    region: str = DEFAULT_PLACE
    city: str = DEFAULT_PLACE
    zip: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None
    isp: str = DEFAULT_PLACE
    org: str = ""
    timezone: str = ""


class GeoResult(BaseModel):
    """
    Outcome of a resolution.

    resolved is True exactly when both provider and location are set.
    """
    ip: str
    resolved: bool = False
    provider: Optional[str] = None
    location: Optional[GeoLocation] = None

    @classmethod
    def unresolved(cls, ip: str) -> "GeoResult":
        return cls(ip=ip)

    @classmethod
    def from_location(cls, provider: str, location: GeoLocation) -> "GeoResult":
        return cls(ip=location.ip, resolved=True, provider=provider, location=location)


class ProviderAttempt(BaseModel):
    """Diagnostic record of a single provider call."""
    provider: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    raw: Any = None
    location: Optional[GeoLocation] = None


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def _coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class LocationProvider(ABC):
    """
    Base class for a geolocation API.

    Subclasses describe where to ask and how to read the answer; the HTTP
    call and the response checks shared by every API live here.
    """

    name: str = ""

    @abstractmethod
    def build_url(self, ip: str) -> str:
        """URL to query for the given IP."""

    @abstractmethod
    def parse(self, ip: str, data: Dict[str, Any]) -> GeoLocation:
        """
        Normalize a decoded JSON body.

        Raises:
            GeoProviderError: If the body reports failure or lacks a country
        """

    async def fetch(self, client: httpx.AsyncClient, ip: str, timeout: float) -> httpx.Response:
        return await client.get(self.build_url(ip), timeout=timeout)

    def decode(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code != 200:
            raise GeoProviderError(self.name, f"HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            raise GeoProviderError(self.name, "response is not JSON")
        if not isinstance(data, dict):
            raise GeoProviderError(self.name, "response is not a JSON object")
        return data

    async def lookup(self, client: httpx.AsyncClient, ip: str, timeout: float) -> GeoLocation:
        """
        Resolve a single IP with this provider.

        The whole attempt (connect, read, decode) is bounded by timeout.
        """
        response = await asyncio.wait_for(self.fetch(client, ip, timeout), timeout=timeout)
        return self.parse(ip, self.decode(response))

    def _require_country(self, country: str) -> str:
        if not country:
            raise GeoProviderError(self.name, "response has no country")
        return country


class IpApiProvider(LocationProvider):
    """ip-api.com, free tier (HTTP only, 45 requests/minute)."""

    name = "ip-api.com"
    FIELDS = "status,message,country,countryCode,region,regionName,city,zip,lat,lon,isp,org,timezone,query"

    def build_url(self, ip: str) -> str:
        return f"http://ip-api.com/json/{ip}?fields={self.FIELDS}"

    def parse(self, ip: str, data: Dict[str, Any]) -> GeoLocation:
        if data.get("status") != "success":
            raise GeoProviderError(self.name, _text(data.get("message"), "status is not success"))

        return GeoLocation(
            ip=_text(data.get("query"), ip),
            country=self._require_country(_text(data.get("country"))),
            country_code=_text(data.get("countryCode")),
            region=_text(data.get("regionName"), DEFAULT_PLACE),
            city=_text(data.get("city"), DEFAULT_PLACE),
            zip=_text(data.get("zip")),
            lat=_coordinate(data.get("lat")),
            lon=_coordinate(data.get("lon")),
            isp=_text(data.get("isp"), DEFAULT_PLACE),
            org=_text(data.get("org")),
            timezone=_text(data.get("timezone")),
        )


class FreeIpApiProvider(LocationProvider):
    """freeipapi.com JSON API."""

    name = "freeipapi.com"

    def build_url(self, ip: str) -> str:
        return f"https://freeipapi.com/api/json/{ip}"

    def parse(self, ip: str, data: Dict[str, Any]) -> GeoLocation:
        if not data.get("ipAddress"):
            raise GeoProviderError(self.name, "response has no ipAddress")

        time_zones = data.get("timeZones") or []
        timezone = data.get("timeZone") or (time_zones[0] if time_zones else "")
        organization = _text(data.get("asnOrganization"))

        return GeoLocation(
            ip=_text(data.get("ipAddress"), ip),
            country=self._require_country(_text(data.get("countryName"))),
            country_code=_text(data.get("countryCode")),
            region=_text(data.get("regionName"), DEFAULT_PLACE),
            city=_text(data.get("cityName"), DEFAULT_PLACE),
            zip=_text(data.get("zipCode")),
            lat=_coordinate(data.get("latitude")),
            lon=_coordinate(data.get("longitude")),
            isp=organization or DEFAULT_PLACE,
            org=organization,
            timezone=_text(timezone),
        )


class IpWhoIsProvider(LocationProvider):
    """ipwho.is JSON API."""

    name = "ipwho.is"

    def build_url(self, ip: str) -> str:
        return f"https://ipwho.is/{ip}"

    def parse(self, ip: str, data: Dict[str, Any]) -> GeoLocation:
        if data.get("success") is not True:
            raise GeoProviderError(self.name, _text(data.get("message"), "success is not true"))

        connection = data.get("connection") or {}
        timezone = data.get("timezone") or {}
        if isinstance(timezone, dict):
            timezone = timezone.get("id")

        return GeoLocation(
            ip=_text(data.get("ip"), ip),
            country=self._require_country(_text(data.get("country"))),
            country_code=_text(data.get("country_code")),
            region=_text(data.get("region"), DEFAULT_PLACE),
            city=_text(data.get("city"), DEFAULT_PLACE),
            zip=_text(data.get("postal")),
            lat=_coordinate(data.get("latitude")),
            lon=_coordinate(data.get("longitude")),
            isp=_text(connection.get("isp"), DEFAULT_PLACE),
            org=_text(connection.get("org")),
            timezone=_text(timezone),
        )


PROVIDERS: Dict[str, Type[LocationProvider]] = {
    provider.name: provider
    for provider in (IpApiProvider, FreeIpApiProvider, IpWhoIsProvider)
}


def build_providers(names: Sequence[str]) -> List[LocationProvider]:
    """
    Instantiate providers by name, preserving order.

    Raises:
        ValueError: If a name is not a known provider
    """
    unknown = [name for name in names if name not in PROVIDERS]
    if unknown:
        raise ValueError(
            f"Unknown geolocation provider(s): {', '.join(unknown)}. "
            f"Available: {', '.join(PROVIDERS)}"
        )
    return [PROVIDERS[name]() for name in names]


class GeoResolver:
    """
    Ordered fallback over a list of LocationProviders.

    The HTTP client is shared and owned by the caller (created on startup,
    closed on shutdown).
    """

    def __init__(
        self,
        providers: Sequence[LocationProvider],
        client: httpx.AsyncClient,
        timeout: float = 5.0,
    ):
        self.providers = list(providers)
        self.client = client
        self.timeout = timeout

    async def resolve(self, ip: str) -> GeoResult:
        """
        Resolve an IP to a location.

        Returns:
            GeoResult with resolved=True and the first provider's location,
            or GeoResult.unresolved(ip) if every provider failed or the IP
            is not publicly routable
        """
        if not is_public_ip(ip):
            logger.info(f"Skipping geolocation for non-public IP {ip}")
            return GeoResult.unresolved(ip)

        for provider in self.providers:
            try:
                location = await provider.lookup(self.client, ip, self.timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException):
                logger.warning(f"{provider.name} timed out after {self.timeout}s for {ip}")
                continue
            except httpx.HTTPError as e:
                logger.warning(f"{provider.name} request failed for {ip}: {e!r}")
                continue
            except GeoProviderError as e:
                logger.warning(f"{provider.name} gave no usable answer for {ip}: {e.reason}")
                continue
            except Exception:
                logger.error(f"{provider.name} lookup crashed for {ip}", exc_info=True)
                continue

            logger.info(
                f"{provider.name} resolved {ip} -> {location.city}, {location.country}"
            )
            return GeoResult.from_location(provider.name, location)

        logger.warning(f"All geolocation providers failed for {ip}")
        return GeoResult.unresolved(ip)

    async def probe(self, ip: str) -> List[ProviderAttempt]:
        """
        Query every provider and report what each one returned.

        Diagnostic counterpart of resolve(): it does not stop at the first
        success and keeps raw bodies.
        """
        attempts = []
        for provider in self.providers:
            attempt = ProviderAttempt(provider=provider.name, ok=False)
            try:
                response = await asyncio.wait_for(
                    provider.fetch(self.client, ip, self.timeout), timeout=self.timeout
                )
                attempt.status_code = response.status_code
                data = provider.decode(response)
                attempt.raw = data
                attempt.location = provider.parse(ip, data)
                attempt.ok = True
            except (asyncio.TimeoutError, httpx.TimeoutException):
                attempt.error = f"timed out after {self.timeout}s"
            except httpx.HTTPError as e:
                attempt.error = repr(e)
            except GeoProviderError as e:
                attempt.error = e.reason
            except Exception as e:
                logger.error(f"{provider.name} probe crashed for {ip}", exc_info=True)
                attempt.error = repr(e)
            attempts.append(attempt)
        return attempts
