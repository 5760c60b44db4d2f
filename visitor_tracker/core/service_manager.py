"""
Service Lifecycle

Creates the shared collaborators on startup and tears them down on shutdown.

Everything the request handlers and background tasks need is stored on
app.state and passed on explicitly from there:
- session_factory: store handle
- http_client: shared httpx.AsyncClient for the geolocation providers
- resolver: GeoResolver over the configured providers (None when server-side
  lookup is disabled)
- broadcaster: admin fan-out

The store is checked before anything else; if it cannot be reached,
StoreUnavailableError propagates out of the startup hook and the process
stops.
"""

import logging

import httpx
from fastapi import FastAPI

from visitor_tracker.core.exceptions import StoreUnavailableError
from visitor_tracker.core.setting import Settings
from visitor_tracker.db.session import async_session_maker, engine, init_database
from visitor_tracker.services.broadcaster import Broadcaster
from visitor_tracker.services.geo_resolver import GeoResolver, build_providers

logger = logging.getLogger(__name__)


async def initialize_services(app: FastAPI, settings: Settings) -> None:
    """Connect the store and register shared services on app.state."""
    try:
        await init_database(engine, create_tables=settings.AUTO_CREATE_TABLES)
    except Exception as e:
        logger.critical(f"Visitor store unavailable: {str(e)}", exc_info=True)
        raise StoreUnavailableError(settings.DATABASE_URL, original_error=e) from e
    logger.info("Visitor store connected")

    providers = build_providers(settings.GEO_PROVIDERS)
    http_client = httpx.AsyncClient(
        timeout=settings.GEO_PROVIDER_TIMEOUT,
        headers={"Accept": "application/json"},
    )

    app.state.session_factory = async_session_maker
    app.state.http_client = http_client
    app.state.resolver = (
        GeoResolver(providers, http_client, timeout=settings.GEO_PROVIDER_TIMEOUT)
        if settings.SERVER_SIDE_GEOLOOKUP
        else None
    )
    app.state.broadcaster = Broadcaster()

    if not settings.ADMIN_PASSWORD:
        logger.warning("ADMIN_PASSWORD is not set; admin routes will deny every request")

    logger.info(
        f"Services initialized ({settings.ENV_SETTING.value}): providers={[p.name for p in providers]}, "
        f"server_side_geolookup={settings.SERVER_SIDE_GEOLOOKUP}"
    )


async def shutdown_services(app: FastAPI) -> None:
    """Close the HTTP client and dispose of the engine."""
    http_client = getattr(app.state, "http_client", None)
    if http_client is not None:
        try:
            await http_client.aclose()
        except Exception as e:
            logger.warning(f"Failed to close geolocation HTTP client: {e}")
        app.state.http_client = None

    await engine.dispose()
    logger.info("Services shut down")
