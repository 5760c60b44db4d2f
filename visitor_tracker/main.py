"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- Routers: visitor tracking, admin API, realtime channel
- Middleware (logging, CORS, rate limiting)
- Static assets under /static
- Startup/shutdown of the store, resolver and broadcaster
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from visitor_tracker.api import admin, endpoints, realtime
from visitor_tracker.core.rate_limit import limiter
from visitor_tracker.core.service_manager import initialize_services, shutdown_services
from visitor_tracker.core.setting import settings
from visitor_tracker.middleware.logging import add_logging_middleware, configure_logging

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="Visitor Tracker",
    description="Records page visits with IP geolocation and streams them to an admin dashboard",
    version="1.0.0",
    docs_url="/docs" if settings.api_docs_enabled else None,
    redoc_url="/redoc" if settings.api_docs_enabled else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe."""
    return {"status": "healthy"}


app.include_router(endpoints.router, tags=["Tracking"])
app.include_router(admin.router, tags=["Admin"])
app.include_router(admin.api_router, tags=["Admin"])
app.include_router(realtime.router, tags=["Realtime"])

app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")


@app.on_event("startup")
async def startup_event():
    """Connect the store (fail fast) and create shared services."""
    await initialize_services(app, settings)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    await shutdown_services(app)
