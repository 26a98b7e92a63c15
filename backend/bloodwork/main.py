"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from bloodwork.config import settings
from bloodwork.routes import admin_reference, ai, bloodvalues, reference, shares, tokens, user
from bloodwork.services.catalog_store import get_catalog
from bloodwork.services.doctor import get_doctor_service

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the reference catalog on startup; close the LLM client on shutdown."""
    catalog = get_catalog()
    logger.info("Reference catalog ready: %d values, revision %s", len(catalog.values), catalog.revision)

    yield

    if get_doctor_service.cache_info().currsize:
        await get_doctor_service().close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Health data: never let intermediaries cache API responses
        if request.url.path.startswith("/api"):
            response.headers.setdefault("Cache-Control", "no-store")
        return response


app = FastAPI(
    title="Bloodwork",
    description="Personal blood test tracker with reference ranges and an AI doctor",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(SecurityHeadersMiddleware)

_cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "If-Match"],
    expose_headers=["ETag", "Content-Disposition"],
)

app.include_router(reference.router, prefix="/api")
app.include_router(admin_reference.router, prefix="/api")
app.include_router(bloodvalues.router, prefix="/api")
app.include_router(user.router, prefix="/api")
app.include_router(tokens.router, prefix="/api")
app.include_router(shares.router, prefix="/api")
app.include_router(ai.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "Bloodwork API",
        "version": "0.1.0",
        "docs": "/docs",
    }
