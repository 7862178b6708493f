"""
Fakturo - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fakturo.config import settings
from fakturo.database import init_db, close_db
from fakturo.routers import fx, invoices, time_entries
from fakturo.services.cache_service import close_cache_service, get_cache_service
from fakturo.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Account currency: {settings.account_currency}")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_cache_service()
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Invoice calculation, currency reconciliation and time-entry invoicing",
    version=settings.api_version,
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


# ===========================================
# ROOT ENDPOINTS
# ===========================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    cache = await get_cache_service().health_check()
    return {
        "status": "healthy",
        "cache": cache["status"],
    }


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "invoices": "/api/v1/invoices",
            "time_entries": "/api/v1/time-entries",
            "fx": "/api/v1/fx",
        }
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

app.include_router(invoices.router, prefix="/api/v1")
app.include_router(time_entries.router, prefix="/api/v1")
app.include_router(fx.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
