"""
Admission API - Main FastAPI application.

Virtual queues and ticket check-in for live attractions.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from admission.config import get_settings
from admission.database import engine, init_db
from admission.exception_handlers import register_exception_handlers
from admission.logger import setup_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Startup
    setup_logging()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    await init_db()
    logger.info("Database initialized.")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Virtual queue and ticket check-in for live attractions",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware - allow the staff console and guest site to connect
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Staff console dev
        "http://localhost:3001",  # Guest site dev
        settings.public_base_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "app": settings.app_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


# Routers
from admission.routers import check_in, orders, public, queue  # noqa: E402

STAFF_PREFIX = "/api/organizations/{org_id}/attractions/{attraction_id}"

app.include_router(queue.router, prefix=f"{STAFF_PREFIX}/queue", tags=["Queue"])
app.include_router(check_in.router, prefix=STAFF_PREFIX, tags=["Check-in"])
app.include_router(orders.router, prefix="/api/organizations/{org_id}/orders", tags=["Orders"])
app.include_router(public.router, prefix="/api/attractions/{slug}/queue", tags=["Public Queue"])
