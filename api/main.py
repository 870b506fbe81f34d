"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, jobs
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
import logging

# Configure logging
setup_logging(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Mass Indexer API",
    description="Progress and status reporting for partitioned mass indexing jobs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(jobs.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Mass Indexer API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Mass Indexer API")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Mass Indexer API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "jobs": "/jobs",
            "job_detail": "/jobs/{job_id}"
        }
    }
