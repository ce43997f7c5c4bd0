import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shortlink_app.config import settings
from shortlink_app.database.connection import engine, Base
from shortlink_app.api.errors import register_exception_handlers
from shortlink_app.api.v1 import analytics, links, redirect
from shortlink_app.dependencies import get_access_log_storage, get_access_recorder, get_queue
from shortlink_app.log_processor.access_log_worker import AccessLogWorker
from shortlink_app.logging_config import setup_logging

# Import models to ensure they're registered with Base
from shortlink_app.models import Link, Schedule, PasswordProtection, AccessLog  # noqa: F401

setup_logging(settings.log_level, json_format=settings.log_format == "json")
logger = logging.getLogger("shortlink_app.main")

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the access log worker next to the API when configured to"""
    worker_task = None
    worker = None
    if settings.embedded_worker:
        worker = AccessLogWorker(queue=get_queue(), storage=get_access_log_storage())
        worker_task = asyncio.create_task(worker.start())
        logger.info("Embedded access log worker started")

    yield

    # Let in-flight access recordings reach the queue before stopping
    await get_access_recorder().drain()
    if worker_task is not None:
        worker.stop()
        await worker.drain()
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass
        logger.info("Embedded access log worker stopped after %d events", worker.processed_count)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Link shortener with scheduled targets, password gates and access analytics",
    debug=settings.debug,
    lifespan=lifespan
)
register_exception_handlers(app)


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(links.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
# Catch-all /{short_code} goes last
app.include_router(redirect.router)
