"""FastAPI application entry point"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from reelflow.core.config import settings
from reelflow.core.errors import ReelflowError
from reelflow.core.logging import setup_logging
from reelflow.core.middleware import (
    access_log_middleware,
    global_exception_handler,
    reelflow_error_handler,
    setup_cors_middleware,
)
from reelflow.db.session import init_db
from reelflow.models import Base  # noqa: F401 - registers every model with Base.metadata

# Import routers
from reelflow.api import callbacks, tiktok, videos

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    status_task = None
    if settings.STATUS_CHECKER_ENABLED:
        from reelflow.tasks.status_checker import status_checker_task

        status_task = asyncio.create_task(status_checker_task())
        logger.info(f"Status checker started (every {settings.STATUS_CHECKER_INTERVAL}s)")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if status_task is not None:
        status_task.cancel()
        try:
            await status_task
        except asyncio.CancelledError:
            pass


# Create FastAPI app
app = FastAPI(
    title="Reelflow Backend",
    description="AI video generation and TikTok publishing",
    version="1.0.0",
    lifespan=lifespan
)

setup_cors_middleware(app)
app.middleware("http")(access_log_middleware)

app.add_exception_handler(ReelflowError, reelflow_error_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Include routers
app.include_router(videos.router)
app.include_router(tiktok.router)
app.include_router(callbacks.router)


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
