"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from link_engine.api.deps import get_link_engine
from link_engine.api.routes import brands, imports, links, refresh
from link_engine.config import settings
from link_engine.db.models import Base
from link_engine.db.session import engine
from link_engine.logging_config import setup_logging
from link_engine.worker.scheduler import setup_scheduler
from link_engine.worker.tasks import task_runner

setup_logging()
logger = logging.getLogger(__name__)

# Global scheduler
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global scheduler

    logger.info("Starting link engine...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    link_engine = get_link_engine()
    task_runner.bind(link_engine)

    scheduler = setup_scheduler()
    scheduler.start()
    logger.info("Scheduler started")

    yield

    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()

    await link_engine.close()
    await engine.dispose()

    logger.info("Shutdown complete")


app = FastAPI(
    title="Link Engine",
    description="Resolve email slices to verified brand destination URLs",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

app.include_router(links.router)
app.include_router(brands.router)
app.include_router(imports.router)
app.include_router(refresh.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "link_engine.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
