"""FastAPI application with lifespan, health and scheduler endpoints."""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.db.base import init_models
from knowledge_pipeline.logging_config import configure_logging
from knowledge_pipeline.pipeline.scheduler import collect_stats, run_scheduled_cycle
from knowledge_pipeline.router import get_services
from knowledge_pipeline.router import router as pipeline_router
from knowledge_pipeline.services import Services, build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: configure logging, build collaborators, create tables."""
    settings = get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings)
    await init_models(services.engine)
    app.state.settings = settings
    app.state.services = services
    yield
    await services.aclose()


app = FastAPI(
    title="Knowledge Pipeline",
    lifespan=lifespan,
)
app.include_router(pipeline_router)


async def verify_scheduler(request: Request) -> None:
    """Verify the scheduler secret header for protected endpoints.

    Compares the X-Scheduler-Secret header against the configured secret.
    Raises HTTPException 403 if the header is missing, empty, or mismatched.
    """
    settings = get_settings()
    secret = request.headers.get("X-Scheduler-Secret", "")
    if not settings.scheduler_secret or secret != settings.scheduler_secret:
        raise HTTPException(status_code=403, detail="Invalid scheduler secret")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "knowledge-pipeline",
        "version": "0.1.0",
    }


@app.post("/cron/run")
async def cron_run(
    _: None = Depends(verify_scheduler), services: Services = Depends(get_services)
):
    """Run one scheduled cycle: Notion sync sweep, then queue processing."""
    return await run_scheduled_cycle(services)


@app.get("/cron/stats")
async def cron_stats(
    _: None = Depends(verify_scheduler), services: Services = Depends(get_services)
):
    """Sync and queue stats without running anything."""
    return {"success": True, "stats": await collect_stats(services)}


@app.post("/queue/retry-failed")
async def retry_failed(
    _: None = Depends(verify_scheduler), services: Services = Depends(get_services)
):
    """Re-queue failed generation entries with a fresh retry budget."""
    requeued = await services.queue.retry_failed_entries()
    return {"requeued": requeued}
