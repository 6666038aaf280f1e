"""
FastAPI application for the humanizer API.

This module sets up the main FastAPI app with routes, middleware,
and startup/shutdown of the queue and the optional in-process worker.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from humanizer import __version__
from humanizer.config import config
from humanizer.jobs.queue import get_queue, close_queue
from humanizer.jobs.worker import start_humanize_worker, stop_humanize_worker
from humanizer.routes.admin import router as admin_router
from humanizer.routes.humanize import router as humanize_router
from humanizer.utils.logging import api_logger, configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the queue on startup and release it on shutdown."""
    configure_logging(config.LOG_LEVEL)
    print("=" * 60)
    print("Humanizer API Starting...")
    print("=" * 60)
    print(f"  Environment: {config.ENVIRONMENT}")
    print(f"  Job store: {config.JOB_STORE}")
    print(f"  Dev mode: {config.DEV_MODE}")

    try:
        await get_queue()
        print("  ✓ Queue initialized")
    except Exception as e:
        # Keep serving /health so the deployment can report the problem
        api_logger.critical(f"Queue initialization failed: {e}")

    if config.ENABLE_QUEUE_WORKER:
        try:
            worker = await start_humanize_worker()
            print(f"  ✓ In-process worker started ({worker.worker_id})")
        except Exception as e:
            api_logger.error(f"Error starting in-process worker: {e}")

    yield

    print("\nHumanizer API Shutting Down...")
    await stop_humanize_worker(config.WORKER_SHUTDOWN_GRACE_SECONDS)
    await close_queue()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Humanizer API",
        description="Queued text humanization with background workers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(humanize_router)
    app.include_router(admin_router)

    @app.get("/api")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Humanizer API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs",
            "endpoints": {
                "queue": "POST /api/humanize/queue",
                "status": "GET /api/humanize/status/{request_id}",
                "requests": "GET /api/humanize/requests",
                "retry": "POST /api/humanize/retry/{request_id}",
                "legacy_humanize": "POST /api/humanize/humanize",
                "queue_stats": "GET /api/humanize/queue-stats",
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint - must be fast and never fail."""
        return {"status": "healthy", "job_store": config.JOB_STORE}

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        api_logger.error(f"Unhandled error on {request.url.path}: {exc}", error_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    return app


app = create_app()
