"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from atelier.api.routes import generations
from atelier.core import timezone  # noqa: F401
from atelier.core.config import Settings, configure_logging
from atelier.core.database import setup_db_session
from atelier.services.exceptions import (
    AuthError,
    PersistenceError,
    StudioError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from atelier.services.generation.replicate_client import ReplicateProvider
from atelier.services.storage.supabase_storage import (
    SupabaseClientError,
    SupabaseStorage,
    get_supabase_admin_client,
)
from atelier.uow import create_uow_factory
from atelier.workers.generation_worker import WorkerSignal, run_generation_worker
from atelier.workers.reaper import run_reaper_worker

logger = structlog.get_logger()

_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
)


def create_resilient_worker(
    coro_func,
    session_factory,
    settings,
    worker_name: str,
    shutdown_event: asyncio.Event,
    worker_tasks: set[asyncio.Task],
    restart_delay: float = 1,
):
    """Create a worker with automatic restart on failure.

    Args:
        coro_func: Worker coroutine function (e.g., run_reaper_worker)
        session_factory: Database session factory
        settings: Application settings
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown
        worker_tasks: Live worker tasks; restarted tasks are added here so
            shutdown can cancel whichever task is current
        restart_delay: Seconds to wait before restarting a crashed worker

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """

    def start_task() -> asyncio.Task:
        task = asyncio.create_task(coro_func(session_factory, settings))
        worker_tasks.add(task)
        task.add_done_callback(worker_tasks.discard)
        task.add_done_callback(on_worker_done)
        return task

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=restart_delay,
                exc_info=exc,
            )
        else:
            # Worker loops never return on their own
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=restart_delay,
            )

        async def restart_worker():
            await asyncio.sleep(restart_delay)

            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            start_task()

        asyncio.create_task(restart_worker())

    return start_task()


async def stop_workers(shutdown_event: asyncio.Event, worker_tasks: set[asyncio.Task]) -> None:
    """Signal shutdown, then cancel and await every live worker task."""
    shutdown_event.set()
    tasks = list(worker_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, database session factory, Supabase and
      Replicate clients, start workers
    - Shutdown: Stop workers
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    worker_signal = WorkerSignal()

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.worker_signal = worker_signal

    try:
        supabase = get_supabase_admin_client(settings.supabase_url, settings.supabase_service_key)
    except SupabaseClientError as e:
        # Only reachable in development/test, production settings validation requires both
        logger.warning("startup.supabase_unconfigured", reason=str(e))
        supabase = None
    app.state.supabase = supabase

    shutdown_event = asyncio.Event()
    worker_tasks: set[asyncio.Task] = set()
    create_resilient_worker(
        run_reaper_worker, session_factory, settings, "reaper", shutdown_event, worker_tasks
    )

    if supabase is not None:
        provider = ReplicateProvider(
            api_token=settings.replicate_api_token,
            image_model_basic=settings.replicate_image_model_basic,
            image_model_pro=settings.replicate_image_model_pro,
            video_model=settings.replicate_video_model,
        )
        storage = SupabaseStorage(
            supabase,
            assets_bucket=settings.assets_bucket,
            resources_bucket=settings.resources_bucket,
        )
        create_resilient_worker(
            partial(
                run_generation_worker,
                provider=provider,
                storage=storage,
                signal=worker_signal,
            ),
            session_factory,
            settings,
            "generation",
            shutdown_event,
            worker_tasks,
        )
    else:
        logger.warning("startup.generation_worker_disabled", reason="storage_unconfigured")

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    await stop_workers(shutdown_event, worker_tasks)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error response as {"error": message}."""

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, error_status in _ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code = error_status
                break

        log = logger.error if status_code >= 500 else logger.info
        log(
            "request.failed",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        else:
            message = "Invalid request"
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Atelier Studio API",
        description="Asynchronous image and video generation jobs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(generations.router)  # Router has prefix="/api" in definition

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
