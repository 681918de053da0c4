"""FastAPI application for policyvault.

Wires together the record store, the ingestion coordinator, the restart
supervisor task, and the API routes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from policyvault.config import Settings
from policyvault.db.repositories import PolicyRepo, RecordStore, ScheduledMessageRepo
from policyvault.db.sqlite import SQLiteDB
from policyvault.ingestion.coordinator import IngestionCoordinator
from policyvault.ingestion.worker import IngestionWorker
from policyvault.security import secure_directory, secure_file
from policyvault.supervisor import RestartSupervisor, get_sampler

logger = logging.getLogger(__name__)

settings = Settings()


def build_supervisor(settings: Settings) -> RestartSupervisor:
    """Create the restart supervisor from settings."""
    return RestartSupervisor(
        threshold=settings.LOAD_THRESHOLD,
        interval=settings.LOAD_SAMPLE_INTERVAL_SECONDS,
        grace_delay=settings.RESTART_GRACE_SECONDS,
        sampler=get_sampler(settings.LOAD_METRIC),
        spawn_attempts=settings.RESTART_SPAWN_ATTEMPTS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Opens the database, builds the coordinator and starts the restart
    supervisor on startup; stops the supervisor and closes the database
    on shutdown.
    """
    # Ensure the data directory exists with proper permissions
    data_dir = Path(settings.DATABASE_DIR)
    secure_directory(data_dir)

    db_path = str(data_dir / "policyvault.db")
    db = SQLiteDB(db_path)
    secure_file(Path(db_path))

    record_store = RecordStore(db)
    worker = IngestionWorker(
        start_method=settings.WORKER_START_METHOD,
        timeout=settings.INGESTION_TIMEOUT_SECONDS,
    )

    # Store on app.state for access in routes
    app.state.settings = settings
    app.state.db = db
    app.state.record_store = record_store
    app.state.policy_repo = PolicyRepo(db)
    app.state.message_repo = ScheduledMessageRepo(db)
    app.state.coordinator = IngestionCoordinator(
        record_store,
        worker,
        max_concurrent=settings.MAX_CONCURRENT_INGESTIONS,
    )

    supervisor_task: asyncio.Task[None] | None = None
    if settings.SUPERVISOR_ENABLED:
        app.state.supervisor = build_supervisor(settings)
        supervisor_task = asyncio.create_task(app.state.supervisor.run())
    else:
        app.state.supervisor = None

    yield

    # Shutdown: stop sampling and close the connection
    try:
        if supervisor_task is not None:
            supervisor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await supervisor_task
    finally:
        db.close()


app = FastAPI(
    title="Policyvault",
    description="Policy spreadsheet ingestion and lookup service",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware using Settings.FRONTEND_URL
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from policyvault.api.routes import router as api_router

app.include_router(api_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
