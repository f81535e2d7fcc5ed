"""TeamTrack FastAPI Backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from teamtrack import config
from teamtrack.routers.projects import projects_router
from teamtrack.routers.planning import planning_router
from teamtrack.routers.tasks import tasks_router
from teamtrack.routers.statistics import statistics_router

from teamtrack.db import connection, migrations
from teamtrack.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("teamtrack")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("TeamTrack backend starting up")
    initialize_observability(app)

    # 1. Initialize DB connection
    db = await connection.get_connection()

    # 2. Run migrations
    await migrations.run_migrations(db)

    yield

    logger.info("TeamTrack backend shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="TeamTrack API",
    description="Project planning and hierarchical progress tracking",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(projects_router)
app.include_router(planning_router)
app.include_router(tasks_router)
app.include_router(statistics_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("teamtrack.main:app", host=config.HOST, port=config.PORT)
