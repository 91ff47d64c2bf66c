"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api import auth, tasks, users
from src.config import get_settings
from src.exceptions import StorageUnavailable
from src.services.task_store import TaskStore, open_task_store

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    logging.basicConfig(level=settings.log_level.upper())

    # A store installed before startup (tests) is initialized but not owned
    store: TaskStore | None = getattr(app.state, "store", None)
    owns_store = store is None
    if owns_store:
        store = await open_task_store(
            settings.database_url, allow_degraded=settings.allow_degraded_storage
        )
        app.state.store = store
    else:
        await store.initialize()
    if not store.persistent:
        logger.warning("Tasks are kept in memory only and will be lost on shutdown")
    yield
    if owns_store:
        store.close()
        del app.state.store


app = FastAPI(
    title="Task Share API",
    description="Personal task lists with sharing between users",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for development
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:8081",
            "http://localhost:19006",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    """Storage failures surface as 503 so clients know to retry later."""
    logger.error(f"Storage unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Task storage is unavailable"},
    )


# Register routers
app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(users.router)


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    store: TaskStore = request.app.state.store
    return {
        "status": "healthy" if store.persistent else "degraded",
        "persistent": store.persistent,
        "environment": settings.environment,
    }
