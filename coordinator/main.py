from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from coordinator.core.dependencies import build_services
from coordinator.core.state_manager import StateManager, init_state_manager
from coordinator.api import (alerts, devices, events, health, products,
                             projects, recipes, tasks)
from shared.errors import (DependencyNotMet, DeviceTypeMismatch,
                           EntityNotFound, InvalidAlertOperation,
                           InvalidProjectOperation, InvalidTransition,
                           ProductionError)
from contextlib import asynccontextmanager
import logging
import os

# Use LOG_LEVEL from environment, default to INFO
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Errors that conflict with the current state of an entity
CONFLICT_ERRORS = (InvalidTransition, DependencyNotMet, DeviceTypeMismatch,
                   InvalidProjectOperation, InvalidAlertOperation)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Initialize state manager with databases
    database_url = os.getenv("DATABASE_URL")
    redis_url = os.getenv("REDIS_URL")

    if database_url or redis_url:
        logger.info(
            f"Initializing state manager with backends (DB: {bool(database_url)}, Redis: {bool(redis_url)})"
        )
        state = await init_state_manager(database_url=database_url,
                                         redis_url=redis_url)
    else:
        logger.info("Running with in-memory state only")
        state = StateManager()

    app.state.services = build_services(state)
    logger.info("Coordinator started - event WebSocket ready")

    yield

    # Cleanup
    if state.postgres:
        await state.postgres.close()
    if state.redis:
        await state.redis.close()
    logger.info("Coordinator shutting down")


async def production_error_handler(request: Request, exc: ProductionError):
    """Map domain errors to HTTP responses"""
    if isinstance(exc, EntityNotFound):
        status_code = 404
    elif isinstance(exc, CONFLICT_ERRORS):
        status_code = 409
    else:
        status_code = 400
    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code,
                        content={
                            "error": type(exc).__name__,
                            "detail": str(exc)
                        })


app = FastAPI(
    title="Production Orchestrator - Coordinator",
    description="Turns versioned recipes into tracked manufacturing tasks",
    version="0.1.0",
    lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ProductionError, production_error_handler)

# Include routers
app.include_router(health.router)
app.include_router(recipes.router)
app.include_router(products.router)
app.include_router(projects.router)
app.include_router(tasks.router)
app.include_router(devices.router)
app.include_router(alerts.router)
app.include_router(events.router)

if __name__ == "__main__":
    uvicorn.run("coordinator.main:app", host="0.0.0.0", port=8000, reload=True)
