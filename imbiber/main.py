"""
Book Imbiber - FastAPI Application Entry Point

A service that tracks followed authors and notifies about their new releases.
"""

from imbiber.logging_config import setup_logging

setup_logging()

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from imbiber.config import StaticConfig
from imbiber.db import async_session, init_db
from imbiber.exceptions import AlreadyFollowingError, InvalidInputError, NotFoundError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    StaticConfig.ensure_data_dir()
    await init_db()

    # Initialize configuration from database (or seed defaults on first run)
    from imbiber.config_store import ensure_config

    async with async_session() as session:
        await ensure_config(session)

    from imbiber.services import ServiceContext

    app.state.services = ServiceContext.build(async_session)

    # Import and start scheduler after DB and config are ready
    from imbiber.scheduler import start_scheduler

    start_scheduler(app.state.services)

    yield

    # Shutdown
    from imbiber.scheduler import shutdown_scheduler

    shutdown_scheduler()
    app.state.services.close()


app = FastAPI(
    title=StaticConfig.APP_NAME,
    description="Follow authors and receive push notifications about their new releases",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"detail": exc.message, **exc.details})


@app.exception_handler(AlreadyFollowingError)
async def already_following_handler(request: Request, exc: AlreadyFollowingError):
    return JSONResponse(status_code=409, content={"detail": exc.message, **exc.details})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


# Health check endpoint
@app.get("/healthz")
async def healthz():
    """Health check endpoint."""
    return {"status": "ok", "app": StaticConfig.APP_NAME}


# Import and include routers
from imbiber.web.api import router as api_router

app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(
        "imbiber.main:app",
        host="0.0.0.0",
        port=8000,
        reload=StaticConfig.DEBUG,
        log_config=None,  # keep app-controlled logging config
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
