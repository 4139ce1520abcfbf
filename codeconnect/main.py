"""
FastAPI application entry point.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codeconnect import __version__
from codeconnect.api.deps import container
from codeconnect.api.v1 import chat, dashboard, feedback, github, health, jira, models
from codeconnect.core.config import settings
from codeconnect.core.constants import API_PREFIX
from codeconnect.core.exceptions import CodeConnectError
from codeconnect.core.logging import bind_context, clear_context, get_logger, setup_logging
from codeconnect.core.security import generate_request_id

# Initialize logging
setup_logging()
logger = get_logger(__name__)


async def sweep_expired_cache(interval: float) -> None:
    """Periodically drop expired GitHub cache entries."""
    while True:
        await asyncio.sleep(interval)
        container.cache.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting ISC-CodeConnect API",
        app_name=settings.app_name,
        env=settings.app_env,
    )

    await container.startup()
    logger.info("Service container initialized")

    sweeper = asyncio.create_task(sweep_expired_cache(settings.cache.cleanup_interval))

    yield

    # Shutdown
    logger.info("Shutting down ISC-CodeConnect API")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await container.shutdown()


# Create FastAPI application
app = FastAPI(
    title="ISC-CodeConnect API",
    description="Chat assistant, feedback, Jira, GitHub analytics and admin dashboards for ISC-CodeConnect",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next: Any) -> Any:
    clear_context()
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    bind_context(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Exception handlers
@app.exception_handler(CodeConnectError)
async def codeconnect_error_handler(
    request: Request,
    exc: CodeConnectError,
) -> JSONResponse:
    """Client errors are logged as warnings, upstream and server errors as errors."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        error_code=exc.code,
        error_message=exc.message,
        status_code=exc.status_code,
        method=request.method,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(chat.router, prefix=API_PREFIX, tags=["Chat"])
app.include_router(feedback.router, prefix=API_PREFIX, tags=["Feedback"])
app.include_router(jira.router, prefix=API_PREFIX, tags=["Jira"])
app.include_router(github.router, prefix=API_PREFIX, tags=["GitHub"])
app.include_router(dashboard.router, prefix=API_PREFIX, tags=["Dashboard"])
app.include_router(models.router, prefix=API_PREFIX, tags=["Models"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "ISC-CodeConnect API",
        "version": __version__,
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "chat": f"{API_PREFIX}/chat",
            "feedback": f"{API_PREFIX}/feedback",
            "vote": f"{API_PREFIX}/vote",
            "jira": f"{API_PREFIX}/jira",
            "github": f"{API_PREFIX}/github",
            "dashboard": f"{API_PREFIX}/dashboard",
            "models": f"{API_PREFIX}/models",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "codeconnect.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
