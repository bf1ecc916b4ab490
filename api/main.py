"""LinkUp client API service.

Runs the chat client core in-process and exposes it over HTTP, so a thin
UI (or a test) can drive sign-in, the chat list and conversations.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.models import HealthResponse
from api.routers import (
    chats as chats_router,
    conversations as conversations_router,
    session as session_router,
    settings as settings_router,
    users as users_router,
)
from api.runtime import ClientRuntime, build_runtime
from linkup.common.errors import (
    AuthError,
    AuthErrorKind,
    LinkUpError,
    NotAuthenticatedError,
    NotFoundError,
    SubscriptionInterrupted,
    UploadFailure,
    ValidationError,
    WriteConflict,
)
from linkup.common.logging import configure_logging
from linkup.common.settings import get_settings

logger = structlog.get_logger(__name__)

_AUTH_STATUS = {
    AuthErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.EMAIL_IN_USE: status.HTTP_409_CONFLICT,
    AuthErrorKind.NETWORK_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    AuthErrorKind.UNKNOWN: status.HTTP_502_BAD_GATEWAY,
}


def status_for(error: LinkUpError) -> int:
    if isinstance(error, AuthError):
        return _AUTH_STATUS[error.kind]
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NotAuthenticatedError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, WriteConflict):
        return status.HTTP_409_CONFLICT
    if isinstance(error, (UploadFailure, SubscriptionInterrupted)):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(runtime: ClientRuntime | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime: A prebuilt runtime. When omitted the lifespan builds one
            from settings and closes it on shutdown.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = runtime is None
        app.state.runtime = runtime if runtime is not None else await build_runtime(settings)
        logger.info("LinkUp API started", app_env=settings.app_env)
        try:
            yield
        finally:
            if owned:
                await app.state.runtime.aclose()
            logger.info("LinkUp API stopped")

    app = FastAPI(
        title="LinkUp Client API",
        description="Chat client core: session gate, chat list and conversations",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    cors_origins = ["*"] if settings.is_development else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False if settings.is_development else True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and structured data."""
        start_time = time.time()
        request_id = f"req_{int(start_time * 1000000)}"
        request.state.request_id = request_id

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise

        logger.info(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(LinkUpError)
    async def linkup_error_handler(request: Request, exc: LinkUpError) -> ORJSONResponse:
        content = {"error_code": exc.error_code, "message": exc.message}
        if isinstance(exc, AuthError):
            content["kind"] = exc.kind.value
        if isinstance(exc, ValidationError):
            content["field"] = exc.field
        code = status_for(exc)
        log = logger.warning if code >= 500 else logger.info
        log("Request rejected", path=request.url.path, error_code=exc.error_code, status_code=code)
        return ORJSONResponse(status_code=code, content=content)

    app.include_router(session_router.router, prefix="/api/v1", tags=["Session"])
    app.include_router(chats_router.router, prefix="/api/v1", tags=["Chats"])
    app.include_router(conversations_router.router, prefix="/api/v1", tags=["Conversations"])
    app.include_router(users_router.router, prefix="/api/v1", tags=["Users"])
    app.include_router(settings_router.router, prefix="/api/v1", tags=["Settings"])

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """Liveness probe. Reports whether the local store has a backend."""
        runtime_ = getattr(request.app.state, "runtime", None)
        local = "connected" if runtime_ is not None and runtime_.local_store.redis is not None else "disabled"
        return HealthResponse(
            status="healthy",
            service="linkup-client",
            version="0.1.0",
            details={"local_store": local},
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
