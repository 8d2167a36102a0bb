"""tierstream FastAPI application.

This is the main application module that:
- Loads and validates configuration
- Configures middleware (CORS) and exception handlers
- Registers the relay and health routes
- Manages application lifespan (shutdown of the key cache HTTP client)

Run with ``uvicorn tierstream.app.main:create_app --factory``.
"""
import logging
import os
import traceback
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tierstream import __version__
from tierstream.app.dependencies import get_app_state, get_request_id, init_app_state
from tierstream.app.schemas import ErrorDetail, ErrorResponse
from tierstream.config.loader import ConfigLoader
from tierstream.config.schema import RelayConfig
from tierstream.core.errors import AuthError, ErrorCode, ValidationError

# Configure structured JSON logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Components are built in ``create_app``; shutdown closes the key cache's
    HTTP client.
    """
    state = get_app_state()
    logger.info(
        f"tierstream started: use_case={state.config.use_case.value} "
        f"route={state.config.route_path} provider={state.config.provider.name}"
    )

    yield

    logger.info("Shutting down tierstream...")
    if state.key_cache:
        await state.key_cache.close()


def load_config(config_path: Optional[str] = None) -> RelayConfig:
    """Load configuration from ``config_path`` or $TIERSTREAM_CONFIG."""
    config_path = config_path or os.getenv("TIERSTREAM_CONFIG", "config.yaml")
    logger.info(f"Loading configuration from {config_path}")
    return ConfigLoader(config_path).load()


def create_app(config: Optional[RelayConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Validated configuration (loaded from $TIERSTREAM_CONFIG if omitted)

    Returns:
        Configured FastAPI application instance.
    """
    config = config or load_config()
    init_app_state(config)

    app = FastAPI(
        title="tierstream",
        version=__version__,
        description=(
            "Authenticated streaming relay: verifies a bearer credential, "
            "resolves the caller's tier, and streams the model's answer "
            "token by token as server-sent events."
        ),
        lifespan=lifespan,
    )

    _configure_cors(app, config.cors_origins)
    _register_exception_handlers(app)
    _register_routes(app, config)

    return app


def _configure_cors(app: FastAPI, cors_origins: List[str]) -> None:
    """Configure CORS middleware."""
    is_production = os.getenv("ENVIRONMENT", "").lower() == "production"
    if "*" in cors_origins and is_production:
        logger.warning(
            "SECURITY WARNING: cors_origins contains '*' in production. "
            "Consider restricting to specific origins."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Access-Tier"],
    )


def _error_response(request: Request, status_code: int, detail: dict, headers: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(**detail), request_id=get_request_id(request))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for pre-stream rejections and unhandled errors."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        """Credential rejected: 401, no stream."""
        return _error_response(
            request,
            exc.status_code,
            exc.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        """Invalid payload: 400, no stream."""
        return _error_response(request, exc.status_code, exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        error_details = traceback.format_exc()
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}\n{error_details}",
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {
                "type": "internal_error",
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "Internal server error",
                "retryable": True,
                "status_code": 500,
            },
        )


def _register_routes(app: FastAPI, config: RelayConfig) -> None:
    """Register all route handlers."""
    from tierstream.app.routes import health, relay

    app.include_router(health.router)
    app.include_router(relay.build_router(config.route_path, config.use_case))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
