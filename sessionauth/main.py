"""Session Auth - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sessionauth.api import auth_router, health_router
from sessionauth.core import init_models, settings, setup_logging
from sessionauth.core.logging import get_logger
from sessionauth.services.blacklist_cleanup import BlacklistCleanupService
from sessionauth.services.errors import AuthError, TokenError, UserNotFoundError
from sessionauth.services.state_store import close_state_store, get_state_store
from sessionauth.services.token_codec import get_token_codec

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(level=settings.log_level, format_type=settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    # Build the signing codec now so a bad key stops startup, not the first login
    get_token_codec()
    get_state_store()

    if settings.debug:
        # Development convenience; deployed databases are migrated out of band
        await init_models()
        logger.info("Database tables ensured (debug mode)")

    cleanup_service = BlacklistCleanupService.get_instance()
    await cleanup_service.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await cleanup_service.stop()
    await close_state_store()


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render authentication failures as ``{"code", "message"}``."""
    headers = None
    if isinstance(exc, (TokenError, UserNotFoundError)):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.error_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.error_code, "message": exc.message},
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures in the same envelope as auth errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "code": "invalid_input",
            "message": f"{location}: {message}" if location else message,
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Kakao OAuth login with rotating session tokens",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Include routers
    app.include_router(health_router)  # Health at root level
    app.include_router(auth_router)  # Auth at root level (/auth)

    return app


# Application instance
app = create_app()
