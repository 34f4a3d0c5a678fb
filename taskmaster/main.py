"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskmaster import __version__
from taskmaster.api.auth import router as auth_router
from taskmaster.api.middleware import CorrelationIdMiddleware
from taskmaster.api.routes import fallback_router, router
from taskmaster.api.todos import router as todos_router
from taskmaster.config import get_settings
from taskmaster.database import Database
from taskmaster.exceptions import DuplicateFieldError, TokenError, TokenExpiredError
from taskmaster.services.logging_service import configure_logging, get_logger
from taskmaster.services.user_service import duplicate_field_error


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database at startup and close it at shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    db = Database(
        settings.postgres_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    try:
        await db.connect()
        await db.run_migrations()
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    app.state.db = db
    logger.info(
        "application_started",
        environment=settings.environment,
        log_level=settings.log_level,
    )

    yield

    await db.close()
    logger.info("application_shutdown")


app = FastAPI(
    title="TaskMaster API",
    description="Task lists with JWT sessions",
    version=__version__,
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def _error_response(request: Request, status_code: int, content: dict, headers=None) -> JSONResponse:
    correlation_id = _correlation_id(request)
    return JSONResponse(
        status_code=status_code,
        content={**content, "correlation_id": correlation_id},
        headers={**(headers or {}), "X-Correlation-Id": correlation_id},
    )


def _validation_messages(errors: list) -> list[str]:
    """Flatten pydantic errors into "field: message" strings."""
    messages = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        messages.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return messages


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Missing or malformed fields: 400 with one message per problem."""
    messages = _validation_messages(exc.errors())
    structlog.get_logger().warning("validation_error", messages=messages)
    return _error_response(
        request, 400, {"error": "Validation failed", "messages": messages}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Route-level failures. Dict details are passed through as the body."""
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return _error_response(request, exc.status_code, content, headers=exc.headers)


@app.exception_handler(TokenError)
async def token_exception_handler(request: Request, exc: TokenError) -> JSONResponse:
    if isinstance(exc, TokenExpiredError):
        content = {"error": "Token expired", "code": "TOKEN_EXPIRED"}
    else:
        content = {"error": "Invalid token"}
    return _error_response(request, 401, content, headers={"WWW-Authenticate": "Bearer"})


@app.exception_handler(DuplicateFieldError)
async def duplicate_field_handler(request: Request, exc: DuplicateFieldError) -> JSONResponse:
    return _error_response(request, 400, {"error": str(exc)})


@app.exception_handler(asyncpg.UniqueViolationError)
async def unique_violation_handler(
    request: Request, exc: asyncpg.UniqueViolationError
) -> JSONResponse:
    return _error_response(request, 400, {"error": str(duplicate_field_error(exc))})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected: 500, message hidden in production."""
    structlog.get_logger().error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    message = "Internal Server Error" if get_settings().is_production else str(exc)
    return _error_response(request, 500, {"error": message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Authorization", "X-Correlation-Id"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(router)
app.include_router(auth_router)
app.include_router(todos_router)
# Must stay last: matches every path
app.include_router(fallback_router)
