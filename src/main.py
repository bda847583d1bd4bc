"""
Identity & Verification Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.request_id import RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import Settings, get_settings
from src.kernel.identity.codes import CodeSweeper
from src.kernel.identity.identity_service import IdentityService
from src.kernel.infra.messaging import build_gateway
from src.kernel.infra.record_store import InMemoryRecordStore, RecordStore, SqlRecordStore
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


async def build_record_store(config: Settings) -> RecordStore:
    """Create the configured record store backend."""
    if config.record_store == "memory":
        logger.warning("Using in-memory record store; data is lost on restart")
        return InMemoryRecordStore()

    from src.database import async_session_maker, init_db

    await init_db()
    logger.info("Database initialized")
    return SqlRecordStore(async_session_maker)


def build_identity_service(config: Settings, store: RecordStore) -> IdentityService:
    messaging = build_gateway(
        config.sms_provider,
        url=config.sms_http_url,
        auth_token=config.sms_http_auth_token,
        sender_name=config.sms_sender_name,
        timeout=config.sms_timeout_seconds,
    )
    return IdentityService(store, messaging, config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the identity service once per process and runs the expired-code
    sweeper alongside it.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    store = await build_record_store(settings)
    service = build_identity_service(settings, store)
    app.state.identity_service = service

    sweeper = CodeSweeper(
        service.code_stores,
        interval=settings.code_sweep_interval_seconds,
    )
    sweeper.start()

    yield

    logger.info("Shutting down...")
    await sweeper.stop()
    if settings.record_store != "memory":
        from src.database import close_db

        await close_db()
        logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Identity & Verification Service

    Registration and login for a consumer app.

    ## Features

    - **Password accounts**: bcrypt credentials with transparent upgrade of legacy digests
    - **Google sign-in**: register-or-login by email or Google id
    - **Phone login**: one-time SMS codes, any common phone format
    - **Password reset**: single-use reset codes by SMS
    - **Profiles**: lookup, update and search
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Middleware order: add_middleware stacks innermost-first, so LAST added = OUTERMOST.
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:3000",
]

app.add_middleware(RequestIdMiddleware)

# CORS last = outermost = wraps everything; every response gets CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_headers(request: Request) -> dict:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    return headers


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Render HTTP errors in the standard envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=_error_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": "Validation error", "errors": errors},
        headers=_error_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions without leaking internals."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {
            "success": False,
            "error": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"success": False, "error": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_error_headers(request),
    )


@app.get(f"{settings.api_prefix}/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        record_store=settings.record_store,
        sms_provider=settings.sms_provider,
    )


app.include_router(
    api_v1_router,
    prefix=settings.api_prefix,
)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
