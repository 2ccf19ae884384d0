"""
E-Office Letters - Backend API
FastAPI over the letter workflow, template renderer and PDF stamper.

Run server:
uvicorn eoffice.main:app --host 0.0.0.0 --port 8000
"""
import contextvars
import logging
import time
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eoffice.adapters.cache import CachedStorage
from eoffice.adapters.sqlite import SqliteAdapter
from eoffice.core.errors import (
    CounterContentionError,
    EOfficeError,
    GenerationError,
    NotFoundError,
    PreconditionError,
)
from eoffice.core.workflow import ApprovalService
from eoffice.routers import letter_types, letters, preview, verify
from eoffice.settings import Settings, get_settings

# ========== Request Context for Tracing ==========
request_id_var = contextvars.ContextVar('request_id', default=None)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0"

_STATUS_BY_ERROR = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PreconditionError, status.HTTP_409_CONFLICT),
    (CounterContentionError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GenerationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def _status_for(exc: EOfficeError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _check_assets(settings: Settings) -> None:
    missing = [
        name for name in (settings.header_image, settings.footer_image)
        if not settings.asset_path(name).exists()
    ]
    if missing:
        raise RuntimeError(f"Letter assets missing in {settings.assets_dir}: {missing}")


def create_app(storage: Optional[Any] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API. Tests pass their own storage/settings; production uses the
    SQLite adapter at settings.db_url.
    """
    settings = settings or get_settings()
    if settings.required_assets_check:
        _check_assets(settings)

    if storage is None:
        storage = SqliteAdapter.from_url(
            settings.db_url,
            counter_max_attempts=settings.counter_max_attempts,
            counter_retry_backoff_s=settings.counter_retry_backoff_s,
        )
        logger.info(f"Storage: SQLite at {settings.db_url}")

    app = FastAPI(
        title="E-Office Letters API",
        description="Letter drafting, paraf/approval workflow and PDF generation",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.storage = CachedStorage(storage)
    app.state.service = ApprovalService(app.state.storage, settings=settings)

    # ========== Request Tracing Middleware ==========
    @app.middleware("http")
    async def request_tracing_middleware(request: Request, call_next):
        """Add request_id and timing to all requests."""
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)
        started = time.time()

        response = await call_next(request)

        latency = time.time() - started
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({round(latency * 1000, 2)} ms) [{request_id}]"
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========== Exception handlers ==========
    @app.exception_handler(EOfficeError)
    async def domain_exception_handler(request: Request, exc: EOfficeError):
        code = _status_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=code, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "code": "VALIDATION_ERROR"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"}
        )

    # ========== Endpoints ==========
    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        try:
            app.state.storage.peek_value("health")
            return {"status": "healthy", "backend": "sqlite", "version": VERSION}
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "error": str(e)}
            )

    app.include_router(preview.router)
    app.include_router(letters.router)
    app.include_router(letter_types.router)
    app.include_router(verify.router)

    return app


app = create_app()
