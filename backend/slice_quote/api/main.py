# api/main.py

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import routers
from .routers import slicer

from .. import __version__
from ..config import Settings, get_settings
from ..core.exceptions import ConfigurationError, SliceQuoteError
from ..services import CleanupSweeper, QuoteService, TemporaryUploadStore

logger = logging.getLogger(__name__)

SERVICE_NAME = "Slice Quote API"


def _error_body(error: str, detail: str) -> dict:
    return {"success": False, "error": error, "detail": detail}


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    # Drop the leading 'body'/'query' segment
    loc = [str(part) for part in first.get("loc", ())[1:]]
    message = first.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {message}" if loc else message


# --- FastAPI App Initialization --- #

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Factory function to create and configure the FastAPI application."""
    settings = settings or get_settings()

    upload_store = TemporaryUploadStore(
        temp_dir=settings.slicer_temp_dir,
        max_size_bytes=settings.max_upload_size_bytes,
        ttl_hours=settings.upload_ttl_hours,
    )
    quote_service = QuoteService(settings, upload_store)
    sweeper = CleanupSweeper(settings.slicer_temp_dir, settings.gcode_ttl_hours, upload_store=upload_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {SERVICE_NAME} v{__version__}...")
        try:
            settings.temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create temp dir {settings.temp_dir}: {e}")
        installed, resolved = quote_service.invoker.check_installation()
        if installed:
            logger.info(f"Slicer found at {resolved}")
        else:
            logger.warning(f"Slicer not found at '{settings.slicer_path}'; slicing requests will fail with 503.")
        quote_service.queue.start()
        sweeper_task = asyncio.create_task(
            sweeper.run_periodic(settings.cleanup_interval_minutes * 60), name="cleanup-sweeper"
        )
        yield
        # Shutdown
        logger.info(f"Shutting down {SERVICE_NAME}...")
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        await quote_service.queue.close()

    app = FastAPI(
        title=SERVICE_NAME,
        description="Uploads 3D models, slices them with PrusaSlicer and returns print quotes in NGN.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upload_store = upload_store
    app.state.quote_service = quote_service
    app.state.sweeper = sweeper

    # --- CORS Middleware --- #
    # Allow all origins for now, restrict in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = secrets.token_hex(4)
        request.state.request_id = request_id
        start = time.time()
        response = await call_next(request)
        logger.info(f"[req {request_id}] {request.method} {request.url.path} -> "
                    f"{response.status_code} ({time.time() - start:.2f}s)")
        response.headers["X-Request-ID"] = request_id
        return response

    # --- Include Routers --- #
    app.include_router(slicer.router)
    logger.info("Included API routers.")

    # --- Exception Handlers --- #
    @app.exception_handler(SliceQuoteError)
    async def slice_quote_exception_handler(request: Request, exc: SliceQuoteError):
        if isinstance(exc, ConfigurationError):
            logger.error(f"Service configuration error: {exc}")
        elif exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} caught: {exc}")
        else:
            logger.warning(f"{type(exc).__name__} caught: {exc.status_code} - {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, str(exc)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        detail = _first_validation_message(exc)
        logger.warning(f"Request validation failed: {detail}")
        return JSONResponse(status_code=400, content=_error_body("invalid_request", detail))

    # Handle Starlette/FastAPI HTTPExceptions (unknown routes, wrong methods)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTPException caught: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail)),
        )

    # Generic handler for unexpected errors
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception caught at application level")
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_error", f"Internal server error: {type(exc).__name__}"),
        )

    logger.info("Registered exception handlers.")

    # --- Root Endpoint --- #
    @app.get("/", tags=["General"], summary="Service information")
    async def read_root():
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "status": "operational",
            "endpoints": {
                "upload": "POST /api/slicer/upload",
                "slice": "POST /api/slicer/slice",
                "health": "GET /api/slicer/health",
            },
        }

    return app


# Create the app instance using the factory
# Run with: uvicorn slice_quote.api.main:app
app = create_app()
