# api/routers/slicer.py

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, Response, UploadFile
from starlette import status

from ..models import ErrorResponse, HealthResponse, QueueStats, SliceRequest, SliceResponse, UploadResponse
from ...config import Settings
from ...core.exceptions import FileFormatError
from ...services import CleanupSweeper, QuoteService, TemporaryUploadStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/slicer",
    tags=["Slicer"],
)


# --- Dependencies --- #
# Built once by create_app() and kept on app.state

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_upload_store(request: Request) -> TemporaryUploadStore:
    return request.app.state.upload_store


def get_quote_service(request: Request) -> QuoteService:
    return request.app.state.quote_service


def get_sweeper(request: Request) -> CleanupSweeper:
    return request.app.state.sweeper


# --- Endpoints --- #

@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a 3D model for slicing",
    responses={
        400: {"model": ErrorResponse, "description": "No file or empty file"},
        413: {"model": ErrorResponse, "description": "File size limit exceeded"},
        415: {"model": ErrorResponse, "description": "Unsupported file type"},
    },
)
async def upload_model(
    file: Optional[UploadFile] = File(None, description="Model file (.stl, .obj, .3mf, .fbx, .gltf, .glb)"),
    store: TemporaryUploadStore = Depends(get_upload_store),
):
    """
    Stores the model temporarily and returns a file id to reference in
    ``/api/slicer/slice``. The id expires after ``UPLOAD_TTL_HOURS``.
    """
    if file is None or not file.filename:
        raise FileFormatError("No file provided. Send the model as multipart field 'file'.")

    # Read at most one byte past the ceiling so oversized uploads are rejected without buffering them whole
    data = await file.read(store.max_size_bytes + 1)
    record = await asyncio.to_thread(store.put, data, file.filename)
    return UploadResponse.from_record(record)


@router.post(
    "/slice",
    response_model=SliceResponse,
    summary="Slice an uploaded model and return a price quote",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid slicing parameters"},
        404: {"model": ErrorResponse, "description": "File id unknown"},
        410: {"model": ErrorResponse, "description": "File id expired"},
        500: {"model": ErrorResponse, "description": "Slicing failed"},
        503: {"model": ErrorResponse, "description": "Slicer not configured"},
    },
)
async def slice_model(
    body: SliceRequest,
    background_tasks: BackgroundTasks,
    service: QuoteService = Depends(get_quote_service),
    sweeper: CleanupSweeper = Depends(get_sweeper),
):
    """
    Slices a previously uploaded model with the requested quality, material
    and infill, then prices the G-code. Requests are processed one at a time
    in arrival order.
    """
    background_tasks.add_task(sweeper.run_once)
    quote = await service.create_quote(body.file_id, body.to_config(), quantity=body.quantity)
    return SliceResponse(quote=quote)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Report slicer installation and queue status",
    responses={503: {"model": HealthResponse, "description": "Slicer not installed"}},
)
async def slicer_health(
    response: Response,
    settings: Settings = Depends(get_app_settings),
    service: QuoteService = Depends(get_quote_service),
):
    """Checks that the engine binary is present and executable. Never slices."""
    installed, resolved_path = await asyncio.to_thread(service.invoker.check_installation)
    if not installed:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        message = f"Slicer not found or not executable at '{settings.slicer_path}'."
        logger.error(message)
    else:
        message = "Slicer is installed."

    return HealthResponse(
        success=installed,
        installed=installed,
        message=message,
        slicer_path=resolved_path or settings.slicer_path,
        timeout_ms=settings.slicer_timeout_ms,
        temp_dir=settings.slicer_temp_dir,
        queue=QueueStats(**service.queue.stats()),
    )
