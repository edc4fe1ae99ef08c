# api/models.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.common_types import (
    InfillType,
    MaterialType,
    ModelSummary,
    PriceQuote,
    PrintQuality,
    SlicerConfig,
    UploadRecord,
)


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---

class SliceRequest(ApiModel):
    file_id: str = Field(..., min_length=1, description="Id returned by the upload endpoint.")
    quality: PrintQuality
    material: MaterialType
    infill_density: int = Field(..., ge=5, le=100, description="Infill percentage (5-100).")
    infill_type: InfillType
    quantity: int = Field(1, ge=1, description="Number of copies to price.")

    def to_config(self) -> SlicerConfig:
        return SlicerConfig(
            quality=self.quality,
            material=self.material,
            infill_density=self.infill_density,
            infill_type=self.infill_type,
        )


# --- Responses ---

class BoundingBoxOut(ApiModel):
    size_x: float
    size_y: float
    size_z: float


class ModelSummaryOut(ApiModel):
    triangle_count: int
    volume_cm3: float
    surface_area_cm2: float
    bounding_box: BoundingBoxOut
    is_watertight: bool

    @classmethod
    def from_core(cls, summary: Optional[ModelSummary]) -> Optional["ModelSummaryOut"]:
        if summary is None:
            return None
        return cls.model_validate(summary.model_dump())


class UploadResponse(ApiModel):
    success: bool = True
    file_id: str
    file_name: str
    file_size: int
    file_extension: str
    expires_at: datetime
    model_summary: Optional[ModelSummaryOut] = None

    @classmethod
    def from_record(cls, record: UploadRecord) -> "UploadResponse":
        return cls(
            file_id=record.file_id,
            file_name=record.file_name,
            file_size=record.file_size_bytes,
            file_extension=record.file_extension.value,
            expires_at=record.expires_at,
            model_summary=ModelSummaryOut.from_core(record.model_summary),
        )


class SliceResponse(ApiModel):
    success: bool = True
    quote: PriceQuote


class QueueStats(ApiModel):
    pending: int
    busy: bool
    completed: int
    failed: int
    cancelled: int


class HealthResponse(ApiModel):
    success: bool
    installed: bool
    message: str
    slicer_path: str
    timeout_ms: int
    temp_dir: str
    queue: QueueStats


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str
