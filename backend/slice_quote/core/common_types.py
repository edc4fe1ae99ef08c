# core/common_types.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Print Configuration Enums ---

class PrintQuality(str, Enum):
    """Print quality presets, each mapped to a layer height."""
    DRAFT = "draft"
    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"

class MaterialType(str, Enum):
    """Supported print materials."""
    PLA = "PLA"
    PETG = "PETG"
    ABS = "ABS"
    RESIN = "Resin"  # Kept for schema completeness; FDM engines do not print resin

class InfillType(str, Enum):
    """Infill patterns accepted by the slicing engine (--fill-pattern)."""
    CUBIC = "cubic"
    GYROID = "gyroid"
    HONEYCOMB = "honeycomb"
    RECTILINEAR = "rectilinear"
    GRID = "grid"
    LINE = "line"
    TRIANGLES = "triangles"
    CONCENTRIC = "concentric"

class FileExtension(str, Enum):
    """Model file types accepted by the upload store."""
    STL = ".stl"
    OBJ = ".obj"
    THREE_MF = ".3mf"
    FBX = ".fbx"
    GLTF = ".gltf"
    GLB = ".glb"

class SliceJobState(str, Enum):
    """Lifecycle of a job inside the slice queue."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

# Layer height in mm for each quality preset
LAYER_HEIGHTS_MM = {
    PrintQuality.DRAFT: 0.3,
    PrintQuality.STANDARD: 0.2,
    PrintQuality.HIGH: 0.1,
    PrintQuality.ULTRA: 0.05,
}

# --- Geometry Related Models ---

class BoundingBox(BaseModel):
    """Axis-aligned bounding box size in mm."""
    size_x: float
    size_y: float
    size_z: float

class ModelSummary(BaseModel):
    """Basic properties extracted from the uploaded mesh (best effort)."""
    triangle_count: int
    volume_cm3: float
    surface_area_cm2: float
    bounding_box: BoundingBox
    is_watertight: bool

# --- Upload / Slicing Models ---

class UploadRecord(BaseModel):
    """Metadata for a stored upload. The record store is the source of truth for existence."""
    model_config = ConfigDict(frozen=True)

    file_id: str = Field(..., description="Opaque identifier returned to the client.")
    file_path: str = Field(..., description="Absolute path of the stored bytes.")
    file_name: str = Field(..., description="Original client-side file name.")
    file_size_bytes: int = Field(..., ge=0)
    file_extension: FileExtension
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    model_summary: Optional[ModelSummary] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at

class SlicerConfig(BaseModel):
    """Per-request print configuration. Immutable."""
    model_config = ConfigDict(frozen=True)

    quality: PrintQuality = PrintQuality.STANDARD
    material: MaterialType = MaterialType.PLA
    infill_density: int = Field(20, ge=5, le=100, description="Infill percentage (5-100).")
    infill_type: InfillType = InfillType.GRID

    @property
    def layer_height_mm(self) -> float:
        return LAYER_HEIGHTS_MM[self.quality]

class SliceJob(BaseModel):
    """A slice request owned by the slice queue until it reaches a terminal state."""
    job_id: str
    upload: UploadRecord
    config: SlicerConfig
    output_path: str
    state: SliceJobState = SliceJobState.QUEUED
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

# --- Metrics and Quoting Models ---

class GCodeMetrics(BaseModel):
    """Physical print metrics recovered from slicer output."""
    model_config = ConfigDict(frozen=True)

    print_time_seconds: float = 0.0
    print_time_hours: float = 0.0
    filament_length_mm: float = 0.0
    filament_weight_grams: float = 0.0
    layer_count: int = 0
    material_type: str
    warnings: List[str] = Field(default_factory=list, description="Signals that were missing from the G-code.")

    @property
    def is_complete(self) -> bool:
        """True when time, layers and filament were all recovered."""
        return not self.warnings

    @property
    def is_empty(self) -> bool:
        """True when nothing at all could be recovered."""
        return (
            self.print_time_seconds == 0
            and self.filament_length_mm == 0
            and self.layer_count == 0
        )

class PriceQuote(BaseModel):
    """Quote returned to the caller. Money values are rounded to 2 decimal places."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    quote_id: str
    gcode_file_ref: str
    estimated_weight: float = Field(..., description="Filament weight in grams.")
    print_time: float = Field(..., description="Print time in hours.")
    machine_cost: float
    material_cost: float
    setup_fee: float
    item_total: float
    quantity: int = Field(1, ge=1)
    subtotal: float
    currency: str = "NGN"
    layer_count: int = 0
    warnings: List[str] = Field(default_factory=list)
