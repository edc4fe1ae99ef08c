# services/quote_service.py

import asyncio
import logging
import os
from typing import Optional

from ..config import Settings
from ..core.common_types import GCodeMetrics, PriceQuote, SliceJob, SlicerConfig
from ..core.exceptions import GCodeParseError, InvalidRequestError, UploadNotFoundError
from ..core.utils import new_opaque_id, remove_file
from ..processes.print_3d.gcode_parser import parse_gcode
from ..processes.print_3d.pricing import calculate_price
from ..processes.print_3d.slicer import SlicerInvoker, new_gcode_path
from .slice_queue import SliceQueue
from .upload_store import TemporaryUploadStore

logger = logging.getLogger(__name__)


class QuoteService:
    """Turns a stored upload plus a print configuration into a priced quote."""

    def __init__(
        self,
        settings: Settings,
        upload_store: TemporaryUploadStore,
        invoker: Optional[SlicerInvoker] = None,
        queue: Optional[SliceQueue] = None,
    ):
        self.settings = settings
        self.upload_store = upload_store
        self.invoker = invoker or SlicerInvoker(settings)
        self.queue = queue or SliceQueue(self.slice_and_parse)
        logger.info("QuoteService initialized.")

    def slice_and_parse(self, job: SliceJob) -> GCodeMetrics:
        """
        Queue handler: runs the engine for one job and parses its output.

        Raises:
            SliceQuoteError subclasses: The classified invoker error, or
                GCodeParseError when nothing usable could be read.
        """
        result = self.invoker.invoke(job.upload.file_path, job.output_path, job.config)
        if not result.success:
            raise result.error

        with open(result.gcode_path, "r", encoding="utf-8", errors="replace") as f:
            metrics = parse_gcode(f, job.config.material.value)

        if metrics.is_empty:
            remove_file(result.gcode_path)
            raise GCodeParseError(
                "Slicer output contained no print time, layer count or extrusion data; "
                "refusing to produce a zero-cost quote."
            )
        logger.info(f"Job {job.job_id}: {metrics.print_time_hours:.2f}h, {metrics.filament_weight_grams:.2f}g, "
                    f"{metrics.layer_count} layers (slicing took {result.duration_sec:.2f}s)")
        return metrics

    async def create_quote(
        self,
        file_id: str,
        config: SlicerConfig,
        quantity: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PriceQuote:
        """
        Resolves the upload, slices it through the queue and prices the result.

        Raises:
            InvalidRequestError: Bad quantity.
            UploadNotFoundError / UploadExpiredError: Unknown, vanished or expired upload.
            ConfigurationError: Engine or profiles missing.
            SlicerError subclasses: Engine failure or unusable output.
            SliceCancelledError: The job was cancelled while queued.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidRequestError(f"quantity must be a positive integer, got {quantity!r}")

        upload = self.upload_store.get(file_id)
        if not os.path.isfile(upload.file_path):
            self.upload_store.invalidate(file_id)
            raise UploadNotFoundError(f"File {file_id} is no longer available. Please upload it again.")

        job = SliceJob(
            job_id=new_opaque_id("job"),
            upload=upload,
            config=config,
            output_path=new_gcode_path(self.settings.slicer_temp_dir),
        )
        logger.info(f"Quote requested for {file_id} ({upload.file_name}): quality={config.quality.value}, "
                    f"material={config.material.value}, infill={config.infill_density}% {config.infill_type.value}, "
                    f"qty={quantity}")

        metrics = await self.queue.submit(job, cancel_event)

        return calculate_price(
            metrics,
            config.material,
            quantity=quantity,
            gcode_file_ref=os.path.basename(job.output_path),
            machine_hourly_rate=self.settings.machine_hourly_rate,
            setup_fee=self.settings.setup_fee,
        )
