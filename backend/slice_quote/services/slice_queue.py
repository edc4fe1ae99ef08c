# services/slice_queue.py

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from ..core.common_types import SliceJob, SliceJobState
from ..core.exceptions import SliceCancelledError

logger = logging.getLogger(__name__)

SliceHandler = Callable[[SliceJob], Any]


class SliceQueue:
    """
    Serializes slice jobs through a single worker.

    Jobs are served strictly in submission order and at most one handler call
    is in flight at any time. The handler is blocking and runs in a worker
    thread so the event loop stays responsive. Every submitted job resolves:
    either with the handler's return value or with the exception it raised.
    """

    def __init__(self, handler: SliceHandler):
        self._handler = handler
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional[SliceJob] = None
        self.completed_count = 0
        self.failed_count = 0
        self.cancelled_count = 0

    # --- Introspection ---

    @property
    def pending(self) -> int:
        """Jobs waiting behind the running one."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def stats(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "busy": self.is_busy,
            "completed": self.completed_count,
            "failed": self.failed_count,
            "cancelled": self.cancelled_count,
        }

    # --- Lifecycle ---

    def start(self) -> None:
        """Starts the worker on the running event loop. Idempotent."""
        if self.is_running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="slice-queue-worker")
        logger.info("Slice queue worker started.")

    async def close(self) -> None:
        """Stops the worker. Jobs still waiting are resolved with SliceCancelledError."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                job, future, _ = self._queue.get_nowait()
                self._resolve_cancelled(job, future, "slice queue shut down")
            self._queue = None
        logger.info("Slice queue worker stopped.")

    async def submit(self, job: SliceJob, cancel_event: Optional[asyncio.Event] = None) -> Any:
        """
        Enqueues a job and waits for its outcome.

        Args:
            job: The job to run. Its state fields are updated as it progresses.
            cancel_event: When set before the job is dequeued, the job is
                skipped and SliceCancelledError is raised to the caller. Cancelling
                the awaiting coroutine does not remove the job from the queue.

        Returns:
            Whatever the handler returned for this job.
        """
        if not self.is_running:
            self.start()
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[Any]" = loop.create_future()
        job.state = SliceJobState.QUEUED
        await self._queue.put((job, future, cancel_event))
        logger.debug(f"Queued slice job {job.job_id} (pending={self.pending}, busy={self.is_busy})")
        return await future

    # --- Worker ---

    async def _run(self) -> None:
        while True:
            job, future, cancel_event = await self._queue.get()
            try:
                await self._process(job, future, cancel_event)
            finally:
                self._queue.task_done()

    async def _process(self, job: SliceJob, future: "asyncio.Future[Any]", cancel_event: Optional[asyncio.Event]) -> None:
        # A caller that stopped waiting still gets its job run; only cancel_event skips it
        if cancel_event is not None and cancel_event.is_set():
            self._resolve_cancelled(job, future, "cancelled before the job started")
            return

        self._current = job
        job.state = SliceJobState.RUNNING
        job.started_at = datetime.now(timezone.utc)
        logger.info(f"Slice job {job.job_id} started (file {job.upload.file_id}, {self.pending} waiting)")
        try:
            result = await asyncio.to_thread(self._handler, job)
        except asyncio.CancelledError:
            self._resolve_cancelled(job, future, "slice queue shut down")
            raise
        except Exception as e:
            job.state = SliceJobState.FAILED
            job.error = str(e)
            self.failed_count += 1
            logger.warning(f"Slice job {job.job_id} failed: {type(e).__name__}: {e}")
            if not future.done():
                future.set_exception(e)
        else:
            job.state = SliceJobState.SUCCEEDED
            self.completed_count += 1
            logger.info(f"Slice job {job.job_id} succeeded")
            if not future.done():
                future.set_result(result)
        finally:
            job.finished_at = datetime.now(timezone.utc)
            self._current = None

    def _resolve_cancelled(self, job: SliceJob, future: "asyncio.Future[Any]", reason: str) -> None:
        job.state = SliceJobState.CANCELLED
        job.error = reason
        job.finished_at = datetime.now(timezone.utc)
        self.cancelled_count += 1
        logger.info(f"Slice job {job.job_id} cancelled: {reason}")
        if not future.done():
            future.set_exception(SliceCancelledError(f"Slice job {job.job_id} {reason}."))
