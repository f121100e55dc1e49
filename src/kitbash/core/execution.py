"""
Export Engine - Background export jobs.

Exports can take a while for large canvases at high scales, so the engine
runs them in a worker thread while the asyncio loop driving the editor
stays responsive. Every job carries its own ExportRequest snapshot taken
when it was submitted; edits made afterwards are never seen by that job.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable
from uuid import UUID, uuid4

from kitbash.core.errors import ExportCancelledError, KitbashError
from kitbash.core.export import ExportPipeline, ExportRequest, ExportResult

if TYPE_CHECKING:
    from kitbash.core.archive import ArchiveWriter
    from kitbash.core.session import Session


logger = logging.getLogger(__name__)


class ExportStatus(Enum):
    """Status of an export job."""
    PENDING = auto()
    QUEUED = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()

    @property
    def is_finished(self) -> bool:
        return self in (ExportStatus.COMPLETED, ExportStatus.FAILED, ExportStatus.CANCELLED)


@dataclass
class ExportProgress:
    """Progress information for an export."""
    job_id: UUID
    status: ExportStatus
    layers_completed: int = 0
    layers_total: int = 0
    current_layer: str = ""
    message: str = ""
    error: str | None = None

    @property
    def progress_percent(self) -> float:
        if self.layers_total == 0:
            return 0.0
        return (self.layers_completed / self.layers_total) * 100


@dataclass
class ExportJob:
    """
    A queued export.

    The request snapshot is released when the job finishes. The result is
    kept only for jobs without a writer, so the caller can collect it.
    """
    id: UUID
    request: ExportRequest | None
    writer: ArchiveWriter | None = None
    status: ExportStatus = ExportStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    result: ExportResult | None = None
    error: str | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()


class ExportEngine:
    """
    Queued background export.

    Features:
    - FIFO job queue, one export at a time
    - Rendering off the event loop via run_in_executor
    - Progress reporting on the event loop
    - Best-effort cancellation; a cancelled job writes nothing
    """

    def __init__(self) -> None:
        self._queue: list[ExportJob] = []
        self._jobs: dict[UUID, ExportJob] = {}
        self._current_job: ExportJob | None = None
        self._is_running = False
        self._worker: asyncio.Task | None = None
        self._lock = asyncio.Lock()

        # Callbacks
        self._on_progress: Callable[[ExportProgress], None] | None = None
        self._on_job_complete: Callable[[ExportJob], None] | None = None

    def set_progress_callback(self, callback: Callable[[ExportProgress], None]) -> None:
        """Set the progress callback."""
        self._on_progress = callback

    def set_completion_callback(self, callback: Callable[[ExportJob], None]) -> None:
        """Set the job completion callback."""
        self._on_job_complete = callback

    @property
    def current_job(self) -> ExportJob | None:
        return self._current_job

    def get_job(self, job_id: UUID) -> ExportJob | None:
        return self._jobs.get(job_id)

    async def submit(self, request: ExportRequest, writer: ArchiveWriter | None = None) -> UUID:
        """
        Queue an export.

        Args:
            request: Snapshot to export
            writer: Archive destination, or None to keep the result in memory

        Returns:
            Job ID for tracking
        """
        job = ExportJob(id=uuid4(), request=request, writer=writer)
        self._jobs[job.id] = job

        async with self._lock:
            self._queue.append(job)
            job.status = ExportStatus.QUEUED

        if not self._is_running:
            self._is_running = True
            self._worker = asyncio.create_task(self._run_worker())

        return job.id

    async def submit_session(
        self,
        session: Session,
        writer: ArchiveWriter | None = None,
        export_scale: float | None = None,
    ) -> UUID:
        """Snapshot a session right now and queue the export."""
        # Built before the first await so no edit can slip in between.
        request = session.build_export_request(export_scale)
        return await self.submit(request, writer)

    async def cancel(self, job_id: UUID | None = None) -> bool:
        """
        Cancel a job or the current export.

        Returns:
            True if a job was cancelled
        """
        async with self._lock:
            current = self._current_job
            if current is not None and (job_id is None or current.id == job_id):
                current.cancel_event.set()
                return True

            for job in self._queue:
                if job.id == job_id:
                    self._queue.remove(job)
                    self._finish(job, ExportStatus.CANCELLED, error="Cancelled by user")
                    return True

        return False

    async def cancel_all(self) -> None:
        """Cancel the current export and clear the queue."""
        async with self._lock:
            if self._current_job is not None:
                self._current_job.cancel_event.set()
            for job in self._queue:
                self._finish(job, ExportStatus.CANCELLED, error="Cancelled by user")
            self._queue.clear()

    async def wait(self, job_id: UUID) -> ExportJob:
        """
        Wait until a job has finished, successfully or not.

        The finished job is handed to the caller and the engine forgets it.
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Unknown export job: {job_id}")
        await job.done.wait()
        self._jobs.pop(job_id, None)
        return job

    def forget(self, job_id: UUID) -> bool:
        """Drop a finished job. Returns False if it is unknown or still pending."""
        job = self._jobs.get(job_id)
        if job is None or not job.status.is_finished:
            return False
        del self._jobs[job_id]
        return True

    def get_queue_status(self) -> list[dict]:
        """Get status of all queued jobs."""
        return [
            {
                "id": str(job.id),
                "status": job.status.name,
                "created_at": job.created_at,
            }
            for job in self._queue
        ]

    async def _run_worker(self) -> None:
        """Background worker that processes the queue."""
        try:
            while True:
                async with self._lock:
                    if not self._queue:
                        break
                    job = self._queue.pop(0)
                    self._current_job = job

                await self._execute_job(job)

                if self._on_job_complete:
                    try:
                        self._on_job_complete(job)
                    except Exception:
                        logger.exception("Completion callback failed for export %s", job.id)
        finally:
            self._is_running = False
            self._current_job = None

    async def _execute_job(self, job: ExportJob) -> None:
        """Run one export in the default executor."""
        loop = asyncio.get_running_loop()
        job.status = ExportStatus.RUNNING
        job.started_at = time.time()
        request = job.request
        total = len(request.visible_layers)

        def on_layer(done: int, layers_total: int, name: str) -> None:
            loop.call_soon_threadsafe(self._report, ExportProgress(
                job_id=job.id,
                status=ExportStatus.RUNNING,
                layers_completed=done,
                layers_total=layers_total,
                current_layer=name,
                message=f"Rendering {name}" if name else "Writing archive",
            ))

        pipeline = ExportPipeline(on_progress=on_layer)

        def work() -> ExportResult:
            if job.writer is None:
                return pipeline.run(request, job.cancel_event.is_set)
            return pipeline.export(request, job.writer, job.cancel_event.is_set)

        self._report(ExportProgress(
            job_id=job.id,
            status=ExportStatus.RUNNING,
            layers_total=total,
            message="Starting export",
        ))

        try:
            job.result = await loop.run_in_executor(None, work)
        except ExportCancelledError:
            logger.info("Export %s cancelled", job.id)
            self._finish(job, ExportStatus.CANCELLED, error="Cancelled by user")
        except KitbashError as e:
            logger.error("Export %s failed: %s", job.id, e)
            self._finish(job, ExportStatus.FAILED, error=str(e))
        except Exception as e:
            logger.exception("Export %s crashed", job.id)
            self._finish(job, ExportStatus.FAILED, error=str(e))
        else:
            self._finish(job, ExportStatus.COMPLETED, total=total)

    def _finish(
        self,
        job: ExportJob,
        status: ExportStatus,
        error: str | None = None,
        total: int = 0,
    ) -> None:
        job.status = status
        job.error = error
        job.completed_at = time.time()
        job.request = None
        if status is not ExportStatus.COMPLETED or job.writer is not None:
            job.result = None
        job.done.set()

        if status is ExportStatus.COMPLETED:
            message = "Export complete"
        elif status is ExportStatus.CANCELLED:
            message = "Export cancelled"
        else:
            message = f"Export failed: {error}"
        self._report(ExportProgress(
            job_id=job.id,
            status=status,
            layers_completed=total,
            layers_total=total,
            message=message,
            error=error if status is ExportStatus.FAILED else None,
        ))

    def _report(self, progress: ExportProgress) -> None:
        if self._on_progress:
            try:
                self._on_progress(progress)
            except Exception:
                logger.exception("Progress callback failed for export %s", progress.job_id)


# Singleton instance
_engine: ExportEngine | None = None


def get_engine() -> ExportEngine:
    """Get the singleton export engine."""
    global _engine
    if _engine is None:
        _engine = ExportEngine()
    return _engine
