# x3fq/workers/batch.py
import logging
import threading
import time
from typing import Iterable

from PySide6.QtCore import QObject, Signal

from ..models.errors import ConversionCancelled
from ..models.job import ConversionStatus, Job
from ..models.queue import ConversionQueue
from ..utils.logs import job_logger
from ..utils.opcodes import OpcodeResolver
from ..utils.settings import ConversionSettings
from .converter import X3FConverter
from .exif import ExifService
from .pipeline import ConversionPipeline
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class BatchWorker(QObject):
    """Drives the queue through the pipeline, one file at a time.

    Lives on a QThread in a GUI host (connect `thread.started` to `run`);
    tests and scripts may call `process_all()` / `process_subset()` directly.
    """
    status_changed = Signal(str, str)   # job id, ConversionStatus value
    progress = Signal(str, float)       # job id, 0..1
    line_out = Signal(str, str)         # job id, text
    job_done = Signal(str, str)         # job id, final status value
    processing_started = Signal()
    processing_stopped = Signal()
    batch_finished = Signal(str)        # summary, only when not cancelled
    finished = Signal()

    def __init__(self, queue: ConversionQueue, settings: ConversionSettings,
                 runner: ProcessRunner | None = None, pipeline: ConversionPipeline | None = None):
        super().__init__()
        self.queue = queue
        self.settings = settings
        self.runner = runner or ProcessRunner(queue.cancel_token)
        self.pipeline = pipeline or ConversionPipeline(
            queue,
            settings,
            X3FConverter(self.runner, settings.x3f_extract_path),
            ExifService(self.runner, settings.exiftool_path),
            OpcodeResolver(settings.opcodes_dir),
            queue.cancel_token,
            on_progress=lambda job, frac: self.progress.emit(job.id, frac),
        )
        self._subset: list[str] | None = None
        self._stop_lock = threading.Lock()
        self._started = False
        self._pending_stop = False

    # ----- host wiring -----

    def set_subset(self, job_ids: Iterable[str] | None):
        self._subset = list(job_ids) if job_ids is not None else None

    def run(self):
        try:
            if self._subset is None:
                self.process_all()
            else:
                self.process_subset(self._subset)
        finally:
            self.finished.emit()

    def stop(self):
        """Request cancellation; safe from any thread.

        A stop that arrives before the first batch has begun is held and
        cancels that batch as soon as it starts.
        """
        with self._stop_lock:
            if not self.queue.can_cancel:
                if not self.queue.is_processing and not self._started:
                    logger.info("Stop requested before the conversion started")
                    self._pending_stop = True
                return
            logger.info("Stop conversion requested")
            self.queue.cancel_conversion()
        self.runner.terminate()

    # ----- batches -----

    def _display_order(self) -> list[Job]:
        return self.queue.sorted_jobs(self.settings.sort_field, self.settings.sort_ascending)

    def process_all(self) -> None:
        if not len(self.queue):
            logger.error("No files in queue to process")
            return
        # jobs added after this point wait for the next batch
        eligible_ids = {j.id for j in self.queue.snapshot()}
        visited: set[str] = set()
        only_new = self.settings.only_process_new_items
        logger.info("Starting batch conversion of %d files", len(eligible_ids))

        def pending() -> list[Job]:
            return [
                j for j in self._display_order()
                if j.id in eligible_ids and j.id not in visited
                and (j.status is ConversionStatus.QUEUED or not only_new)
            ]

        def batch():
            while not self.queue.is_cancelling:
                todo = pending()
                if not todo:
                    break
                for job in todo:
                    if self.queue.is_cancelling:
                        logger.info("Conversion cancelled by user")
                        break
                    if self.queue.get(job.id) is None:
                        continue  # removed mid-batch
                    visited.add(job.id)  # even if it fails, never twice per batch
                    self._process_job(job)

        self._run_batch("Batch conversion", batch)

    def process_subset(self, job_ids: Iterable[str]) -> None:
        wanted = set(job_ids)
        jobs = [j for j in self._display_order() if j.id in wanted]
        if not jobs:
            logger.error("No selected files available for processing")
            return
        # a stale stop from an earlier run must not swallow this one
        self.queue.reset_cancellation()
        logger.info("Starting conversion of %d selected files", len(jobs))

        def batch():
            for job in jobs:
                if self.queue.is_cancelling:
                    logger.info("Conversion cancelled by user")
                    break
                if self.queue.get(job.id) is None:
                    continue
                if not self._process_job(job):
                    break

        self._run_batch("Selected files conversion", batch)

    def _run_batch(self, label: str, body) -> None:
        with self._stop_lock:
            self.queue.is_processing = True
            self._started = True
            if self._pending_stop:
                self._pending_stop = False
                self.queue.cancel_conversion()
        self.processing_started.emit()
        started = time.monotonic()
        try:
            body()
        finally:
            self.queue.is_processing = False
            self.processing_stopped.emit()
            elapsed = time.monotonic() - started
            if self.queue.is_cancelling:
                logger.info("%s cancelled after %.2fs", label, elapsed)
                self.queue.reset_cancellation()
            else:
                logger.info("%s completed in %.2fs", label, elapsed)
                summary = self.queue.summary()
                logger.info("Conversion batch completed: %s", summary)
                self.batch_finished.emit(summary)

    # ----- one job -----

    def _set_status(self, job: Job, status: ConversionStatus, message: str | None = None):
        self.queue.set_status(job, status, message)
        self.status_changed.emit(job.id, status.value)
        self.progress.emit(job.id, job.progress)

    def _process_job(self, job: Job) -> bool:
        """Run one job; False means the batch was cancelled while it ran."""
        log = job_logger(logger, job)
        if job.status is not ConversionStatus.QUEUED:
            log.info("Resetting file for reconversion")
            job.reset_for_reconversion()
            self._set_status(job, ConversionStatus.QUEUED)

        self._set_status(job, ConversionStatus.PROCESSING)
        self.line_out.emit(job.id, f"{job.file_name}: starting")
        try:
            warning = self.pipeline.process(job)
        except ConversionCancelled:
            log.info("File conversion cancelled")
            self._set_status(job, ConversionStatus.QUEUED)
            self.line_out.emit(job.id, f"{job.file_name}: cancelled")
            return False
        except Exception as e:
            log.error("Conversion failed: %s", e)
            self._set_status(job, ConversionStatus.FAILED, str(e))
            self.line_out.emit(job.id, f"{job.file_name}: ERROR: {e}")
        else:
            if warning:
                self._set_status(job, ConversionStatus.WARNING, warning)
                self.line_out.emit(job.id, f"{job.file_name}: warning: {warning}")
            else:
                self._set_status(job, ConversionStatus.COMPLETED)
                self.line_out.emit(job.id, f"{job.file_name}: done")
        self.job_done.emit(job.id, job.status.value)
        return True
