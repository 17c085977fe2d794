# x3fq/models/queue.py
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..parsers.exif_info import scan_capture_date
from ..utils.opcodes import LENS_BODIES, model_code
from ..utils.paths import find_x3f_files, final_output_path
from ..workers.cancel import CancelToken
from .job import ConversionStatus, Job

logger = logging.getLogger(__name__)


class SortField(str, Enum):
    FILE_NAME = "file_name"
    STATUS = "status"
    DATE = "date"
    SIZE = "size"


_SORT_KEYS = {
    SortField.FILE_NAME: lambda j: j.file_name.casefold(),
    SortField.STATUS: lambda j: j.display_status.casefold(),
    SortField.DATE: lambda j: j.captured_date or datetime.min,
    SortField.SIZE: lambda j: j.file_size or 0,
}


class MetadataField(str, Enum):
    CAMERA_MODEL = "camera_model"
    LENS_ID = "lens_id"
    APERTURE = "aperture"

    @property
    def exif_tag(self) -> str:
        return {"camera_model": "Model", "lens_id": "LensID", "aperture": "Aperture"}[self.value]


_METADATA_ACCESSORS = {
    MetadataField.CAMERA_MODEL: (
        lambda j: j.camera_model,
        lambda j, v: setattr(j, "camera_model", v),
    ),
    MetadataField.LENS_ID: (
        lambda j: j.lens_id,
        lambda j, v: setattr(j, "lens_id", v),
    ),
    MetadataField.APERTURE: (
        lambda j: j.aperture,
        lambda j, v: setattr(j, "aperture", v),
    ),
}


@dataclass(frozen=True)
class MetadataChange:
    job_id: str
    old: str | None
    new: str | None
    was_user_edited: bool = False


@dataclass(frozen=True)
class MetadataEdit:
    """One undoable unit: the same field edited on one or more jobs."""
    field: MetadataField
    changes: tuple[MetadataChange, ...]


def _set_metadata(job: Job, field: MetadataField, value: str | None, user_edited: bool = True):
    if user_edited:
        job.user_edited.add(field.value)
    else:
        job.user_edited.discard(field.value)
    _METADATA_ACCESSORS[field][1](job, value)
    if value is None:
        job.exif_data.pop(field.exif_tag, None)
    else:
        job.exif_data[field.exif_tag] = value


def metadata_issues(job: Job) -> list[str]:
    issues = []
    if not job.camera_model:
        issues.append("Missing camera model")
    if not job.aperture:
        issues.append("Missing aperture value")
    if model_code(job.camera_model) in LENS_BODIES and not job.lens_id:
        issues.append("Missing lens ID (required for SD1 cameras)")
    return issues


class ConversionQueue:
    def __init__(self):
        self.jobs: list[Job] = []
        self.selected: set[str] = set()
        self.is_processing = False
        self.cancel_token = CancelToken()
        self._undo: list[MetadataEdit] = []
        self._redo: list[MetadataEdit] = []
        self._lock = threading.RLock()

    # ----- lookup -----

    def __len__(self):
        return len(self.jobs)

    def snapshot(self) -> list[Job]:
        with self._lock:
            return list(self.jobs)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return next((j for j in self.jobs if j.id == job_id), None)

    def sorted_jobs(self, field: SortField | str = SortField.FILE_NAME, ascending: bool = True) -> list[Job]:
        """Display order; storage order is left untouched."""
        try:
            field = SortField(field)
        except ValueError:
            field = SortField.FILE_NAME
        return sorted(self.snapshot(), key=_SORT_KEYS[field], reverse=not ascending)

    # ----- add / remove -----

    def add_paths(self, paths: Iterable[Path | str]) -> list[Job]:
        with self._lock:
            known = {j.source_path.resolve() for j in self.jobs}
        added: list[Job] = []
        for p in paths:
            for src in find_x3f_files(Path(p)):
                key = src.resolve()
                if key in known:
                    continue
                known.add(key)
                added.append(self._make_job(src))
        with self._lock:
            self.jobs.extend(added)
        if added:
            logger.info("Added %d file(s) to the queue", len(added))
        return added

    @staticmethod
    def _make_job(src: Path) -> Job:
        job = Job(source_path=src)
        try:
            st = src.stat()
        except OSError as e:
            # Metadata is optional; the file is still queued
            logger.warning("Failed to read file metadata for %s: %s", src.name, e)
            return job
        job.file_size = st.st_size
        job.captured_date = scan_capture_date(src) or datetime.fromtimestamp(st.st_mtime)
        return job

    def remove(self, job_ids: Iterable[str]) -> int:
        ids = set(job_ids)
        with self._lock:
            before = len(self.jobs)
            self.jobs = [j for j in self.jobs if j.id not in ids]
            self.selected -= ids
            return before - len(self.jobs)

    def remove_failed(self) -> int:
        return self.remove(j.id for j in self.snapshot() if j.status is ConversionStatus.FAILED)

    def remove_completed(self) -> int:
        done = (ConversionStatus.COMPLETED, ConversionStatus.WARNING)
        return self.remove(j.id for j in self.snapshot() if j.status in done)

    def clear(self):
        with self._lock:
            self.jobs.clear()
            self.selected.clear()

    # ----- selection -----

    def select(self, job_id: str):
        if self.get(job_id):
            self.selected.add(job_id)

    def deselect(self, job_id: str):
        self.selected.discard(job_id)

    def toggle_selection(self, job_id: str):
        if job_id in self.selected:
            self.deselect(job_id)
        else:
            self.select(job_id)

    def select_all(self):
        self.selected = {j.id for j in self.snapshot()}

    def deselect_all(self):
        self.selected.clear()

    def selected_jobs(self) -> list[Job]:
        return [j for j in self.snapshot() if j.id in self.selected]

    # ----- status / progress (written by the batch worker) -----

    def set_status(self, job: Job, status: ConversionStatus, message: str | None = None):
        job.status = status
        if status is ConversionStatus.COMPLETED:
            job.progress = 1.0
        elif job.progress >= 1.0:
            job.progress = 0.0
        if status is ConversionStatus.FAILED:
            job.error_message = message
        elif status is ConversionStatus.WARNING:
            job.warning_message = message
        elif status is ConversionStatus.QUEUED:
            job.progress = 0.0

    def set_progress(self, job: Job, fraction: float):
        # 1.0 is reserved for completed jobs
        job.progress = max(0.0, min(0.99, fraction))

    def reset_for_reconversion(self, job_ids: Iterable[str]):
        for job_id in job_ids:
            if job := self.get(job_id):
                job.reset_for_reconversion()

    # ----- aggregates (never cached) -----

    @property
    def overall_progress(self) -> float:
        jobs = self.snapshot()
        if not jobs:
            return 0.0
        total = 0.0
        for j in jobs:
            if j.status is ConversionStatus.COMPLETED:
                total += 1.0
            elif j.status is ConversionStatus.PROCESSING:
                total += j.progress
        return total / len(jobs)

    def count(self, status: ConversionStatus) -> int:
        return sum(1 for j in self.snapshot() if j.status is status)

    @property
    def queued_count(self) -> int:
        return self.count(ConversionStatus.QUEUED)

    @property
    def processing_count(self) -> int:
        return self.count(ConversionStatus.PROCESSING)

    @property
    def completed_count(self) -> int:
        return self.count(ConversionStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return self.count(ConversionStatus.FAILED)

    @property
    def warning_count(self) -> int:
        return self.count(ConversionStatus.WARNING)

    @property
    def has_failed(self) -> bool:
        return self.failed_count > 0

    def summary(self) -> str:
        text = f"Conversion completed: {self.completed_count}/{len(self)} files processed"
        if failed := self.failed_count:
            text += f", {failed} failed"
        if warnings := self.warning_count:
            text += f", {warnings} with warnings"
        return text

    def jobs_with_existing_output(self, job_ids: Iterable[str], settings) -> list[Job]:
        """Jobs whose final output file is already on disk (reconversion would overwrite it)."""
        ids = set(job_ids)
        out = []
        for j in self.snapshot():
            if j.id not in ids:
                continue
            eff = settings.effective_for(j)
            if final_output_path(j.source_path, eff.output_dir, eff.output_format).exists():
                out.append(j)
        return out

    # ----- cancellation -----

    @property
    def is_cancelling(self) -> bool:
        return self.cancel_token.cancelled

    @property
    def can_cancel(self) -> bool:
        return self.is_processing and not self.is_cancelling

    def cancel_conversion(self):
        self.cancel_token.cancel()

    def reset_cancellation(self):
        self.cancel_token.reset()

    # ----- metadata edits with undo/redo -----

    def update_metadata(self, job_ids: Iterable[str], field: MetadataField, value: str | None) -> MetadataEdit | None:
        getter = _METADATA_ACCESSORS[field][0]
        changes = []
        for job_id in job_ids:
            if not (job := self.get(job_id)):
                continue
            if job.status is ConversionStatus.PROCESSING:
                logger.warning("[%s] Not editing %s while the file is processing", job.file_name, field.value)
                continue
            changes.append(MetadataChange(job.id, getter(job), value, field.value in job.user_edited))
            _set_metadata(job, field, value)
        if not changes:
            return None
        edit = MetadataEdit(field, tuple(changes))
        self._undo.append(edit)
        self._redo.clear()
        return edit

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def _apply(self, edit: MetadataEdit, use_old: bool):
        for change in edit.changes:
            if not (job := self.get(change.job_id)):
                continue
            if job.status is ConversionStatus.PROCESSING:
                logger.warning("[%s] Not %s %s while the file is processing",
                               job.file_name, "undoing" if use_old else "redoing", edit.field.value)
                continue
            if use_old:
                _set_metadata(job, edit.field, change.old, user_edited=change.was_user_edited)
            else:
                _set_metadata(job, edit.field, change.new)

    def undo(self) -> bool:
        if not self._undo:
            return False
        edit = self._undo.pop()
        self._apply(edit, use_old=True)
        self._redo.append(edit)
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        edit = self._redo.pop()
        self._apply(edit, use_old=False)
        self._undo.append(edit)
        return True
