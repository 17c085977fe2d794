# x3fq/workers/pipeline.py
import logging
import os
import stat
import time
from pathlib import Path
from typing import Callable

from ..models.errors import (
    ConversionCancelled, ConversionFailed, InvalidOutputFile, MissingOutputFile, ValidationFailed,
)
from ..models.job import Job
from ..models.queue import ConversionQueue, MetadataField
from ..parsers.exif_info import ExifInfo
from ..utils.logs import job_logger
from ..utils.opcodes import OpcodeResolver
from ..utils.paths import (
    converter_output_path, final_output_path, resolve_executable, stray_temp_files, temp_artifact_paths,
)
from ..utils.settings import ConversionSettings, EffectiveSettings
from .cancel import CancelToken
from .converter import X3FConverter
from .exif import ExifService

logger = logging.getLogger(__name__)

OUTPUT_MODE = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH  # 0o644
MISSING_OPCODE_WARNING = "No flat-fielding opcode found for this camera/lens/aperture combination"

# progress reported after each step
STEP_PROGRESS = {"exif": 0.1, "convert": 0.3, "metadata": 0.7, "validate": 0.9}


def ensure_output_directory(path: Path) -> None:
    if path.exists():
        if not path.is_dir():
            raise ConversionFailed(f"Output path exists but is not a directory: {path}", path=path)
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConversionFailed(f"Failed to create output directory: {e}", path=path) from e
    logger.debug("Created output directory: %s", path)


def validate_output_file(path: Path) -> None:
    if not path.exists():
        raise MissingOutputFile(f"Output file was not created: {path}", path=path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise ValidationFailed(f"Could not validate output file: {e}", path=path) from e
    if size == 0:
        raise InvalidOutputFile("Output file is empty", path=path)


def set_output_permissions(path: Path) -> bool:
    try:
        os.chmod(path, OUTPUT_MODE)
    except OSError as e:
        logger.error("Failed to set file permissions on output file %s: %s", path, e)
        return False
    return True


def rename_output(current: Path, final: Path) -> None:
    if current == final:
        return
    if not current.exists():
        raise MissingOutputFile(f"Output file not found for renaming: {current}", path=current)
    if final.exists():
        try:
            final.unlink()
        except OSError as e:
            raise ConversionFailed(f"Failed to remove existing file at target location: {e}", path=final) from e
    try:
        current.rename(final)
    except OSError as e:
        raise ConversionFailed(f"Failed to rename output file: {e}", path=current) from e


def discard_partial_output(source: Path, eff: EffectiveSettings) -> list[Path]:
    removed = []
    candidates = temp_artifact_paths(source, eff.output_dir, eff.output_format)
    candidates += [p for p in stray_temp_files(source, eff.output_dir) if p not in candidates]
    for p in candidates:
        if not p.is_file():
            continue
        try:
            p.unlink()
            removed.append(p)
            logger.debug("Removed temporary/partial file: %s", p)
        except OSError as e:
            logger.error("Failed to remove temporary file %s: %s", p, e)
    return removed


def validate_setup(settings: ConversionSettings) -> list[str]:
    issues = []
    if not resolve_executable(settings.x3f_extract_path):
        issues.append(f"x3f_extract binary not found ({settings.x3f_extract_path})")
    if not resolve_executable(settings.exiftool_path):
        issues.append(f"exiftool not found ({settings.exiftool_path})")
    if not OpcodeResolver(settings.opcodes_dir).validate_directory():
        issues.append(f"Opcodes directory validation failed ({settings.opcodes_dir})")
    if not settings.is_output_directory_valid():
        issues.append(f"Output directory is not a writable directory ({settings.output_directory})")
    return issues


class ConversionPipeline:
    """Runs the per-file steps; any ProcessingError aborts this file only."""

    def __init__(
        self,
        queue: ConversionQueue,
        settings: ConversionSettings,
        converter: X3FConverter,
        exif: ExifService,
        resolver: OpcodeResolver,
        cancel_token: CancelToken,
        on_progress: Callable[[Job, float], None] | None = None,
    ):
        self.queue = queue
        self.settings = settings
        self.converter = converter
        self.exif = exif
        self.resolver = resolver
        self.cancel_token = cancel_token
        self.on_progress = on_progress

    def _step(self, job: Job, name: str):
        self.queue.set_progress(job, STEP_PROGRESS[name])
        if self.on_progress:
            self.on_progress(job, job.progress)
        self.cancel_token.raise_if_cancelled()

    def process(self, job: Job) -> str | None:
        """Convert one job. Returns a warning message, or None on a clean run.

        Settings are captured once up front so edits made while the file is
        running do not leak into this run.
        """
        eff = self.settings.effective_for(job)
        try:
            return self._run_steps(job, eff)
        except ConversionCancelled:
            discard_partial_output(job.source_path, eff)
            raise

    def _run_steps(self, job: Job, eff: EffectiveSettings) -> str | None:
        log = job_logger(logger, job)
        log.info("Starting conversion")
        started = time.monotonic()
        self.cancel_token.raise_if_cancelled()

        ensure_output_directory(eff.output_dir)

        self._step(job, "exif")
        # edits made from here on wait for the next run
        inputs = self._merge_metadata(job, self.exif.extract(job))

        self._step(job, "convert")
        self.converter.convert(job, eff)

        self._step(job, "metadata")
        converted = converter_output_path(job.source_path, eff.output_dir, eff.output_format)
        warning = None
        if eff.output_format.needs_post_processing:
            warning = self._apply_metadata(job, converted, inputs)

        self._step(job, "validate")
        validate_output_file(converted)
        log.info("Output file validated successfully")
        set_output_permissions(converted)

        if eff.output_format.needs_post_processing:
            final = final_output_path(job.source_path, eff.output_dir, eff.output_format)
            rename_output(converted, final)
            log.info("Renamed output file from %s to %s", converted.name, final.name)

        log.info("Conversion completed in %.2fs", time.monotonic() - started)
        return warning

    def _merge_metadata(self, job: Job, info: ExifInfo) -> ExifInfo:
        """Fold fresh EXIF into the job and return the values this run uses.

        Fields the user edited keep their value; everything else, including
        earlier file-name guesses, is replaced by the new extraction.
        """
        edited = {MetadataField(name) for name in job.user_edited}
        for f in MetadataField:
            if f not in edited:
                setattr(job, f.value, getattr(info, f.value))
        edited_tags = {f.exif_tag for f in edited}
        for k, v in info.raw.items():
            if k not in edited_tags:
                job.exif_data[k] = v
        return info._replace(
            camera_model=job.camera_model, lens_id=job.lens_id, aperture=job.aperture, raw=dict(job.exif_data),
        )

    def _apply_metadata(self, job: Job, converted: Path, inputs: ExifInfo) -> str | None:
        log = job_logger(logger, job)
        if not converted.exists():
            raise MissingOutputFile(f"Output file not found: {converted}", path=converted)

        if opcode := self.resolver.resolve(inputs.camera_model, inputs.lens_id, inputs.aperture):
            log.debug("Applying opcode: %s", opcode)
            self.exif.apply_opcode(job.source_path, converted, opcode)
            return None

        log.debug("No opcode found, copying EXIF data only")
        self.exif.copy_metadata(job.source_path, converted)
        log.warning(MISSING_OPCODE_WARNING)
        return MISSING_OPCODE_WARNING
