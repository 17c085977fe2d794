# x3fq/workers/exif.py
import logging
from pathlib import Path

from ..models.errors import ConversionCancelled, MetadataProcessingFailed, MissingBinary, ProcessingError
from ..models.job import Job
from ..parsers.exif_info import ExifInfo, guess_from_filename, parse_exiftool_json
from ..utils.logs import job_logger
from ..utils.paths import resolve_executable
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

READ_TAGS = ["-aperture", "-model", "-lensid", "-json"]


class ExifService:
    def __init__(self, runner: ProcessRunner, exiftool_path: str = "exiftool"):
        self.runner = runner
        self.exiftool_path = exiftool_path

    def _run(self, arguments: list[str]) -> str:
        if not (exe := resolve_executable(self.exiftool_path)):
            raise MissingBinary(f"exiftool not found ({self.exiftool_path})", executable=self.exiftool_path)
        result = self.runner.run(exe, arguments)
        if result.cancelled:
            raise ConversionCancelled("exiftool was terminated due to cancellation")
        if not result.ok:
            raise MetadataProcessingFailed(
                f"exiftool failed with exit code {result.returncode}: {result.stderr.strip()}",
                returncode=result.returncode, stderr=result.stderr,
            )
        if result.stderr.strip():
            logger.debug("ExifTool stderr: %s", result.stderr.strip())
        return result.stdout

    def read(self, source: Path) -> ExifInfo:
        out = self._run([*READ_TAGS, str(source)])
        try:
            return parse_exiftool_json(out)
        except ValueError as e:
            raise MetadataProcessingFailed(f"Invalid ExifTool output: {e}", path=source) from e

    def extract(self, job: Job) -> ExifInfo:
        """Read model/lens/aperture, falling back to file-name guesses on failure."""
        log = job_logger(logger, job)
        try:
            info = self.read(job.source_path)
        except ConversionCancelled:
            raise
        except ProcessingError as e:
            log.error("Failed to extract EXIF data: %s", e)
            log.debug("Using file-name based EXIF guess")
            info = guess_from_filename(job.file_name)
        log.debug("EXIF extracted: Model: %s, Aperture: %s, LensID: %s",
                  info.camera_model or "Unknown", info.aperture or "Unknown", info.lens_id or "N/A")
        return info

    def apply_opcode(self, source: Path, output: Path, opcode_path: Path) -> None:
        """Inject the OpcodeList3 profile and copy every tag from the source in one pass."""
        if not output.exists():
            raise MetadataProcessingFailed(f"Output file not found: {output}", path=output)
        out = self._run([
            "-overwrite_original",
            f"-opcodelist3<={opcode_path}",
            "-n",
            "-tagsfromfile", str(source),
            "-all",
            str(output),
        ])
        if out.strip():
            logger.debug("ExifTool output: %s", out.strip())

    def copy_metadata(self, source: Path, output: Path) -> None:
        self._run([
            "-overwrite_original",
            "-tagsFromFile", str(source),
            "-all:all",
            str(output),
        ])
