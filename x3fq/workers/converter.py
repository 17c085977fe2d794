# x3fq/workers/converter.py
import logging

from ..models.errors import ConversionCancelled, ConversionFailed, MissingBinary
from ..models.job import Job
from ..utils.logs import job_logger
from ..utils.paths import resolve_executable
from ..utils.settings import EffectiveSettings
from .process_runner import ProcessRunner, format_command

logger = logging.getLogger(__name__)


def build_x3f_arguments(eff: EffectiveSettings) -> list[str]:
    """x3f_extract options for one job, without the trailing source path."""
    args = ["-o", str(eff.output_dir)]
    if not eff.denoise:
        args.append("-no-denoise")  # denoise is on unless told otherwise
    if eff.compress and eff.output_format.supports_compression:
        args.append("-compress")
    if eff.faster_processing:
        args.append("-ocl")
    if flag := eff.output_format.x3f_flag:
        args.append(flag)
    if color := eff.color_profile.x3f_argument:
        args.extend(["-color", color])
    return args


class X3FConverter:
    def __init__(self, runner: ProcessRunner, x3f_extract_path: str = "x3f_extract"):
        self.runner = runner
        self.x3f_extract_path = x3f_extract_path

    def executable(self) -> str:
        if not (exe := resolve_executable(self.x3f_extract_path)):
            raise MissingBinary(f"No suitable x3f_extract binary found ({self.x3f_extract_path})",
                                executable=self.x3f_extract_path)
        return exe

    def convert(self, job: Job, eff: EffectiveSettings) -> None:
        log = job_logger(logger, job)
        exe = self.executable()
        args = build_x3f_arguments(eff) + [str(job.source_path)]
        log.info("Executing: %s", format_command(exe, args))

        result = self.runner.run(exe, args, cwd=eff.output_dir)

        if result.stdout:
            log.debug("Process output: %s", result.stdout.strip())
        if result.stderr:
            log.error("Process error: %s", result.stderr.strip())

        if result.cancelled:
            log.info("x3f_extract process was terminated due to cancellation")
            raise ConversionCancelled("Conversion was cancelled by user")
        if not result.ok:
            msg = f"x3f_extract failed with exit code {result.returncode}"
            if err := result.stderr.strip():
                msg += f". Error: {err}"
            raise ConversionFailed(msg, returncode=result.returncode, stderr=result.stderr)
        log.info("x3f_extract completed successfully")
