# x3fq/utils/settings.py
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..models.job import ColorProfile, Job, OutputFormat

logger = logging.getLogger(__name__)

# Top directory = folder that contains the `x3fq/` package
def _top_dir() -> Path:
    # This file is x3fq/utils/settings.py → parents[2] is the folder above x3fq/
    return Path(__file__).resolve().parents[2]

SETTINGS_FILE_NAME = "x3fq_settings.json"
APP_SETTINGS_FILE = _top_dir() / SETTINGS_FILE_NAME
DEFAULT_OPCODES_DIR = Path(__file__).resolve().parents[1] / "opcodes"

DEFAULT_SETTINGS = {
    "output_format": "dng",            # "dng", "jpg" or "tiff"
    "compress": True,
    "denoise": True,
    "faster_processing": False,        # x3f_extract -ocl
    "color_profile": "sRGB",
    "output_directory": None,          # None => next to each source file
    "only_process_new_items": True,    # False => reprocess everything

    # Logging
    "debug_logging_enabled": False,
    "log_dir": str(Path.home() / ".local" / "state" / "x3fq" / "logs"),

    # Display order
    "sort_field": "file_name",         # file_name / status / date / size
    "sort_ascending": True,

    # External tools
    "x3f_extract_path": "x3f_extract",
    "exiftool_path": "exiftool",
    "opcodes_dir": None,               # None => DEFAULT_OPCODES_DIR beside the package
}


def settings_path() -> Path:
    if env := os.environ.get("X3FQ_SETTINGS"):
        return Path(env)
    return APP_SETTINGS_FILE


def load_settings(path: Path | None = None) -> dict:
    p = path or settings_path()
    if p.exists():
        try:
            data = json.loads(p.read_text())
            return {**DEFAULT_SETTINGS, **data}
        except (OSError, ValueError) as e:
            logger.warning("Could not read settings from %s: %s", p, e)
    # First run or broken file → write defaults so the file exists
    save_settings(DEFAULT_SETTINGS, p)
    return DEFAULT_SETTINGS.copy()


def save_settings(data: dict, path: Path | None = None) -> None:
    p = path or settings_path()
    try:
        p.write_text(json.dumps(data, indent=2))
    except OSError:
        # Last resort fallback to CWD
        try:
            Path(SETTINGS_FILE_NAME).write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.error("Could not save settings: %s", e)


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unknown %s %r, using %s", enum_cls.__name__, value, default.value)
        return default


@dataclass(frozen=True)
class EffectiveSettings:
    """Settings for one job run, captured once when the job starts."""
    output_format: OutputFormat
    compress: bool
    denoise: bool
    faster_processing: bool
    color_profile: ColorProfile
    output_dir: Path


@dataclass(frozen=True)
class ConversionSettings:
    output_format: OutputFormat = OutputFormat.DNG
    compress: bool = True
    denoise: bool = True
    faster_processing: bool = False
    color_profile: ColorProfile = ColorProfile.SRGB
    output_directory: str | None = None
    only_process_new_items: bool = True
    debug_logging_enabled: bool = False
    log_dir: str = DEFAULT_SETTINGS["log_dir"]
    sort_field: str = "file_name"
    sort_ascending: bool = True
    x3f_extract_path: str = "x3f_extract"
    exiftool_path: str = "exiftool"
    opcodes_dir: str = str(DEFAULT_OPCODES_DIR)

    @classmethod
    def from_dict(cls, data: dict) -> "ConversionSettings":
        d = {**DEFAULT_SETTINGS, **(data or {})}
        return cls(
            output_format=_enum_or_default(OutputFormat, d["output_format"], OutputFormat.DNG),
            compress=bool(d["compress"]),
            denoise=bool(d["denoise"]),
            faster_processing=bool(d["faster_processing"]),
            color_profile=_enum_or_default(ColorProfile, d["color_profile"], ColorProfile.SRGB),
            output_directory=d["output_directory"] or None,
            only_process_new_items=bool(d["only_process_new_items"]),
            debug_logging_enabled=bool(d["debug_logging_enabled"]),
            log_dir=str(d["log_dir"]),
            sort_field=str(d["sort_field"]),
            sort_ascending=bool(d["sort_ascending"]),
            x3f_extract_path=str(d["x3f_extract_path"]),
            exiftool_path=str(d["exiftool_path"]),
            opcodes_dir=str(d["opcodes_dir"] or DEFAULT_OPCODES_DIR),
        )

    def to_dict(self) -> dict:
        return {
            "output_format": self.output_format.value,
            "compress": self.compress,
            "denoise": self.denoise,
            "faster_processing": self.faster_processing,
            "color_profile": self.color_profile.value,
            "output_directory": self.output_directory,
            "only_process_new_items": self.only_process_new_items,
            "debug_logging_enabled": self.debug_logging_enabled,
            "log_dir": self.log_dir,
            "sort_field": self.sort_field,
            "sort_ascending": self.sort_ascending,
            "x3f_extract_path": self.x3f_extract_path,
            "exiftool_path": self.exiftool_path,
            "opcodes_dir": None if self.opcodes_dir == str(DEFAULT_OPCODES_DIR) else self.opcodes_dir,
        }

    def effective_output_directory(self, source: Path) -> Path:
        if self.output_directory:
            return Path(self.output_directory)
        return Path(source).parent

    def effective_format(self, job: Job) -> OutputFormat:
        return job.output_format or self.output_format

    def effective_for(self, job: Job) -> EffectiveSettings:
        return EffectiveSettings(
            output_format=self.effective_format(job),
            compress=self.compress if job.compress is None else job.compress,
            denoise=self.denoise if job.denoise is None else job.denoise,
            faster_processing=(
                self.faster_processing if job.faster_processing is None else job.faster_processing
            ),
            color_profile=job.color_profile or self.color_profile,
            output_dir=self.effective_output_directory(job.source_path),
        )

    def is_output_directory_valid(self) -> bool:
        if not self.output_directory:
            return True  # same directory as the input
        p = Path(self.output_directory)
        return p.is_dir() and os.access(p, os.W_OK)
