# x3fq/models/job.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ConversionStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    WARNING = "warning"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ConversionStatus.COMPLETED, ConversionStatus.FAILED, ConversionStatus.WARNING)


_STATUS_LABELS = {
    ConversionStatus.QUEUED: "Queued",
    ConversionStatus.PROCESSING: "Processing...",
    ConversionStatus.COMPLETED: "Completed",
    ConversionStatus.FAILED: "Failed",
    ConversionStatus.WARNING: "Warning",
}


class OutputFormat(str, Enum):
    DNG = "dng"    # primary: full sensor data, gets opcodes + EXIF
    JPG = "jpg"    # embedded preview
    TIFF = "tiff"

    @property
    def extension(self) -> str:
        return {"dng": ".dng", "jpg": ".jpg", "tiff": ".tif"}[self.value]

    @property
    def x3f_flag(self) -> str | None:
        return {"dng": None, "jpg": "-jpg", "tiff": "-tiff"}[self.value]

    @property
    def supports_compression(self) -> bool:
        return self in (OutputFormat.DNG, OutputFormat.TIFF)

    @property
    def needs_post_processing(self) -> bool:
        return self is OutputFormat.DNG


class ColorProfile(str, Enum):
    SRGB = "sRGB"
    ADOBE_RGB = "AdobeRGB"
    PROPHOTO_RGB = "ProPhotoRGB"
    NONE = "None"

    @property
    def x3f_argument(self) -> str | None:
        # sRGB is what x3f_extract does without -color
        return None if self is ColorProfile.SRGB else self.value


@dataclass(eq=False)
class Job:
    source_path: Path
    status: ConversionStatus = ConversionStatus.QUEUED
    progress: float = 0.0
    error_message: str | None = None
    warning_message: str | None = None

    # metadata (exiftool / add-time scan)
    camera_model: str | None = None
    lens_id: str | None = None
    aperture: str | None = None
    captured_date: datetime | None = None
    file_size: int | None = None
    exif_data: dict = field(default_factory=dict)
    # metadata field names set by the user; extraction leaves these alone
    user_edited: set[str] = field(default_factory=set)

    # per-job overrides, None => global setting
    output_format: OutputFormat | None = None
    compress: bool | None = None
    denoise: bool | None = None
    faster_processing: bool | None = None
    color_profile: ColorProfile | None = None

    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.source_path = Path(self.source_path)

    @property
    def file_name(self) -> str:
        return self.source_path.name

    @property
    def display_status(self) -> str:
        return self.status.label

    @property
    def message(self) -> str | None:
        if self.status is ConversionStatus.FAILED:
            return self.error_message
        if self.status is ConversionStatus.WARNING:
            return self.warning_message
        return None

    def reset_for_reconversion(self):
        self.status = ConversionStatus.QUEUED
        self.progress = 0.0
        self.error_message = None
        self.warning_message = None

    def __eq__(self, other):
        return isinstance(other, Job) and other.id == self.id

    def __hash__(self):
        return hash(self.id)
