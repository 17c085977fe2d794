# x3fq/parsers/exif_info.py
import json
import re
from datetime import datetime
from pathlib import Path
from typing import NamedTuple

from ..utils.opcodes import lens_token

_EXIF_DATETIME = re.compile(rb"(\d{4}:\d{2}:\d{2} \d{2}:\d{2}:\d{2})")
_HEADER_BYTES = 65536

# filename hint → EXIF model string
_FILENAME_MODELS = [
    ("dp1", "SIGMA DP1 Merrill"),
    ("dp2", "SIGMA DP2 Merrill"),
    ("dp3", "SIGMA DP3 Merrill"),
    ("sd1", "SIGMA SD1 Merrill"),
]
DEFAULT_SD1_LENS = lens_token(32776)


class ExifInfo(NamedTuple):
    camera_model: str | None
    lens_id: str | None
    aperture: str | None
    raw: dict


def _format_aperture(value) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return f"{float(value):.1f}"
    return str(value).strip() or None


def _format_lens(value) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return lens_token(value)
    return str(value).strip() or None


def parse_exiftool_json(output: str) -> ExifInfo:
    """Parse `exiftool -json` output for one file. Raises ValueError on junk."""
    data = json.loads(output)
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise ValueError("exiftool JSON is not a non-empty list of objects")
    meta = data[0]
    model = meta.get("Model")
    return ExifInfo(
        camera_model=str(model).strip() if model else None,
        lens_id=_format_lens(meta.get("LensID")),
        aperture=_format_aperture(meta.get("Aperture")),
        raw=meta,
    )


def guess_from_filename(file_name: str) -> ExifInfo:
    """Best-effort metadata when exiftool is unavailable or fails."""
    lower = file_name.lower()
    model = next((m for hint, m in _FILENAME_MODELS if hint in lower), None)
    lens = DEFAULT_SD1_LENS if model and "SD1" in model else None
    return ExifInfo(camera_model=model, lens_id=lens, aperture=None, raw={})


def scan_capture_date(path: Path) -> datetime | None:
    """Look for an EXIF `YYYY:MM:DD HH:MM:SS` stamp in the file header."""
    try:
        with open(path, "rb") as f:
            head = f.read(_HEADER_BYTES)
    except OSError:
        return None
    if not (m := _EXIF_DATETIME.search(head)):
        return None
    try:
        return datetime.strptime(m.group(1).decode("ascii"), "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None
