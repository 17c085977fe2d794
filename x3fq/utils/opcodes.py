# x3fq/utils/opcodes.py
"""
Flat-field correction profile (DNG OpcodeList3) lookup.

Profile files live in one directory and are named

    <ModelCode>[_<LensToken>]_FF_DNG_Opcodelist3_<Aperture>

e.g. ``DP2M_FF_DNG_Opcodelist3_2.8`` or
``SD1M_Unknown_(32776)_30mm_FF_DNG_Opcodelist3_5.6``. Only the
interchangeable-lens bodies carry a lens token.
"""
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "UNKNOWN"

# substring in the EXIF model → short code; longest substring is tried first
MODEL_CODES = {
    "DP1 Merrill": "DP1M",
    "DP2 Merrill": "DP2M",
    "DP3 Merrill": "DP3M",
    "SD1 Merrill": "SD1M",
    "SD1": "SD1",
}
LENS_BODIES = frozenset({"SD1M", "SD1"})
EXPECTED_MODELS = ("DP1M", "DP2M", "DP3M", "SD1M")

_NUMERIC_LENS_PATTERNS = [
    re.compile(r"\((\d+)\)"),   # "(32776)"
    re.compile(r"^(\d+)$"),     # "32776"
    re.compile(r"ID_(\d+)"),    # "ID_32776"
    re.compile(r"Lens_(\d+)"),  # "Lens_32776"
]
_SUFFIX = "_FF_DNG_Opcodelist3_"


def model_code(camera_model: str | None) -> str:
    if camera_model:
        for needle in sorted(MODEL_CODES, key=len, reverse=True):
            if needle in camera_model:
                return MODEL_CODES[needle]
    return UNKNOWN_MODEL


def extract_numeric_lens_id(lens_id: str) -> int | None:
    for pattern in _NUMERIC_LENS_PATTERNS:
        if m := pattern.search(lens_id):
            try:
                return int(m.group(1))
            except ValueError:
                continue
    return None


def lens_token(numeric_id: int) -> str:
    return f"Unknown_({numeric_id})_30mm"


def clean_lens_id(lens_id: str) -> str:
    clean = lens_id.replace(" ", "_").replace("|", "_")
    if "Unknown_" not in clean and "_30mm" not in clean:
        if (numeric := extract_numeric_lens_id(lens_id)) is not None:
            clean = lens_token(numeric)
    return clean


def opcode_file_name(code: str, lens_id: str | None, aperture: str) -> str:
    name = code
    if code in LENS_BODIES and lens_id:
        name += f"_{clean_lens_id(lens_id)}"
    return f"{name}{_SUFFIX}{aperture}"


def opcode_info(file_name: str) -> dict[str, str]:
    """Split a profile file name back into model / lens / aperture."""
    info: dict[str, str] = {}
    head, sep, aperture = file_name.partition(_SUFFIX)
    if not sep or not head:
        return info
    code, _, lens = head.partition("_")
    info["model"] = code
    info["aperture"] = aperture
    if code in LENS_BODIES and lens:
        info["lens"] = lens
    return info


class OpcodeResolver:
    def __init__(self, opcodes_dir: Path | str):
        self.opcodes_dir = Path(opcodes_dir)

    def resolve(self, camera_model: str | None, lens_id: str | None, aperture: str | None) -> Path | None:
        if not camera_model or not aperture:
            logger.debug("Missing camera model or aperture, no opcode lookup")
            return None
        code = model_code(camera_model)
        if code == UNKNOWN_MODEL:
            logger.debug("Unknown camera model: %s", camera_model)
            return None
        candidate = self.opcodes_dir / opcode_file_name(code, lens_id, aperture)
        if candidate.is_file():
            logger.debug("Selected opcode: %s", candidate)
            return candidate
        logger.debug("Opcode file not found: %s", candidate.name)
        return None

    def available_opcodes(self) -> list[str]:
        try:
            return sorted(p.name for p in self.opcodes_dir.iterdir() if not p.name.startswith("."))
        except OSError as e:
            logger.error("Failed to read opcodes directory %s: %s", self.opcodes_dir, e)
            return []

    def opcodes_for_model(self, code: str) -> list[str]:
        return [n for n in self.available_opcodes() if n.startswith(code)]

    def validate_directory(self) -> bool:
        if not self.opcodes_dir.is_dir():
            logger.error("Opcodes directory not found: %s", self.opcodes_dir)
            return False
        available = self.available_opcodes()
        if not available:
            logger.error("No opcode files found in %s", self.opcodes_dir)
            return False
        found = {m for m in EXPECTED_MODELS for n in available if n.startswith(m)}
        logger.debug("Found %d opcode files for models: %s", len(available), ", ".join(sorted(found)))
        return bool(found)
