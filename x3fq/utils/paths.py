# x3fq/utils/paths.py
import os
import shutil
from pathlib import Path

from ..models.job import OutputFormat

RAW_EXTENSIONS = frozenset({".x3f"})
_TEMP_SUFFIXES = (".tmp", ".temp")


def is_x3f(path: Path) -> bool:
    return path.suffix.lower() in RAW_EXTENSIONS


def find_x3f_files(path: Path, max_depth: int = 5) -> list[Path]:
    """
    Find X3F files at or below `path`.

    Args:
        path: A file or a folder to search
        max_depth: Maximum recursion depth to prevent runaway scans

    Returns:
        Sorted list of X3F file paths (a single file is returned as-is if it
        has the right extension)
    """
    path = Path(path)
    if path.is_file():
        return [path] if is_x3f(path) else []

    found: list[Path] = []

    def _walk(current: Path, depth: int = 0) -> None:
        if depth > max_depth or not current.is_dir():
            return
        try:
            entries = sorted(current.iterdir())
        except (PermissionError, OSError):
            # Skip directories we can't access
            return
        for item in entries:
            if item.name.startswith("."):
                continue
            if item.is_file() and is_x3f(item):
                found.append(item)
            elif item.is_dir():
                _walk(item, depth + 1)

    _walk(path)
    return found


def converter_output_path(source: Path, output_dir: Path, fmt: OutputFormat) -> Path:
    """Where x3f_extract writes: full source name plus the new extension (shot.X3F.dng)."""
    return Path(output_dir) / (Path(source).name + fmt.extension)


def final_output_path(source: Path, output_dir: Path, fmt: OutputFormat) -> Path:
    """Final output location; only DNG output is renamed to <stem>.dng."""
    source = Path(source)
    if fmt is OutputFormat.DNG:
        return Path(output_dir) / (source.stem + fmt.extension)
    return converter_output_path(source, output_dir, fmt)


def temp_artifact_paths(source: Path, output_dir: Path, fmt: OutputFormat) -> list[Path]:
    """Candidate partial/temporary files x3f_extract may leave for `source`."""
    name = Path(source).name
    out = Path(output_dir)
    names = [name + s for s in _TEMP_SUFFIXES]
    for ext in (".dng", ".tif", ".jpg"):
        names.extend(name + ext + s for s in _TEMP_SUFFIXES)
    names.append(name + fmt.extension)
    return [out / n for n in names]


def stray_temp_files(source: Path, output_dir: Path) -> list[Path]:
    """Entries named `<stem>.*` or `<stem>~*` in `output_dir` that look temporary."""
    stem = Path(source).stem
    try:
        entries = list(Path(output_dir).iterdir())
    except OSError:
        return []
    return [
        p for p in entries
        if p.name.startswith((stem + ".", stem + "~")) and (any(s in p.name for s in _TEMP_SUFFIXES) or "~" in p.name)
    ]


def resolve_executable(name_or_path: str) -> str | None:
    """Return an executable path for a bare name on PATH or an explicit path."""
    if not name_or_path:
        return None
    p = Path(name_or_path).expanduser()
    if p.parent != Path(".") or p.is_absolute():
        return str(p) if p.is_file() and os.access(p, os.X_OK) else None
    return shutil.which(name_or_path)
