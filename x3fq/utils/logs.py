# x3fq/utils/logs.py
import logging
import sys
from pathlib import Path

LOGGER_NAME = "x3fq"
LOG_FILES = {
    "conversion": "conversion.log",
    "error": "error.log",
    "debug": "debug.log",
}
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_MARKER = "_x3fq_handler"


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.max_level


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the job's file name, like `[shot.X3F] ...`."""

    def process(self, msg, kwargs):
        return f"[{self.extra['file']}] {msg}", kwargs


def job_logger(logger: logging.Logger, job) -> JobLogAdapter:
    return JobLogAdapter(logger, {"file": job.file_name})


def log_file_paths(log_dir: Path | str) -> list[Path]:
    return [Path(log_dir) / name for name in LOG_FILES.values()]


def _file_handler(path: Path, level: int, max_level: int | None = None) -> logging.Handler:
    h = logging.FileHandler(path, encoding="utf-8")
    h.setLevel(level)
    h.setFormatter(logging.Formatter(_FORMAT))
    if max_level is not None:
        h.addFilter(_MaxLevelFilter(max_level))
    setattr(h, _MARKER, True)
    return h


def setup_logging(log_dir: Path | str | None = None, debug: bool = False, console: bool = False) -> logging.Logger:
    """
    Attach the conversion/error/debug file handlers to the package logger.

    Calling it again replaces the handlers installed by a previous call, so
    toggling debug logging at runtime is just another call.
    """
    root = logging.getLogger(LOGGER_NAME)
    for h in [h for h in root.handlers if getattr(h, _MARKER, False)]:
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if log_dir is not None:
        log_dir = Path(log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Failed to create log directory {log_dir}: {e}", file=sys.stderr)
        else:
            root.addHandler(_file_handler(log_dir / LOG_FILES["conversion"], logging.INFO, logging.INFO))
            root.addHandler(_file_handler(log_dir / LOG_FILES["error"], logging.WARNING))
            if debug:
                root.addHandler(_file_handler(log_dir / LOG_FILES["debug"], logging.DEBUG))

    if console:
        h = logging.StreamHandler(sys.stderr)
        h.setLevel(logging.DEBUG if debug else logging.INFO)
        h.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        setattr(h, _MARKER, True)
        root.addHandler(h)
    return root


def clear_logs(log_dir: Path | str) -> None:
    for path in log_file_paths(log_dir):
        try:
            if path.exists():
                path.write_text("")
        except OSError as e:
            logging.getLogger(__name__).error("Failed to clear log file %s: %s", path.name, e)
