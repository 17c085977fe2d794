# x3fq/models/errors.py
from pathlib import Path


class ProcessingError(Exception):
    """Base for every failure a conversion step can raise.

    `detail` is the human-readable part; subclasses add structured fields so
    callers can branch on the kind instead of parsing the message.
    """
    label = "Processing error"

    def __init__(self, detail: str = "", *, path: Path | str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        return f"{self.label}: {self.detail}" if self.detail else self.label


class MissingBinary(ProcessingError):
    label = "Missing binary"

    def __init__(self, detail: str = "", *, executable: str | None = None):
        super().__init__(detail)
        self.executable = executable


class ConversionFailed(ProcessingError):
    label = "Conversion failed"

    def __init__(self, detail: str = "", *, returncode: int | None = None,
                 stderr: str = "", path: Path | str | None = None):
        super().__init__(detail, path=path)
        self.returncode = returncode
        self.stderr = stderr


class ConversionCancelled(ProcessingError):
    label = "Conversion cancelled"


class MissingOutputFile(ProcessingError):
    label = "Missing output file"


class InvalidOutputFile(ProcessingError):
    label = "Invalid output file"


class ValidationFailed(ProcessingError):
    label = "Validation failed"


class MetadataProcessingFailed(ProcessingError):
    label = "EXIF processing failed"

    def __init__(self, detail: str = "", *, returncode: int | None = None,
                 stderr: str = "", path: Path | str | None = None):
        super().__init__(detail, path=path)
        self.returncode = returncode
        self.stderr = stderr
