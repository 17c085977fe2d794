# x3fq/workers/process_runner.py
import logging
import shlex
import signal
import subprocess
import threading
from pathlib import Path
from typing import NamedTuple

from ..models.errors import ConversionFailed, MissingBinary
from .cancel import CancelToken

logger = logging.getLogger(__name__)

# Python reports a SIGTERM'd child as -15; shells and wrappers pass on 15 or 143
TERMINATED_RETURN_CODES = frozenset({-signal.SIGTERM, int(signal.SIGTERM), 128 + int(signal.SIGTERM)})


class ProcessResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str
    terminated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def cancelled(self) -> bool:
        return self.terminated or self.returncode in TERMINATED_RETURN_CODES


def format_command(executable: str, arguments: list[str]) -> str:
    return " ".join(shlex.quote(c) for c in [executable, *arguments])


class ProcessRunner:
    """Runs one external command at a time and lets another thread stop it.

    `run()` blocks the calling (worker) thread until the child exits;
    `terminate()` may be called from any thread and is a no-op when nothing
    is running.
    """

    def __init__(self, cancel_token: CancelToken | None = None):
        self.cancel_token = cancel_token
        self._proc: subprocess.Popen | None = None
        self._terminated = False
        self._lock = threading.Lock()

    def run(self, executable: str, arguments: list[str], cwd: Path | str | None = None) -> ProcessResult:
        cmd = [str(executable), *map(str, arguments)]
        logger.debug("$ %s (cwd=%s)", format_command(cmd[0], cmd[1:]), cwd)
        with self._lock:
            self._terminated = False
            try:
                proc = subprocess.Popen(
                    cmd,
                    cwd=str(cwd) if cwd is not None else None,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    stdin=subprocess.DEVNULL,
                    text=True,
                    errors="replace",
                )
            except FileNotFoundError as e:
                if cwd is not None and not Path(cwd).is_dir():
                    raise ConversionFailed(f"Working directory does not exist: {cwd}", path=cwd) from e
                raise MissingBinary(f"{executable} not found", executable=str(executable)) from e
            except OSError as e:
                raise ConversionFailed(f"Failed to start {executable}: {e}") from e
            self._proc = proc
            # stop() may have landed between the caller's last check and Popen
            if self.cancel_token is not None and self.cancel_token.cancelled:
                proc.terminate()
                self._terminated = True

        try:
            stdout, stderr = proc.communicate()
        finally:
            with self._lock:
                self._proc = None
                terminated = self._terminated

        logger.debug("%s exited with %s", Path(executable).name, proc.returncode)
        return ProcessResult(proc.returncode, stdout or "", stderr or "", terminated)

    def terminate(self) -> bool:
        with self._lock:
            if self._proc is None or self._proc.poll() is not None:
                return False
            logger.info("Terminating %s", Path(self._proc.args[0]).name)
            self._proc.terminate()
            self._terminated = True
            return True
