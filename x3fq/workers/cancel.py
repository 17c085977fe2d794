# x3fq/workers/cancel.py
import threading

from ..models.errors import ConversionCancelled


class CancelToken:
    """Cooperative stop flag shared by the queue, the batch worker and each step.

    Setting it never interrupts a blocking call by itself; the process runner
    is terminated separately and steps call `raise_if_cancelled()` between
    operations.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, detail: str = "Conversion cancelled by user"):
        if self._event.is_set():
            raise ConversionCancelled(detail)
