"""
Cooperative cancellation flag and progress sink shared by detectors and the optimizer.
"""

from typing import Callable, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)

ProgressListener = Callable[[int, Optional[str]], None]


class Task:
    """A named unit of background work that can be cancelled from another thread.

    Listeners receive ``(progress, message)`` where ``progress`` is 0-100 and
    ``message`` is a human-readable log line or ``None``.
    """

    def __init__(self, name: str = "task"):
        self.name = name
        self.progress = 0
        self._cancelled = threading.Event()
        self._listeners: List[ProgressListener] = []

    def cancel(self) -> None:
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def set_progress(self, progress: int) -> None:
        self.progress = max(0, min(100, int(progress)))
        for listener in self._listeners:
            listener(self.progress, None)

    def log(self, message: str) -> None:
        logger.info(f"[{self.name}] {message}")
        for listener in self._listeners:
            listener(self.progress, message)


def is_cancelled(task: Optional[Task]) -> bool:
    """True when a task is given and has been cancelled."""
    return task is not None and task.is_cancelled()
