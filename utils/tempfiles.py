"""Temporary files for export artefacts and the periodic housekeeping timer."""

import logging
import os
import tempfile
import threading
import time
import uuid
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


class TempFiles:
    """Scratch directory for files that only live for one request.

    Files that outlive a request (e.g. because the process was busy when the
    request failed) are removed by ``cleanup`` once they are old enough.
    """

    def __init__(self, directory: Optional[str] = None,
                 clock: Callable[[], float] = time.time) -> None:
        self.directory = directory or os.path.join(tempfile.gettempdir(), 'keihi')
        self._clock = clock
        os.makedirs(self.directory, exist_ok=True)

    def save(self, content: bytes, suffix: str = "") -> str:
        """Write content to a new file and return its path."""
        name = f"{int(self._clock() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"
        path = os.path.join(self.directory, name)
        with open(path, 'wb') as f:
            f.write(content)
        logger.debug("Saved temp file %s", path)
        return path

    def delete(self, path: str) -> None:
        """Remove a temp file; failures are only logged."""
        try:
            os.remove(path)
            logger.debug("Deleted temp file %s", path)
        except OSError as e:
            logger.warning("Failed to delete temp file %s: %s", path, e)

    def cleanup(self, max_age: float) -> List[str]:
        """Delete files older than max_age seconds.

        Returns:
            Paths of the deleted files
        """
        now = self._clock()
        removed = []
        try:
            entries = list(os.scandir(self.directory))
        except OSError as e:
            logger.warning("Failed to list temp directory %s: %s", self.directory, e)
            return removed

        for entry in entries:
            try:
                if not entry.is_file() or now - entry.stat().st_mtime <= max_age:
                    continue
            except OSError:
                continue
            self.delete(entry.path)
            if not os.path.exists(entry.path):
                removed.append(entry.path)

        if removed:
            logger.info("Removed %d stale temp files", len(removed))
        return removed


class Housekeeper:
    """Runs cleanup tasks on a repeating background timer.

    Each task is a no-argument callable. A failing task is logged and does
    not stop the others or the timer.
    """

    def __init__(self, interval: float, tasks: List[Callable[[], object]]) -> None:
        self.interval = interval
        self.tasks = list(tasks)
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._stopped = True

    def run_once(self) -> None:
        for task in self.tasks:
            try:
                task()
            except Exception as e:
                logger.warning("Housekeeping task %s failed: %s",
                               getattr(task, '__name__', task), e)

    def _tick(self) -> None:
        self.run_once()
        self._schedule()

    def _schedule(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._timer = threading.Timer(self.interval, self._tick)
            self._timer.daemon = True
            self._timer.start()

    def start(self) -> None:
        with self._lock:
            self._stopped = False
        self._schedule()
        logger.info("Housekeeping every %ss", self.interval)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
