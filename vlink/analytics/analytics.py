"""
Visit recording for vlink.

Responsibilities:
    - Append a VisitRecord for every successful redirect
    - Keep that write off the redirect's critical path

Delivery model:
    Each visit is submitted to a ThreadPoolExecutor as a detached task. The
    caller gets the Future back but the redirect path never joins it. A
    done-callback logs failures, so a lost visit is a WARNING in the log and
    nothing more. Delivery is at-most-once and best-effort; `visit_count` on
    the link is maintained separately by the store and does not depend on it.
    The backlog is bounded by `max_pending`; past it new visits are dropped
    with a WARNING instead of queueing without limit.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from vlink.storage.base import BaseStorage, VisitRecord

from .base import BaseVisitRecorder

log = logging.getLogger(__name__)


class VisitRecorder(BaseVisitRecorder):
    def __init__(self, storage: BaseStorage, max_workers: int = 4, max_pending: int = 1000):
        """
        Args:
            storage (BaseStorage): Store that receives `append_visit` calls.
            max_workers (int): Background threads for visit writes.
            max_pending (int): Visits queued or in flight before new ones are
                dropped.
        """
        self.storage = storage
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vlink-visit")
        self._slots = threading.BoundedSemaphore(max(1, max_pending))

    def record(self, visit: VisitRecord) -> Optional[Future]:
        """
        Submit a visit write and return immediately.

        Returns:
            Optional[Future]: The detached task (tests may wait on it), or
            None when the visit was dropped (backlog full or shut down).
        """
        if not self._slots.acquire(blocking=False):
            log.warning("Visit for %s dropped: write backlog is full", visit.link_code)
            return None
        try:
            future = self._executor.submit(self.storage.append_visit, visit)
        except RuntimeError:
            # Executor shut down (process is stopping); the visit is dropped.
            self._slots.release()
            log.warning("Visit for %s dropped: recorder is shut down", visit.link_code)
            return None
        future.add_done_callback(self._report)
        return future

    def _report(self, future: Future) -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            log.warning("Visit write failed", exc_info=(type(exc), exc, exc.__traceback__))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
