"""
Abstract Base Class for visit recorders.

Responsibilities:
    - Define the hand-off point between the redirect path and analytics
    - Support easy substitution (background thread pool, inline, event bus)
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Optional

from vlink.storage.base import VisitRecord

__all__ = ["BaseVisitRecorder"]


class BaseVisitRecorder(ABC):
    """Abstract base for pluggable visit recorders."""

    @abstractmethod
    def record(self, visit: VisitRecord) -> Optional[Future]:  # pragma: no cover
        """
        Hand off a visit for best-effort persistence.

        Must return without waiting for the write and must never raise
        because the write failed.
        """
        raise NotImplementedError

    def shutdown(self, wait: bool = True) -> None:  # pragma: no cover
        """Stop accepting visits; optionally drain pending writes."""
