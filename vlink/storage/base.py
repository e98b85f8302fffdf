"""
Base storage interface for vlink.

Purpose:
    Define a small, stable contract that the in-memory and PostgreSQL
    backends implement, so the link manager never changes when the
    backing store does.

Atomicity contract:
    - `insert_link` is an insert-if-absent. It is the only way a code is
      reserved; callers must not read first and write second.
    - `record_visit` increments the counter and stamps `last_accessed_at`
      in a single operation and returns the updated record.

Testing & Coverage:
    Abstract methods are annotated with `# pragma: no cover`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LinkRecord:
    """A short code and the destination it resolves to."""
    code: str
    destination: str
    created_at: datetime = field(default_factory=utcnow)
    visit_count: int = 0
    last_accessed_at: Optional[datetime] = None
    is_custom: bool = False

    def visited(self, at: datetime) -> "LinkRecord":
        return replace(self, visit_count=self.visit_count + 1, last_accessed_at=at)


@dataclass(frozen=True)
class VisitRecord:
    """One resolved redirect; append-only analytics."""
    link_code: str
    visited_at: datetime = field(default_factory=utcnow)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None


class BaseStorage(ABC):
    """Abstract base class for link storage backends."""

    @abstractmethod  # pragma: no cover
    def insert_link(self, record: LinkRecord) -> bool:
        """
        Insert `record` only if its code is free.

        Returns:
            bool: True if inserted, False if the code already exists.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_link(self, code: str) -> Optional[LinkRecord]:
        """Return the record stored under `code`, or None."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def find_code_by_url(self, destination: str) -> Optional[str]:
        """Return the oldest code pointing at `destination`, or None."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def record_visit(self, code: str, at: datetime) -> Optional[LinkRecord]:
        """
        Atomically add one visit and set `last_accessed_at` to `at`.

        Returns:
            Optional[LinkRecord]: The updated record, None if `code` is unknown.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def append_visit(self, visit: VisitRecord) -> None:
        """Append a visit record to the analytics collection.

        A visit whose code no longer exists (deleted while the write was
        queued) is dropped.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list_visits(self, code: str) -> List[VisitRecord]:
        """Return visit records for `code`, oldest first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_link(self, code: str) -> bool:
        """Delete a link and its visits. Returns False if it did not exist."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. No-op unless the backend holds any."""
