"""
Storage module for vlink (in-memory implementation).

Responsibilities:
    - Save links keyed by short code
    - Track visit counts and last access time
    - Provide retrieval and lookup APIs (by code and by destination)
    - Keep an append-only visit log

Design:
    - Reference implementation of the BaseStorage contract, used by default
      and by the test suite.
    - Each public call holds one lock for its whole duration, which is what
      makes insert-if-absent and increment-and-stamp atomic across request
      threads. The lock lives in the store, not in the manager.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from .base import BaseStorage, LinkRecord, VisitRecord


class Storage(BaseStorage):
    def __init__(self):
        """
        Initialize empty storage.

        Internal schema:
            self.links    = {code: LinkRecord}
            self.by_url   = {destination: code}   # first code wins
            self.visits   = {code: [VisitRecord, ...]}
        """
        self.links: Dict[str, LinkRecord] = {}
        self.by_url: Dict[str, str] = {}
        self.visits: Dict[str, List[VisitRecord]] = {}
        self._lock = threading.Lock()

    def insert_link(self, record: LinkRecord) -> bool:
        """
        Insert a link if its code is free.

        Rules:
            - Empty destination is rejected.
            - An existing code is never overwritten, even for the same URL.
        """
        if not record.destination:
            return False
        with self._lock:
            if record.code in self.links:
                return False
            self.links[record.code] = record
            self.by_url.setdefault(record.destination, record.code)
            return True

    def get_link(self, code: str) -> Optional[LinkRecord]:
        with self._lock:
            return self.links.get(code)

    def find_code_by_url(self, destination: str) -> Optional[str]:
        with self._lock:
            return self.by_url.get(destination)

    def record_visit(self, code: str, at: datetime) -> Optional[LinkRecord]:
        with self._lock:
            current = self.links.get(code)
            if current is None:
                return None
            updated = current.visited(at)
            self.links[code] = updated
            return updated

    def append_visit(self, visit: VisitRecord) -> None:
        with self._lock:
            if visit.link_code not in self.links:
                return
            self.visits.setdefault(visit.link_code, []).append(visit)

    def list_visits(self, code: str) -> List[VisitRecord]:
        with self._lock:
            return list(self.visits.get(code, []))

    def delete_link(self, code: str) -> bool:
        """Remove a link, its visits, and its destination index entry."""
        with self._lock:
            record = self.links.pop(code, None)
            if record is None:
                return False
            self.visits.pop(code, None)
            if self.by_url.get(record.destination) == code:
                del self.by_url[record.destination]
                # Re-point the index at another code for the same URL, if any.
                for other in self.links.values():
                    if other.destination == record.destination:
                        self.by_url[record.destination] = other.code
                        break
            return True
