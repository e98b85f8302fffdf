"""
LinkManager module for vlink.

Responsibilities:
    - Allocate short codes (custom or generated) for destination URLs
    - Validate URLs and custom codes
    - Deduplicate generated links by destination
    - Resolve codes back to destinations while counting visits
    - Expose per-link statistics and deletion

Design notes:
    - Uniqueness is delegated to the store's insert-if-absent. The manager
      never reads a code to decide whether it may write it, so two requests
      racing for the same code cannot both win.
    - Generated codes are random; a conflict simply means "draw again", up
      to `max_attempts` times.
    - A custom code that is already taken always fails, even when it points
      at the same destination. De-duplication only applies to generated codes.
    - Resolution does the counter update as one store call and hands the
      visit record to a recorder that runs detached from the request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlparse

from vlink.analytics.base import BaseVisitRecorder
from vlink.config import settings
from vlink.errors import (
    AllocationExhaustedError,
    CodeTakenError,
    InvalidCustomCodeError,
    InvalidUrlError,
    MissingUrlError,
    NotFoundError,
)
from vlink.storage.base import BaseStorage, LinkRecord, VisitRecord, utcnow

from .generator import BASE62_PATTERN, MAX_LENGTH, CodeGenerator

log = logging.getLogger(__name__)

# Top-level route segments a custom code must not shadow.
RESERVED_CODES = frozenset({"api", "health"})


@dataclass(frozen=True)
class RequestContext:
    """Requester metadata attached to a visit record."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None


class LinkManager:
    """Coordinates allocation and resolution rules for short links."""

    def __init__(
        self,
        storage: BaseStorage,
        recorder: Optional[BaseVisitRecorder] = None,
        generator: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            storage (BaseStorage): Backend storage instance.
            recorder (Optional[BaseVisitRecorder]): Receives visit records; None disables them.
            generator (Optional[Callable[[], str]]): Produces candidate codes.
            max_attempts (Optional[int]): Insert attempts before AllocationExhaustedError.
            clock (Callable[[], datetime]): Source of timestamps.
        """
        self.storage = storage
        self.recorder = recorder
        self.generator = generator or CodeGenerator(settings.CODE_LENGTH)
        self.max_attempts = max_attempts if max_attempts is not None else settings.MAX_ALLOCATION_ATTEMPTS
        self.clock = clock

    # ---------------------------------------------------------------------
    # Validation Helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def validate_url(url: Optional[str]) -> None:
        """
        Require an absolute http/https URL with a host.

        Raises:
            MissingUrlError: If the URL is empty.
            InvalidUrlError: If the URL is malformed.
        """
        if not url or not url.strip():
            raise MissingUrlError()
        if any(ch.isspace() for ch in url):
            raise InvalidUrlError()
        try:
            parsed = urlparse(url)
            parsed.port  # raises ValueError on a malformed port
        except ValueError as exc:
            raise InvalidUrlError() from exc
        if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
            raise InvalidUrlError()

    @staticmethod
    def validate_custom_code(code: str) -> None:
        """
        Custom codes share the generated alphabet (Base62), are at most 32
        characters and may not shadow a reserved route.

        Raises:
            InvalidCustomCodeError: On any violation.
        """
        if not BASE62_PATTERN.match(code) or len(code) > MAX_LENGTH:
            raise InvalidCustomCodeError()
        if code.lower() in RESERVED_CODES:
            raise InvalidCustomCodeError(f"'{code}' is reserved")

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def allocate(self, destination: str, custom_code: Optional[str] = None) -> str:
        """
        Return a short code for `destination`.

        Rules:
            - Validate the URL.
            - Custom code: validate, then insert-if-absent. A conflict raises
              CodeTakenError.
            - No custom code: return the existing code for `destination` if
              there is one; otherwise draw random codes until one inserts.

        Raises:
            InvalidUrlError, InvalidCustomCodeError, CodeTakenError,
            AllocationExhaustedError, StoreUnavailableError
        """
        self.validate_url(destination)

        if custom_code:
            self.validate_custom_code(custom_code)
            record = LinkRecord(code=custom_code, destination=destination, created_at=self.clock(), is_custom=True)
            if not self.storage.insert_link(record):
                raise CodeTakenError()
            log.info("Allocated custom code %s", custom_code)
            return custom_code

        existing = self.storage.find_code_by_url(destination)
        if existing:
            return existing

        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generator()
            record = LinkRecord(code=candidate, destination=destination, created_at=self.clock())
            if self.storage.insert_link(record):
                log.info("Allocated code %s", candidate)
                return candidate
            log.debug("Code collision on %s (attempt %d/%d)", candidate, attempt, self.max_attempts)

        log.error("No free code after %d attempts", self.max_attempts)
        raise AllocationExhaustedError()

    def resolve(self, code: str, context: Optional[RequestContext] = None) -> str:
        """
        Return the destination for `code`, counting the visit.

        The counter update is awaited; the visit record is not.

        Raises:
            NotFoundError: If `code` is unknown.
            StoreUnavailableError: If the store cannot be reached.
        """
        now = self.clock()
        record = self.storage.record_visit(code, now)
        if record is None:
            raise NotFoundError()

        if self.recorder is not None:
            ctx = context or RequestContext()
            self.recorder.record(
                VisitRecord(
                    link_code=record.code,
                    visited_at=now,
                    user_agent=ctx.user_agent,
                    ip_address=ctx.ip_address,
                    referrer=ctx.referrer,
                )
            )
        return record.destination

    def stats(self, code: str) -> LinkRecord:
        """Return the stored record for `code` without counting a visit."""
        record = self.storage.get_link(code)
        if record is None:
            raise NotFoundError()
        return record

    def delete(self, code: str) -> None:
        if not self.storage.delete_link(code):
            raise NotFoundError()
        log.info("Deleted code %s", code)
