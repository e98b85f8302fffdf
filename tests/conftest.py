"""
Global pytest fixtures for the vlink test suite.

Responsibilities:
    - Provide a fresh FastAPI TestClient via the app factory for integration tests
    - Provide isolated in-memory Storage and a synchronous visit recorder
    - Provide a LinkManager fixture wired to both

Why an app factory?
    `create_app(storage=Storage(), ...)` gives each test its own in-memory
    state instead of the process-wide shared handle.
"""

from concurrent.futures import Future
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from main import create_app
from vlink.analytics.base import BaseVisitRecorder
from vlink.manager.link_manager import LinkManager
from vlink.storage.base import VisitRecord
from vlink.storage.storage import Storage


class InlineRecorder(BaseVisitRecorder):
    """Writes visits synchronously so tests can assert on them right away."""

    def __init__(self, storage: Storage):
        self.storage = storage
        self.recorded: List[VisitRecord] = []

    def record(self, visit: VisitRecord) -> Optional[Future]:
        self.recorded.append(visit)
        self.storage.append_visit(visit)
        return None

    def shutdown(self, wait: bool = True) -> None:
        pass


@pytest.fixture
def storage() -> Storage:
    """Fresh in-memory Storage backend."""
    return Storage()


@pytest.fixture
def recorder(storage: Storage) -> InlineRecorder:
    return InlineRecorder(storage)


@pytest.fixture
def manager(storage: Storage, recorder: InlineRecorder) -> LinkManager:
    """LinkManager over the storage fixture with inline visit recording."""
    return LinkManager(storage=storage, recorder=recorder)


@pytest.fixture
def client(storage: Storage, recorder: InlineRecorder) -> TestClient:
    """
    TestClient over a fresh app instance.

    Uses a fixed public base URL so short URLs are predictable in assertions.
    """
    app = create_app(storage=storage, recorder=recorder, base_url="https://vlink.example")
    return TestClient(app)
