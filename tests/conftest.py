"""
Pytest configuration and fixtures for update engine client tests.
"""

import asyncio
import sys
import tempfile
from pathlib import Path
from typing import Generator, List, Optional, Tuple

import pytest

# Add scripts directory to path for imports
SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(SCRIPTS_DIR))

from update_engine_status import Status  # noqa: E402


class FakeUpdateEngine:
    """
    In-memory stand-in for UpdateEngineClient.

    Notifications queued with push() are delivered to the bound callback
    through loop.call_soon once the call named by push_on returns, the same
    way the reader task delivers them on the real event loop.
    """

    def __init__(self):
        self.calls: List[str] = []
        self.results = {}
        self.connect_status = Status.ok()
        self.bind_status = Status.ok()
        self.bound = True
        self.callback = None
        self.applied: Optional[Tuple[str, List[str]]] = None
        self.closed = False
        self.connects = 0
        self.push_on = "bind"
        self._notifications = []

    def push(self, kind: str, *args) -> None:
        self._notifications.append((kind, args))

    def _deliver(self, kind: str, args) -> None:
        if kind == "status_update":
            self.callback.on_status_update(*args)
        else:
            self.callback.on_payload_application_complete(*args)

    def _flush(self, method: str) -> None:
        if method != self.push_on or self.callback is None:
            return
        loop = asyncio.get_running_loop()
        for kind, args in self._notifications:
            loop.call_soon(self._deliver, kind, args)
        self._notifications = []

    async def connect(self) -> Status:
        self.connects += 1
        return self.connect_status

    async def close(self) -> None:
        self.closed = True

    async def suspend(self) -> Status:
        self.calls.append("suspend")
        return self.results.get("suspend", Status.ok())

    async def resume(self) -> Status:
        self.calls.append("resume")
        return self.results.get("resume", Status.ok())

    async def cancel(self) -> Status:
        self.calls.append("cancel")
        return self.results.get("cancel", Status.ok())

    async def apply_payload(self, url: str, headers: List[str]) -> Status:
        self.calls.append("apply_payload")
        self.applied = (url, list(headers))
        status = self.results.get("apply_payload", Status.ok())
        self._flush("apply_payload")
        return status

    async def bind(self, callback) -> Tuple[Status, bool]:
        self.calls.append("bind")
        bound = self.bind_status.is_ok() and self.bound
        if bound:
            self.callback = callback
        self._flush("bind")
        return self.bind_status, bound


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, temp_dir: Path):
    """Keep host config files and environment out of the tests."""
    monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(temp_dir / "missing.yaml"))
    for name in ("UPDATE_ENGINE_SOCKET", "UPDATE_ENGINE_CONNECT_TIMEOUT",
                 "UPDATE_ENGINE_REQUEST_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_service() -> FakeUpdateEngine:
    return FakeUpdateEngine()
