"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import httpx
import pytest

# Ensure the project root is in sys.path so `tests.fakes` and `rbegen` import
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from rbegen.config import reset_settings  # noqa: E402
from tests.fakes import BAZELISK_BYTES, FakeEngine  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for var in (
        "RBEGEN_LOG_LEVEL",
        "RBEGEN_CONTAINER_RUNTIME",
        "RBEGEN_BAZELISK_VERSION",
        "RBEGEN_BAZELISK_BASE_URL",
        "RBEGEN_DOWNLOAD_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine(tmp_path, monkeypatch) -> FakeEngine:
    """Fake docker CLI backed by a directory, patched in for run_cmd."""
    fake = FakeEngine(tmp_path / "container")
    monkeypatch.setattr("rbegen.sandbox.container.run_cmd", fake)
    return fake


@pytest.fixture
def bazelisk_requests():
    return []


@pytest.fixture
def http_client(bazelisk_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        bazelisk_requests.append(str(request.url))
        return httpx.Response(200, content=BAZELISK_BYTES)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        yield client
