"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `discord_bot_api` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Optional, Union

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 120


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection.

    Frames, a remote close, or a transport error are queued by the test and
    surface through ``async for`` in the order they were queued.
    """

    def __init__(self) -> None:
        self._incoming: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self.close_calls: list[tuple[int, str]] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

    def push(self, frame: Union[str, bytes]) -> None:
        self._incoming.put_nowait(("frame", frame))

    def remote_close(self, code: int, reason: str) -> None:
        self._incoming.put_nowait(("close", (code, reason)))

    def fail(self, exc: BaseException) -> None:
        self._incoming.put_nowait(("error", exc))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        self._incoming.put_nowait(("close", (code, reason)))

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Union[str, bytes]:
        kind, value = await self._incoming.get()
        if kind == "frame":
            return value
        if kind == "close":
            self.close_code, self.close_reason = value
            raise StopAsyncIteration
        raise value


class RecordingConnector:
    """Connector double that records every URL it is asked to open."""

    def __init__(
        self,
        *sockets: FakeWebSocket,
        error: Optional[BaseException] = None,
    ) -> None:
        self._sockets = list(sockets)
        self._error = error
        self.urls: list[str] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self._error is not None:
            raise self._error
        return self._sockets.pop(0)


@pytest.fixture()
def fake_socket() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"
