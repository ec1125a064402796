from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from discord_bot_api.errors import (
    ConnectionNotReady,
    GatewayConnectFailed,
    GatewayUnavailable,
)
from discord_bot_api.gateway import (
    GatewayClosed,
    GatewayError,
    GatewayEventQueue,
    GatewayMessage,
    GatewaySession,
    SessionState,
    gateway_close_code,
    gateway_close_reason,
)
from tests.conftest import FakeWebSocket, RecordingConnector


class _StaticEndpoint:
    def __init__(self, url: str = "wss://gateway.example") -> None:
        self.url = url
        self.calls = 0

    async def fetch_gateway_url(self) -> str:
        self.calls += 1
        return self.url


class _UnavailableEndpoint:
    async def fetch_gateway_url(self) -> str:
        raise GatewayUnavailable()


class _Recorder:
    def __init__(self) -> None:
        self.messages: list[GatewayMessage] = []
        self.closes: list[GatewayClosed] = []
        self.errors: list[GatewayError] = []

    async def on_message(self, message: GatewayMessage) -> None:
        self.messages.append(message)

    async def on_close(self, closed: GatewayClosed) -> None:
        self.closes.append(closed)

    async def on_error(self, error: GatewayError) -> None:
        self.errors.append(error)

    def session(self, connector: Any, **kwargs: Any) -> GatewaySession:
        return GatewaySession(
            on_message=self.on_message,
            on_close=self.on_close,
            on_error=self.on_error,
            connector=connector,
            logger=logging.getLogger("test.gateway"),
            **kwargs,
        )


async def _wait_closed(session: GatewaySession) -> None:
    await asyncio.wait_for(session.wait_closed(), timeout=5)


@pytest.mark.anyio
async def test_connect_without_resolved_url_raises_connection_not_ready() -> None:
    connector = RecordingConnector(FakeWebSocket())
    session = _Recorder().session(connector)

    with pytest.raises(ConnectionNotReady):
        await session.connect()

    assert session.state is SessionState.IDLE
    assert connector.urls == []


@pytest.mark.anyio
async def test_resolve_failure_leaves_session_idle() -> None:
    connector = RecordingConnector(FakeWebSocket())
    session = _Recorder().session(connector)

    with pytest.raises(GatewayUnavailable):
        await session.resolve_endpoint(_UnavailableEndpoint())

    snapshot = session.snapshot()
    assert snapshot.state is SessionState.IDLE
    assert snapshot.url is None
    assert connector.urls == []


@pytest.mark.anyio
async def test_lifecycle_reaches_connected_and_returns_immediately(
    fake_socket: FakeWebSocket,
) -> None:
    connector = RecordingConnector(fake_socket)
    session = _Recorder().session(connector)

    assert session.state is SessionState.IDLE
    url = await session.resolve_endpoint(_StaticEndpoint())
    assert url == "wss://gateway.example"
    assert session.state is SessionState.RESOLVING_ENDPOINT

    await session.connect()

    snapshot = session.snapshot()
    assert snapshot.state is SessionState.CONNECTED
    assert snapshot.has_connection is True
    assert snapshot.url == "wss://gateway.example"
    assert connector.urls == ["wss://gateway.example"]
    await session.close()


@pytest.mark.anyio
async def test_frames_are_delivered_once_in_arrival_order(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    frames: list[str | bytes] = [f'{{"seq": {index}}}' for index in range(50)]
    frames.append(b"\x00binary\xff")
    for frame in frames:
        fake_socket.push(frame)
    fake_socket.remote_close(1000, "done")
    await _wait_closed(session)

    assert [message.data for message in recorder.messages] == frames
    assert [message.index for message in recorder.messages] == list(
        range(len(frames))
    )
    assert session.snapshot().frames_delivered == len(frames)


@pytest.mark.anyio
async def test_slow_handler_does_not_reorder_frames(
    fake_socket: FakeWebSocket,
) -> None:
    received: list[str | bytes] = []

    async def slow_handler(message: GatewayMessage) -> None:
        if message.index % 2 == 0:
            await asyncio.sleep(0.01)
        received.append(message.data)

    session = GatewaySession(
        on_message=slow_handler, connector=RecordingConnector(fake_socket)
    )
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()
    for index in range(6):
        fake_socket.push(str(index))
    fake_socket.remote_close(1000, "")
    await _wait_closed(session)

    assert received == ["0", "1", "2", "3", "4", "5"]


@pytest.mark.anyio
async def test_frame_interrupted_by_close_is_not_counted(
    fake_socket: FakeWebSocket,
) -> None:
    handled: list[int] = []
    blocked = asyncio.Event()

    async def handler(message: GatewayMessage) -> None:
        if message.index == 1:
            blocked.set()
            await asyncio.Event().wait()
        handled.append(message.index)

    session = GatewaySession(
        on_message=handler, connector=RecordingConnector(fake_socket)
    )
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()
    fake_socket.push("first")
    fake_socket.push("second")
    await asyncio.wait_for(blocked.wait(), timeout=5)

    await session.close()

    assert handled == [0]
    assert session.snapshot().frames_delivered == 1


@pytest.mark.anyio
async def test_remote_close_reports_code_and_reason_once(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    fake_socket.remote_close(4000, "unknown error")
    await _wait_closed(session)

    assert recorder.closes == [GatewayClosed(code=4000, reason="unknown error")]
    assert recorder.errors == []
    snapshot = session.snapshot()
    assert snapshot.state is SessionState.CLOSED
    assert snapshot.has_connection is False
    assert (snapshot.close_code, snapshot.close_reason) == (4000, "unknown error")


@pytest.mark.anyio
async def test_connection_closed_exception_reports_received_close_frame(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    fake_socket.fail(ConnectionClosedError(Close(4009, "session timed out"), None))
    await _wait_closed(session)

    assert recorder.closes == [GatewayClosed(code=4009, reason="session timed out")]
    assert recorder.errors == []


@pytest.mark.anyio
async def test_close_followed_by_error_transitions_only_once(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    fake_socket.remote_close(1001, "going away")
    await _wait_closed(session)
    await session._finish_error(RuntimeError("late transport error"))
    await session._finish_closed(1006, "late close")
    await session.close()

    assert len(recorder.closes) == 1
    assert recorder.closes[0].code == 1001
    assert recorder.errors == []
    assert session.snapshot().close_code == 1001


@pytest.mark.anyio
async def test_transport_error_reports_error_and_closes_socket(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    boom = OSError("connection reset")
    fake_socket.push("before")
    fake_socket.fail(boom)
    await _wait_closed(session)
    await session.close()

    assert [message.data for message in recorder.messages] == ["before"]
    assert [error.error for error in recorder.errors] == [boom]
    assert recorder.closes == []
    assert fake_socket.close_calls == [(1011, "client error")]
    assert session.snapshot().error is boom


@pytest.mark.anyio
async def test_failing_message_handler_ends_session_with_error(
    fake_socket: FakeWebSocket,
) -> None:
    errors: list[GatewayError] = []

    async def failing_handler(_message: GatewayMessage) -> None:
        raise ValueError("bad frame")

    async def on_error(error: GatewayError) -> None:
        errors.append(error)

    session = GatewaySession(
        on_message=failing_handler,
        on_error=on_error,
        connector=RecordingConnector(fake_socket),
    )
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()
    fake_socket.push("frame")
    await _wait_closed(session)

    assert len(errors) == 1
    assert isinstance(errors[0].error, ValueError)
    assert session.state is SessionState.CLOSED


@pytest.mark.anyio
async def test_explicit_close_reports_client_initiated_close(
    fake_socket: FakeWebSocket,
) -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector(fake_socket))
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()

    await session.close()
    await session.close()
    await _wait_closed(session)

    assert recorder.closes == [
        GatewayClosed(code=1000, reason="client shutdown", initiated_by_client=True)
    ]
    assert fake_socket.close_calls == [(1000, "client shutdown")]
    assert session.state is SessionState.CLOSED


@pytest.mark.anyio
async def test_close_before_connect_is_silent() -> None:
    recorder = _Recorder()
    session = recorder.session(RecordingConnector())

    await session.close()

    assert session.state is SessionState.CLOSED
    assert recorder.closes == []
    await _wait_closed(session)


@pytest.mark.anyio
async def test_connect_failure_marks_session_closed() -> None:
    connector = RecordingConnector(error=OSError("dns failure"))
    recorder = _Recorder()
    session = recorder.session(connector)
    await session.resolve_endpoint(_StaticEndpoint())

    with pytest.raises(GatewayConnectFailed) as excinfo:
        await session.connect()

    assert excinfo.value.__cause__ is None
    assert connector.urls == ["wss://gateway.example"]
    assert session.state is SessionState.CLOSED
    assert isinstance(session.snapshot().error, OSError)
    assert recorder.errors == []


@pytest.mark.anyio
async def test_open_timeout_bounds_connect() -> None:
    async def hanging_connector(_url: str) -> FakeWebSocket:
        await asyncio.sleep(60)
        raise AssertionError("unreachable")

    session = GatewaySession(connector=hanging_connector, open_timeout=0.01)
    await session.resolve_endpoint(_StaticEndpoint())

    with pytest.raises(GatewayConnectFailed):
        await session.connect()

    assert session.state is SessionState.CLOSED


@pytest.mark.anyio
async def test_closed_session_can_be_reopened_with_new_connection() -> None:
    first, second = FakeWebSocket(), FakeWebSocket()
    connector = RecordingConnector(first, second)
    recorder = _Recorder()
    session = recorder.session(connector)
    endpoint = _StaticEndpoint()

    await session.resolve_endpoint(endpoint)
    await session.connect()
    with pytest.raises(ConnectionNotReady):
        await session.resolve_endpoint(endpoint)
    first.remote_close(4000, "reconnect")
    await _wait_closed(session)

    await session.resolve_endpoint(endpoint)
    await session.connect()
    second.push("hello again")
    second.remote_close(1000, "")
    await _wait_closed(session)

    assert endpoint.calls == 2
    assert connector.urls == ["wss://gateway.example", "wss://gateway.example"]
    assert [message.data for message in recorder.messages] == ["hello again"]
    assert [closed.code for closed in recorder.closes] == [4000, 1000]


@pytest.mark.anyio
async def test_event_queue_yields_messages_then_terminal_event(
    fake_socket: FakeWebSocket,
) -> None:
    events = GatewayEventQueue()
    session = GatewaySession(
        on_message=events.on_message,
        on_close=events.on_close,
        on_error=events.on_error,
        connector=RecordingConnector(fake_socket),
    )
    await session.resolve_endpoint(_StaticEndpoint())
    await session.connect()
    fake_socket.push("a")
    fake_socket.push("b")
    fake_socket.remote_close(1000, "bye")

    collected = [event async for event in events]

    assert collected == [
        GatewayMessage(data="a", index=0),
        GatewayMessage(data="b", index=1),
        GatewayClosed(code=1000, reason="bye"),
    ]


def test_close_helpers_read_received_close_frame() -> None:
    exc = ConnectionClosedError(Close(4004, "authentication failed"), None)
    assert gateway_close_code(exc) == 4004
    assert gateway_close_reason(exc) == "authentication failed"
    assert gateway_close_code(RuntimeError("no code")) is None
    assert gateway_close_reason(RuntimeError("no reason")) == ""
