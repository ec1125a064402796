from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed

from .constants import DEFAULT_GATEWAY_CLOSE_CODE
from .core.logging_utils import log_event
from .errors import ConnectionNotReady, GatewayConnectFailed, GatewayUnavailable

Frame = Union[str, bytes]


class SessionState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING_ENDPOINT = "resolving_endpoint"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True)
class GatewayMessage:
    data: Frame
    index: int


@dataclass(frozen=True)
class GatewayClosed:
    code: Optional[int]
    reason: str
    initiated_by_client: bool = False


@dataclass(frozen=True)
class GatewayError:
    error: BaseException


GatewayEvent = Union[GatewayMessage, GatewayClosed, GatewayError]


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    url: Optional[str]
    has_connection: bool
    frames_delivered: int
    close_code: Optional[int]
    close_reason: Optional[str]
    error: Optional[BaseException]


class GatewayEndpointSource(Protocol):
    async def fetch_gateway_url(self) -> str: ...


MessageHandler = Callable[[GatewayMessage], Awaitable[None]]
CloseHandler = Callable[[GatewayClosed], Awaitable[None]]
ErrorHandler = Callable[[GatewayError], Awaitable[None]]
Connector = Callable[[str], Awaitable[Any]]


def gateway_close_code(exc: BaseException) -> int | None:
    received = getattr(exc, "rcvd", None)
    received_code = getattr(received, "code", None)
    if isinstance(received_code, int):
        return received_code
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    return None


def gateway_close_reason(exc: BaseException) -> str:
    received = getattr(exc, "rcvd", None)
    reason = getattr(received, "reason", None)
    if reason is None:
        reason = getattr(exc, "reason", None)
    return reason if isinstance(reason, str) else ""


class GatewaySession:
    """Single-writer owner of one gateway connection and its lifecycle.

    Frames are handed to ``on_message`` one at a time, in arrival order; the
    next frame is not read until the handler returns. The first close, error
    or shutdown moves the session to ``CLOSED`` and is reported exactly once
    through ``on_close`` or ``on_error``. Reconnecting is left to the holder,
    which re-runs ``resolve_endpoint`` and ``connect`` on a closed session.
    """

    def __init__(
        self,
        *,
        on_message: Optional[MessageHandler] = None,
        on_close: Optional[CloseHandler] = None,
        on_error: Optional[ErrorHandler] = None,
        connector: Optional[Connector] = None,
        open_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error
        self._connector = connector
        self._open_timeout = open_timeout
        self._logger = logger or logging.getLogger(__name__)
        self._state = SessionState.IDLE
        self._url: Optional[str] = None
        self._websocket: Any = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._frames_delivered = 0
        self._close_code: Optional[int] = None
        self._close_reason: Optional[str] = None
        self._error: Optional[BaseException] = None
        self._closed_event = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def url(self) -> Optional[str]:
        return self._url

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            url=self._url,
            has_connection=self._websocket is not None,
            frames_delivered=self._frames_delivered,
            close_code=self._close_code,
            close_reason=self._close_reason,
            error=self._error,
        )

    async def resolve_endpoint(self, source: GatewayEndpointSource) -> str:
        if self._state not in (SessionState.IDLE, SessionState.CLOSED):
            raise ConnectionNotReady(
                f"Cannot resolve the gateway endpoint while {self._state.value}."
            )
        previous_state = self._state
        self._state = SessionState.RESOLVING_ENDPOINT
        try:
            url = await source.fetch_gateway_url()
        except BaseException as exc:
            # A shutdown requested mid-resolve keeps the session closed.
            if self._state is SessionState.RESOLVING_ENDPOINT:
                self._state = previous_state
            if isinstance(exc, GatewayUnavailable):
                log_event(
                    self._logger,
                    logging.WARNING,
                    "discord.gateway.resolve_failed",
                    state=self._state.value,
                )
            raise
        self._url = url
        log_event(self._logger, logging.INFO, "discord.gateway.resolved", url=url)
        return url

    async def connect(self) -> None:
        """Open the WebSocket and start delivering frames in the background."""
        if self._state is not SessionState.RESOLVING_ENDPOINT or not self._url:
            raise ConnectionNotReady("Discord Gateway URL is not set.")
        url = self._url
        self._state = SessionState.CONNECTING
        self._frames_delivered = 0
        self._close_code = None
        self._close_reason = None
        self._error = None
        self._closed_event = asyncio.Event()
        log_event(self._logger, logging.INFO, "discord.gateway.connecting", url=url)

        connector = self._connector or websockets.connect
        try:
            opening = connector(url)
            if self._open_timeout is not None:
                websocket = await asyncio.wait_for(opening, timeout=self._open_timeout)
            else:
                websocket = await opening
        except asyncio.CancelledError:
            self._state = SessionState.CLOSED
            self._closed_event.set()
            raise
        except Exception as exc:
            self._state = SessionState.CLOSED
            self._error = exc
            self._closed_event.set()
            log_event(
                self._logger,
                logging.WARNING,
                "discord.gateway.connect_failed",
                url=url,
                exc=exc,
            )
            raise GatewayConnectFailed() from None

        if self._state is not SessionState.CONNECTING:
            await self._close_socket(
                websocket, code=DEFAULT_GATEWAY_CLOSE_CODE, reason="client shutdown"
            )
            raise GatewayConnectFailed("Gateway session was closed while connecting.")

        self._websocket = websocket
        self._state = SessionState.CONNECTED
        log_event(self._logger, logging.INFO, "discord.gateway.connected", url=url)
        self._reader_task = asyncio.create_task(self._read_loop(websocket))

    async def close(
        self,
        code: int = DEFAULT_GATEWAY_CLOSE_CODE,
        reason: str = "client shutdown",
    ) -> None:
        """Shut the session down; a live connection reports one close event."""
        if self._state is SessionState.CLOSED:
            return
        was_connected = self._state is SessionState.CONNECTED
        self._state = SessionState.CLOSED
        if not was_connected:
            self._closed_event.set()
            return

        self._close_code = code
        self._close_reason = reason
        websocket = self._websocket
        self._websocket = None
        await self._cancel_reader()
        await self._close_socket(websocket, code=code, reason=reason)
        log_event(
            self._logger,
            logging.INFO,
            "discord.gateway.closed",
            code=code,
            reason=reason,
            initiated_by_client=True,
            frames_delivered=self._frames_delivered,
        )
        await self._notify(
            self._on_close,
            GatewayClosed(code=code, reason=reason, initiated_by_client=True),
        )
        self._closed_event.set()

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    async def _read_loop(self, websocket: Any) -> None:
        try:
            async for frame in websocket:
                await self._deliver(frame)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            await self._finish_closed(
                gateway_close_code(exc), gateway_close_reason(exc)
            )
            return
        except Exception as exc:
            await self._finish_error(exc)
            return
        close_reason = getattr(websocket, "close_reason", None)
        await self._finish_closed(
            getattr(websocket, "close_code", None),
            close_reason if isinstance(close_reason, str) else "",
        )

    async def _deliver(self, frame: Frame) -> None:
        message = GatewayMessage(data=frame, index=self._frames_delivered)
        if self._on_message is not None:
            await self._on_message(message)
        # Counted once the handler has returned.
        self._frames_delivered += 1

    async def _finish_closed(self, code: Optional[int], reason: str) -> None:
        if self._state is not SessionState.CONNECTED:
            return
        self._state = SessionState.CLOSED
        self._close_code = code
        self._close_reason = reason
        self._websocket = None
        log_event(
            self._logger,
            logging.INFO,
            "discord.gateway.closed",
            code=code,
            reason=reason,
            initiated_by_client=False,
            frames_delivered=self._frames_delivered,
        )
        await self._notify(self._on_close, GatewayClosed(code=code, reason=reason))
        self._closed_event.set()

    async def _finish_error(self, exc: BaseException) -> None:
        if self._state is not SessionState.CONNECTED:
            return
        self._state = SessionState.CLOSED
        self._error = exc
        websocket = self._websocket
        self._websocket = None
        log_event(
            self._logger,
            logging.WARNING,
            "discord.gateway.error",
            exc=exc,
            frames_delivered=self._frames_delivered,
        )
        await self._close_socket(websocket, code=1011, reason="client error")
        await self._notify(self._on_error, GatewayError(error=exc))
        self._closed_event.set()

    async def _notify(
        self, handler: Optional[Callable[[Any], Awaitable[None]]], event: Any
    ) -> None:
        if handler is None:
            return
        try:
            await handler(event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.gateway.handler_failed",
                event_type=type(event).__name__,
                exc=exc,
            )

    async def _cancel_reader(self) -> None:
        task = self._reader_task
        self._reader_task = None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_socket(self, websocket: Any, *, code: int, reason: str) -> None:
        if websocket is None:
            return
        try:
            await websocket.close(code=code, reason=reason)
        except Exception as exc:
            # Socket teardown after a remote failure often raises; the session is
            # already closed either way.
            self._logger.debug("Discord gateway socket close raised: %s", exc)


class GatewayEventQueue:
    """Sink bundle that turns session callbacks into an async iterator.

    Iteration yields every ``GatewayMessage`` and ends after the terminal
    ``GatewayClosed`` or ``GatewayError``.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[GatewayEvent] = asyncio.Queue()
        self._finished = False

    async def on_message(self, message: GatewayMessage) -> None:
        await self._queue.put(message)

    async def on_close(self, closed: GatewayClosed) -> None:
        await self._queue.put(closed)

    async def on_error(self, error: GatewayError) -> None:
        await self._queue.put(error)

    def __aiter__(self) -> "GatewayEventQueue":
        return self

    async def __anext__(self) -> GatewayEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if isinstance(event, (GatewayClosed, GatewayError)):
            self._finished = True
        return event
