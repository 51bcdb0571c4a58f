"""
Relay connection lifecycle.

One ConnectionManager owns one logical WebSocket connection to the hub:
connecting with endpoint fallback, retrying forever, heartbeating while
open, dispatching inbound envelopes and shutting down exactly once.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

import websockets
from pydantic import ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
    SecurityError,
)

from relay.infra.logging_config import get_logger
from relay.schemas.canonical import Message, User
from relay.schemas.envelope import (
    BaseEnvelope,
    CommandEnvelope,
    EnvelopeType,
    InitEnvelope,
    MessageEnvelope,
    PingEnvelope,
    parse_envelope,
)

logger = get_logger("connection")

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_RETRY_DELAY = 5.0
DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_PING_INTERVAL = 30.0

CLOSE_CODE_LABELS = {1005: "Disconnected", 1006: "Terminated"}

MessageHandler = Callable[[Message], Awaitable[Any]]
CommandHandler = Callable[[CommandEnvelope], Awaitable[Any]]
Connector = Callable[..., Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]

# Endpoint answered and refused (HTTP status, redirect loop, bad URI): configuration problem
REJECTION_ERRORS = (InvalidStatus, SecurityError, InvalidURI)
# Endpoint not reachable right now, including a peer that hangs up mid-handshake:
# try the next endpoint
NETWORK_ERRORS = (OSError, asyncio.TimeoutError, InvalidHandshake)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ConnectionManager:
    """
    Keeps exactly one relay connection alive under network churn.

    ``connector`` and ``sleep`` default to ``websockets.connect`` and
    ``asyncio.sleep``; both are injectable so independent managers can run
    side by side in tests.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        bot: str,
        platform: str,
        identity: User,
        config: Optional[dict[str, Any]] = None,
        on_message: Optional[MessageHandler] = None,
        on_command: Optional[CommandHandler] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        if not endpoints:
            raise ValueError("At least one relay endpoint is required")
        self.endpoints = list(endpoints)
        self.bot = bot
        self.platform = platform
        self.identity = identity
        self.config = config or {}
        self.connect_timeout = connect_timeout
        self.retry_delay = retry_delay
        self.reconnect_delay = reconnect_delay
        self.ping_interval = ping_interval
        self._on_message = on_message
        self._on_command = on_command
        self._connector = connector or websockets.connect
        self._sleep = sleep or asyncio.sleep

        self.state = ConnectionState.DISCONNECTED
        self.endpoint: Optional[str] = None
        self._ws: Any = None
        self._lock = asyncio.Lock()
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._run_task: Optional[asyncio.Task[None]] = None
        self._handler_tasks: set[asyncio.Task[Any]] = set()
        self._close_task: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("Connection state %s -> %s", self.state.value, state.value)
        self.state = state

    # Lifecycle

    async def run(self) -> None:
        """Connect, serve and reconnect until ``close()`` is called."""
        self._run_task = asyncio.current_task()
        logger.info("Starting relay connection...")
        try:
            while not self._closing:
                ws = await self._connect()
                if ws is None:
                    logger.info(
                        "Waiting %.1fs for relay server to be available...",
                        self.retry_delay,
                    )
                    await self._sleep(self.retry_delay)
                    continue
                if self._closing:
                    with contextlib.suppress(ConnectionClosed, OSError):
                        await ws.close()
                    break

                await self._on_open(ws)
                await self._read_loop(ws)
                await self._on_close(ws)

                if self._closing:
                    break
                self._set_state(ConnectionState.RECONNECTING)
                await self._sleep(self.reconnect_delay)
        except asyncio.CancelledError:
            if not self._closing:
                raise
        finally:
            self._run_task = None

    async def _connect(self) -> Any:
        """Try each endpoint in order. Return an open socket or None."""
        self._set_state(ConnectionState.CONNECTING)
        for index, url in enumerate(self.endpoints):
            label = "primary" if index == 0 else "fallback"
            try:
                ws = await self._connector(url, open_timeout=self.connect_timeout)
            except REJECTION_ERRORS as e:
                # The endpoint answered; another endpoint will not fix a config problem
                logger.error("Relay server %s rejected the connection: %s", url, e)
                break
            except NETWORK_ERRORS as e:
                logger.warning(
                    "Relay %s endpoint %s unavailable: %s",
                    label,
                    url,
                    str(e) or type(e).__name__,
                )
                continue
            self.endpoint = url
            logger.info("Connected to %s relay endpoint %s", label, url)
            return ws
        self._set_state(ConnectionState.DISCONNECTED)
        return None

    async def _on_open(self, ws: Any) -> None:
        await self._stop_heartbeat()
        async with self._lock:
            self._ws = ws
            self._set_state(ConnectionState.CONNECTED)
        await self.send(
            InitEnvelope(
                bot=self.bot,
                platform=self.platform,
                user=self.identity,
                config=self.config,
            )
        )
        logger.info("Connected as @%s", self.identity.username)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(ws))
        self._heartbeat_task.add_done_callback(self._heartbeat_done)

    async def _on_close(self, ws: Any) -> None:
        await self._stop_heartbeat()
        async with self._lock:
            if self._ws is ws:
                self._ws = None
        code = getattr(ws, "close_code", None)
        label = CLOSE_CODE_LABELS.get(code)
        if self._closing:
            return
        if label:
            logger.warning(label)
        else:
            logger.warning("Relay connection closed (code=%s)", code)

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.dispatch(raw)
        except ConnectionClosed as e:
            logger.debug("Relay connection closed while reading: %s", e)

    # Heartbeat

    async def _heartbeat_loop(self, ws: Any) -> None:
        while True:
            await self._sleep(self.ping_interval)
            if self._ws is not ws:
                return
            logger.debug("ping")
            await self.send(PingEnvelope(bot=self.bot, platform=self.platform))

    @staticmethod
    def _heartbeat_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Heartbeat stopped: %s", error, exc_info=error)

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # Outbound frames

    async def send(self, envelope: BaseEnvelope) -> bool:
        """Write one envelope. Returns False if it was dropped."""
        async with self._lock:
            if self._ws is None or not self.connected:
                logger.warning(
                    "Dropping %s envelope: relay not connected",
                    getattr(envelope, "type", "unknown"),
                )
                return False
            try:
                await self._ws.send(envelope.to_json())
            except ConnectionClosed as e:
                logger.warning("Relay send failed, connection closed: %s", e)
                return False
        return True

    # Inbound frames

    def dispatch(self, raw: Any) -> None:
        """Parse one frame and hand it to its handler. Bad frames are logged."""
        try:
            envelope = parse_envelope(raw)
        except ValidationError as e:
            logger.error("Malformed relay frame: %s", e)
            return

        if envelope.type == EnvelopeType.PONG.value:
            logger.debug("pong")
            return
        logger.info("Received %s", envelope.model_dump_json(by_alias=True, exclude_none=True))

        if isinstance(envelope, MessageEnvelope):
            if self._on_message is not None:
                self._spawn(self._on_message(envelope.message), envelope.type)
        elif isinstance(envelope, CommandEnvelope):
            if self._on_command is not None:
                self._spawn(self._on_command(envelope), envelope.type)
        else:
            logger.debug("Ignoring %s envelope from relay", envelope.type)

    def _spawn(self, coro: Awaitable[Any], kind: str) -> None:
        task = asyncio.ensure_future(coro)
        self._handler_tasks.add(task)

        def _done(finished: asyncio.Future) -> None:
            self._handler_tasks.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error("Handling %s envelope failed: %s", kind, error, exc_info=error)

        task.add_done_callback(_done)

    async def wait_for_handlers(self) -> None:
        """Wait until every in-flight envelope handler has finished."""
        while self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)

    # Shutdown

    async def close(self) -> None:
        """Shut down once; concurrent and repeated calls await the same sequence."""
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        logger.warning("Close relay connection")
        self._closing = True
        await self._stop_heartbeat()

        for task in list(self._handler_tasks):
            task.cancel()
        if self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)

        async with self._lock:
            ws, self._ws = self._ws, None
            self._set_state(ConnectionState.CLOSED)
        if ws is not None:
            with contextlib.suppress(ConnectionClosed, OSError):
                await ws.close()

        run_task = self._run_task
        if run_task is not None and run_task is not asyncio.current_task():
            run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run_task
