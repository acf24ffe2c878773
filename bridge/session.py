from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from bridge.config import BridgeConfig
from bridge.dispatch import PacketDispatcher
from bridge.identity import IdentityBootstrap, IdentityEnricher, SessionIdentity
from bridge.scheduler import IntervalScheduler
from shared.envelope import Packet, ProtocolError, create_call, decode_frame, encode_packet
from shared.log import get_logger, log_packet

logger = get_logger(__name__)

RECONNECT_TASK = "ws-reconnect"


class SessionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(eq=False)
class ConnectionScope:
    """
    Everything one connection attempt owns: the socket, the cancellation
    flag and the receive task. Replaced wholesale, never reused.
    """
    websocket: Optional[Any] = None
    receive_task: Optional[asyncio.Task] = None
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def cancel(self) -> None:
        self.cancelled.set()
        task = self.receive_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()


class BridgeSession:
    """
    Single persistent session to the helper endpoint.

    connect / disconnect / on_disconnect are the only state transitions and
    run under one lock. The receive loop captures its scope at spawn time;
    send reads the current scope once per call.
    """

    def __init__(
        self,
        config: BridgeConfig,
        dispatcher: Optional[PacketDispatcher] = None,
        *,
        scheduler: Optional[IntervalScheduler] = None,
        identity: Optional[SessionIdentity] = None,
        enricher: Optional[IdentityEnricher] = None,
        bootstrap: Optional[IdentityBootstrap] = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.scheduler = scheduler or IntervalScheduler()
        self.identity = identity or SessionIdentity()
        self.bootstrap = bootstrap or IdentityBootstrap(config.http_url, self.identity, enricher)
        self.state = SessionState.DISCONNECTED
        self._scope = ConnectionScope()
        self._state_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def scope(self) -> ConnectionScope:
        return self._scope

    async def __aenter__(self) -> 'BridgeSession':
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ========================================
    #           CONNECTION SUPERVISOR
    # ========================================

    async def start(self) -> bool:
        """First connection attempt; fall back to the reconnect policy on failure"""
        if await self.connect():
            return True
        self._schedule_reconnect()
        return False

    async def connect(self) -> bool:
        async with self._state_lock:
            if self.state is SessionState.CONNECTED:
                return True
            self.state = SessionState.CONNECTING

            stale, self._scope = self._scope, ConnectionScope()
            await self._release_scope(stale)
            scope = self._scope

            logger.info(f"Connecting to {self.config.ws_url}...")
            try:
                scope.websocket = await self._open_connection()
            except asyncio.CancelledError:
                self.state = SessionState.DISCONNECTED
                raise
            except Exception as e:
                self.state = SessionState.DISCONNECTED
                logger.error(f"Connect to {self.config.ws_url} failed: {e}")
                return False

            self.state = SessionState.CONNECTED
            scope.receive_task = asyncio.create_task(
                self._receive_loop(scope), name="bridge-receive-loop"
            )
            self.scheduler.cancel(RECONNECT_TASK)
            logger.info(f"Connected to {self.config.ws_url}")

        if self.config.bootstrap_identity:
            await self._run_identity_bootstrap()
        return True

    async def disconnect(self) -> None:
        """Best effort teardown; always leaves a fresh unconnected scope behind"""
        async with self._state_lock:
            stale, self._scope = self._scope, ConnectionScope()
            self.state = SessionState.DISCONNECTED
        await self._release_scope(stale)

    async def on_disconnect(self, scope: Optional[ConnectionScope] = None) -> None:
        """The remote closed or the transport failed under the receive loop"""
        async with self._state_lock:
            if scope is not None and scope is not self._scope:
                logger.debug("Ignoring disconnect from a replaced connection")
                return
            if self.state is not SessionState.CONNECTED:
                return
            self.state = SessionState.DISCONNECTED
        logger.critical("WebSocket disconnected", extra={"endpoint": self.config.ws_url})
        self._schedule_reconnect()

    async def close(self) -> None:
        """Stop reconnecting, disconnect and release everything the bridge owns"""
        self.scheduler.cancel(RECONNECT_TASK)
        await self.disconnect()
        await self.bootstrap.close()

    def _schedule_reconnect(self) -> None:
        self.scheduler.interval(RECONNECT_TASK, self.config.reconnect_interval, self._reconnect_tick)

    async def _reconnect_tick(self) -> None:
        if await self.connect():
            self.scheduler.cancel(RECONNECT_TASK)
        else:
            logger.warning(f"Reconnecting to {self.config.ws_url} in {self.config.reconnect_interval}s")

    async def _open_connection(self) -> Any:
        return await websockets.connect(
            self.config.ws_url,
            open_timeout=self.config.open_timeout,
            close_timeout=self.config.close_timeout,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
            max_size=self.config.max_message_size,
        )

    async def _release_scope(self, scope: ConnectionScope) -> None:
        scope.cancel()
        websocket, scope.websocket = scope.websocket, None
        if websocket is not None:
            try:
                await asyncio.wait_for(websocket.close(code=1000), self.config.close_timeout)
            except Exception as e:
                logger.debug(f"Close handshake failed ({e!r}), aborting transport")
                self._abort_transport(websocket)
        task = scope.receive_task
        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Receive loop ended with {e!r}")

    @staticmethod
    def _abort_transport(websocket: Any) -> None:
        transport = getattr(websocket, "transport", None)
        if transport is None:
            return
        try:
            transport.abort()
        except Exception as e:
            logger.debug(f"Ignoring error while aborting transport: {e}")

    async def _run_identity_bootstrap(self) -> None:
        try:
            await self.bootstrap.run()
        except Exception as e:
            logger.warning(f"Identity bootstrap failed: {e}")

    # ========================================
    #           RECEIVE LOOP
    # ========================================

    async def _receive_loop(self, scope: ConnectionScope) -> None:
        websocket = scope.websocket
        fragments: List[Union[str, bytes]] = []
        while self.connected and not scope.is_cancelled:
            try:
                async for fragment in websocket.recv_streaming():
                    fragments.append(fragment)
            except ConnectionClosed as e:
                fragments.clear()
                logger.info(f"Remote closed the connection ({e})")
                await self.on_disconnect(scope)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                fragments.clear()
                if websocket.state is not State.OPEN:
                    logger.critical(f"WS fetch message error: {e}")
                    await self.on_disconnect(scope)
                    return
                logger.error(f"WS read error, continuing: {e}")
                continue

            message, fragments = fragments, []
            self._handle_message(message)

    def _handle_message(self, fragments: List[Union[str, bytes]]) -> None:
        try:
            if fragments and isinstance(fragments[0], bytes):
                text = b"".join(fragments).decode("utf-8")
            else:
                text = "".join(fragments)
            packet = decode_frame(text)
        except (ProtocolError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping malformed message: {e}")
            return

        if packet is None:
            logger.debug("Message without payload, nothing to dispatch")
            return
        if not packet.payload:
            log_packet(logger, "debug", "Empty payload, nothing to dispatch", packet=packet)
            return
        if self.dispatcher is None:
            log_packet(logger, "debug", "No dispatcher, dropping packet", packet=packet)
            return
        try:
            self.dispatcher.dispatch_packet(packet)
        except Exception as e:
            log_packet(logger, "error", f"Dispatcher failed: {e}", packet=packet)

    # ========================================
    #           SEND PATH
    # ========================================

    async def send(self, packet: Packet) -> bool:
        if not self.connected:
            return False
        try:
            frame = encode_packet(packet)
        except (ProtocolError, TypeError, ValueError, AttributeError) as e:
            log_packet(logger, "warning", f"Cannot encode packet: {e}", packet=packet)
            return False
        if await self._write(frame):
            log_packet(logger, "debug", "Sent packet", packet=packet)
            return True
        return False

    async def call(self, func: str) -> bool:
        """Fire a one-shot call envelope over the socket"""
        if not self.connected:
            return False
        return await self._write(create_call(func).to_json())

    async def _write(self, frame: str) -> bool:
        websocket = self._scope.websocket
        if websocket is None:
            return False
        try:
            await websocket.send(frame)
            return True
        except Exception as e:
            logger.warning(f"Send failed: {e}")
            return False
