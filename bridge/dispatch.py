from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set, Union

from shared.envelope import Packet
from shared.log import get_logger, log_packet

logger = get_logger(__name__)

PacketHandler = Callable[[Packet], Union[None, Awaitable[None]]]


class PacketDispatcher(Protocol):
    """Receives every packet decoded by the bridge. Return values are ignored."""

    def dispatch_packet(self, packet: Packet) -> Any: ...


class PacketRouter:
    """
    Routes packets to handlers by command.

    Handlers may be plain functions or coroutine functions; coroutines run as
    background tasks so the receive loop never waits on a handler.
    """

    def __init__(self, default_handler: Optional[PacketHandler] = None) -> None:
        self.handlers: Dict[str, PacketHandler] = {}
        self.default_handler = default_handler
        self._background_tasks: Set[asyncio.Task] = set()

    def on(self, command: str, handler: PacketHandler) -> None:
        self.handlers[command] = handler

    def dispatch_packet(self, packet: Packet) -> None:
        handler = self.handlers.get(packet.command, self.default_handler)
        if handler is None:
            log_packet(logger, "debug", "No handler for packet", packet=packet)
            return
        result = handler(packet)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._track_background_task(task)

    def _track_background_task(self, task: asyncio.Future) -> None:
        """Keep a strong reference to handler tasks until completion."""
        self._background_tasks.add(task)

        def _done(_task: asyncio.Future) -> None:
            self._background_tasks.discard(_task)
            if not _task.cancelled() and _task.exception() is not None:
                logger.error(f"Packet handler failed: {_task.exception()}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for handler tasks still running"""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
