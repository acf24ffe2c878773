import asyncio

from websockets.exceptions import ConnectionClosedOK
from websockets.frames import Close
from websockets.protocol import State


CLOSE = object()


class FakeTransport:
    def __init__(self) -> None:
        self.aborted = False

    def abort(self) -> None:
        self.aborted = True


class FakeWebSocket:
    """
    Scripted stand-in for a websockets client connection.

    Feed it with push(): a list of fragments is one message, CLOSE makes the
    next read raise ConnectionClosedOK, an exception instance is raised as is.
    """

    def __init__(self) -> None:
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent_messages: list[str] = []
        self.state = State.OPEN
        self.closed = False
        self.fail_send: Exception | None = None
        self.transport = FakeTransport()

    def push(self, item) -> None:
        self.inbox.put_nowait(item)

    def recv_streaming(self, decode=None):
        return self._stream()

    async def _stream(self):
        item = await self.inbox.get()
        if item is CLOSE:
            self.state = State.CLOSED
            raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)
        if isinstance(item, BaseException):
            raise item
        for fragment in item:
            yield fragment

    async def send(self, data: str) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.state = State.CLOSED


class RecordingDispatcher:
    def __init__(self) -> None:
        self.packets = []
        self.event = asyncio.Event()

    def dispatch_packet(self, packet) -> None:
        self.packets.append(packet)
        self.event.set()


class RecordingScheduler:
    """Records interval/cancel calls without running anything"""

    def __init__(self) -> None:
        self.active: dict[str, tuple] = {}
        self.armed: list[str] = []
        self.cancelled: list[str] = []

    def interval(self, name, period, callback) -> bool:
        if name in self.active:
            return False
        self.active[name] = (period, callback)
        self.armed.append(name)
        return True

    def cancel(self, name) -> bool:
        self.cancelled.append(name)
        return self.active.pop(name, None) is not None

    def is_active(self, name) -> bool:
        return name in self.active


async def wait_for(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False


