"""
测试配置和 Fixtures
"""

import asyncio
from collections import deque
from typing import AsyncGenerator

import pytest

from shellrelay.errors import CloseError, ConnectError, WriteError
from shellrelay.protocol import Endpoint


class FakeTransport:
    """内存中的上游传输"""

    def __init__(
        self,
        fail_open: bool = False,
        fail_writes: bool = False,
        short_writes: bool = False,
        fail_close: bool = False,
    ):
        self.fail_open = fail_open
        self.fail_writes = fail_writes
        self.short_writes = short_writes
        self.fail_close = fail_close

        self.endpoint: Endpoint | None = None
        self.lines: deque[bytes] = deque()
        self.written: list[bytes] = []
        self.closed = False

    async def open(self, endpoint: Endpoint) -> None:
        if self.fail_open:
            raise ConnectError(f"{endpoint}: Connection refused")
        self.endpoint = endpoint

    def read_line(self) -> bytes | None:
        return self.lines.popleft() if self.lines else None

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise WriteError("Broken pipe")
        if self.short_writes:
            self.written.append(data[:1])
            return 1
        self.written.append(data)
        return len(data)

    async def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise CloseError("close failed")


class FakeTransportFactory:
    """记录每次创建的传输，新传输继承当前的故障设置"""

    def __init__(self):
        self.created: list[FakeTransport] = []
        self.fail_open = False
        self.fail_writes = False
        self.short_writes = False
        self.fail_close = False

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(
            fail_open=self.fail_open,
            fail_writes=self.fail_writes,
            short_writes=self.short_writes,
            fail_close=self.fail_close,
        )
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class RecordingServer:
    """记录连接和收到数据的本地 TCP 服务"""

    def __init__(self):
        self.server: asyncio.AbstractServer | None = None
        self.writers: list[asyncio.StreamWriter] = []
        self.received = bytearray()
        self.connected = asyncio.Event()

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        self.connected.set()
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                self.received.extend(data)
        except ConnectionError:
            pass

    async def wait_connected(self, count: int = 1, timeout: float = 2.0) -> None:
        async def _wait():
            while len(self.writers) < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_wait(), timeout=timeout)

    async def wait_received(self, size: int, timeout: float = 2.0) -> None:
        async def _wait():
            while len(self.received) < size:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_wait(), timeout=timeout)

    def drop_clients(self) -> None:
        """主动关闭所有客户端连接"""
        for writer in self.writers:
            writer.close()

    async def close(self) -> None:
        self.drop_clients()
        if self.server:
            self.server.close()
            try:
                await asyncio.wait_for(self.server.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                pass


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
async def tcp_server() -> AsyncGenerator[RecordingServer, None]:
    """本地 TCP 服务"""
    server = RecordingServer()
    await server.start()
    yield server
    await server.close()


@pytest.fixture
async def closed_port() -> int:
    """一个没有监听的本地端口"""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port
