"""
下游 TCP 连接

连接失败或对端关闭后按固定间隔自动重连，不限次数。
"""

import asyncio
import logging
from typing import Callable

from .buffer import FtpConsolidationBuffer
from .errors import AddressFormatError, ConnectError, PeerClosedError
from .protocol import (
    DownstreamClosed,
    DownstreamData,
    Endpoint,
    SessionEvent,
    parse_address,
)
from .stats import TrafficCounters

logger = logging.getLogger(__name__)


class DownstreamConnection:
    """
    下游连接

    任意时刻最多只有一个活动连接、一个进行中的连接尝试和一个待执行的重连
    """

    def __init__(
        self,
        address: str,
        counters: TrafficCounters,
        post: Callable[[SessionEvent], None],
        buffer: FtpConsolidationBuffer | None = None,
        connect_timeout: float = 15.0,
        reconnect_interval: float = 5.0,
        reconnect_backoff: float = 1.0,
        max_reconnect_interval: float | None = None,
        read_chunk_size: int = 65536,
    ):
        """
        初始化下游连接

        Args:
            address: 下游地址（host:port）
            counters: 流量计数器
            post: 向会话投递事件
            buffer: FTP 合并缓冲（为空时直接写入）
            connect_timeout: 连接超时（秒）
            reconnect_interval: 重连间隔（秒）
            reconnect_backoff: 连续失败时间隔的增长倍数
            max_reconnect_interval: 重连间隔上限（秒）
            read_chunk_size: 单次读取的最大字节数
        """
        self.address = address
        self.counters = counters
        self.buffer = buffer
        self.connect_timeout = connect_timeout
        self.reconnect_interval = reconnect_interval
        self.reconnect_backoff = reconnect_backoff
        self.max_reconnect_interval = max_reconnect_interval
        self.read_chunk_size = read_chunk_size

        self._post = post
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task | None = None
        self._connect_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._generation = 0
        self._failures = 0
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self._writer is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def start(self) -> None:
        """在后台发起连接（已连接、正在连接或已关闭时忽略）"""
        if self._closed or self.is_connected or self._connect_task:
            return
        self._connect_task = asyncio.create_task(self.connect())

    async def connect(self) -> bool:
        """
        连接下游

        失败时安排重连；地址格式错误时放弃，不重试

        Returns:
            是否连接成功
        """
        try:
            try:
                endpoint = parse_address(self.address)
            except AddressFormatError as e:
                logger.error(f"下游地址错误: {e}")
                return False

            self._retire()
            logger.info(f"正在连接到下游 {endpoint}...")

            try:
                reader, writer = await self._open(endpoint)
            except ConnectError as e:
                self._failures += 1
                logger.warning(f"连接下游失败: {e}")
                self.schedule_reconnect()
                return False

            self._writer = writer
            self._failures = 0
            self._generation += 1
            self._read_task = asyncio.create_task(
                self._read_loop(reader, self._generation)
            )
            logger.info(f"已连接到下游: {endpoint}")
            return True
        finally:
            self._connect_task = None

    def next_delay(self) -> float:
        """下一次重连的等待时间"""
        delay = self.reconnect_interval * (
            self.reconnect_backoff ** max(self._failures - 1, 0)
        )
        if self.max_reconnect_interval is not None:
            delay = min(delay, self.max_reconnect_interval)
        return delay

    def schedule_reconnect(self) -> None:
        """安排重连（已有待执行的重连时忽略）"""
        if self._closed or self._reconnect_handle:
            return

        delay = self.next_delay()
        logger.info(f"{delay:g}秒后重连下游")
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._reconnect)

    def handle_closed(self, generation: int, error: str | None = None) -> None:
        """处理连接断开（过期的通知会被忽略）"""
        if generation != self._generation or not self.is_connected:
            return

        if error:
            logger.warning(f"下游连接断开: {error}")
        else:
            logger.warning("下游连接已被对端关闭")

        self._retire()
        self.schedule_reconnect()

    def send(self, data: bytes) -> None:
        """
        转发上游数据

        无论是否有活动连接都计入 bytes_from_upstream
        """
        self.counters.bytes_from_upstream += len(data)
        if not self.is_connected:
            return

        if self.buffer is not None:
            self.buffer.append(data)
        else:
            self.write(data)

    def write(self, data: bytes) -> bool:
        """直接写入活动连接，返回是否送达"""
        if not self._writer or self._writer.is_closing():
            return False
        try:
            self._writer.write(data)
        except OSError as e:
            logger.warning(f"写入下游失败: {e}")
            return False
        return True

    async def close(self) -> None:
        """停止重连并关闭连接"""
        self._closed = True

        if self._reconnect_handle:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        for task in (self._connect_task, self._read_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._connect_task = None
        self._read_task = None

        writer, self._writer = self._writer, None
        if writer:
            try:
                writer.close()
                await writer.wait_closed()
            except OSError as e:
                logger.error(f"关闭下游连接出错: {e}")

    async def _open(
        self, endpoint: Endpoint
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError, UnicodeError) as e:
            raise ConnectError(f"{endpoint}: {str(e) or type(e).__name__}") from e

    def _retire(self) -> None:
        """释放旧连接"""
        if self._read_task:
            self._read_task.cancel()
            self._read_task = None

        writer, self._writer = self._writer, None
        if writer:
            writer.close()

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.start()

    async def _read_loop(self, reader: asyncio.StreamReader, generation: int) -> None:
        """持续读取下游数据并投递给会话"""
        error = None
        try:
            while True:
                data = await reader.read(self.read_chunk_size)
                if not data:
                    raise PeerClosedError("下游对端关闭连接")

                self.counters.bytes_from_downstream += len(data)
                self._post(DownstreamData(data=data))
        except PeerClosedError:
            pass
        except OSError as e:
            error = str(e) or type(e).__name__

        self._post(DownstreamClosed(generation=generation, error=error))
