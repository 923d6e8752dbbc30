"""
FTP 合并缓冲

上游按行读取会把一次文件传输拆成很多小块，FTP 模式下先把数据累积起来，
静默一段时间后再一次性写入下游。
"""

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class FtpConsolidationBuffer:
    """
    去抖动缓冲

    每次 append 都会推迟刷新时间，最多只有一个待执行的刷新定时器
    """

    def __init__(self, sink: Callable[[bytes], bool], delay: float = 0.2):
        """
        Args:
            sink: 写入下游的函数，返回是否已送达
            delay: 静默时间（秒）
        """
        self._sink = sink
        self.delay = delay
        self._pending = bytearray()
        self._flush_handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_handle is not None

    def append(self, data: bytes) -> None:
        self._pending.extend(data)
        if self._flush_handle:
            self._flush_handle.cancel()
        loop = asyncio.get_running_loop()
        self._flush_handle = loop.call_later(self.delay, self.flush)

    def flush(self) -> None:
        """把全部缓冲数据一次写入下游（下游未连接时丢弃）"""
        if self._flush_handle:
            self._flush_handle.cancel()
            self._flush_handle = None

        if not self._pending:
            return

        data = bytes(self._pending)
        self._pending.clear()
        if not self._sink(data):
            logger.debug(f"下游未连接，丢弃 {len(data)} 字节缓冲数据")

    def cancel(self) -> None:
        """取消刷新并丢弃缓冲数据"""
        if self._flush_handle:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._pending.clear()
