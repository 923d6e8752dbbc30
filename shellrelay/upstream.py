"""
上游流（远程 shell）

负责打开、读取、写入和关闭上游流，并统计写入失败次数。

读取采用轮询方式：读到数据时在下一轮事件循环立即继续读取，
没有数据时等待 read_poll_interval 秒后再读。
"""

import asyncio
import logging
from typing import Callable

from .errors import AddressFormatError, CloseError, ConnectError, WriteError
from .protocol import parse_address
from .transport import ShellTransport
from .watchdog import InactivityWatchdog

logger = logging.getLogger(__name__)


class UpstreamStream:
    """上游流"""

    def __init__(
        self,
        address: str,
        transport_factory: Callable[[], ShellTransport],
        watchdog: InactivityWatchdog,
        on_data: Callable[[bytes], None],
        read_poll_interval: float = 0.5,
        max_write_errors: int = 5,
    ):
        """
        初始化上游流

        Args:
            address: 上游地址（host:port）
            transport_factory: 每次打开时创建新传输的工厂函数
            watchdog: 不活动看门狗（打开时启动，写入时重置）
            on_data: 读到数据时的回调
            read_poll_interval: 无数据时的轮询间隔（秒）
            max_write_errors: 写入失败多少次后重建
        """
        self.address = address
        self.read_poll_interval = read_poll_interval
        self.max_write_errors = max_write_errors
        self.write_failure_count = 0

        self._transport_factory = transport_factory
        self._watchdog = watchdog
        self._on_data = on_data
        self._transport: ShellTransport | None = None
        self._read_handle: asyncio.Handle | None = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def read_pending(self) -> bool:
        """是否有已安排的读取"""
        return self._read_handle is not None

    async def open(self) -> bool:
        """
        打开上游流

        失败时只记录日志，不自动重试（下一次写入时会再次尝试打开）

        Returns:
            是否打开成功
        """
        if self.is_open:
            return True

        try:
            endpoint = parse_address(self.address)
        except AddressFormatError as e:
            logger.error(f"上游地址错误: {e}")
            return False

        transport = self._transport_factory()
        try:
            await transport.open(endpoint)
        except ConnectError as e:
            logger.error(f"打开上游失败: {e}")
            return False

        self._transport = transport
        self.write_failure_count = 0
        logger.info(f"上游已打开: {endpoint}")

        self._watchdog.start()
        self._schedule_read(0)
        return True

    async def close(self) -> None:
        """关闭上游流并停止看门狗（关闭出错时仍标记为已关闭）"""
        if not self.is_open:
            return

        transport, self._transport = self._transport, None
        if self._read_handle:
            self._read_handle.cancel()
            self._read_handle = None
        self._watchdog.cancel()

        try:
            await transport.close()
        except CloseError as e:
            logger.critical(f"关闭上游出错: {e}")

        logger.info("上游已关闭")

    async def recreate(self) -> bool:
        """关闭并重新打开"""
        await self.close()
        return await self.open()

    async def write(self, data: bytes) -> bool:
        """
        写入上游

        未打开时先打开。无论成功与否都会重置看门狗。
        失败次数只在重新打开时清零，成功写入不会清零。

        Returns:
            是否完整写入
        """
        if not data:
            return True

        # 本次已尝试打开且失败时不再重建，下一次写入会再次尝试打开
        open_failed = not self.is_open and not await self.open()

        self._watchdog.reset()

        try:
            if not self.is_open:
                raise WriteError("上游未打开")
            written = self._transport.write(data)
            if written != len(data):
                raise WriteError(f"只写入了 {written}/{len(data)} 字节")
            return True
        except WriteError as e:
            self.write_failure_count += 1
            logger.warning(
                f"写入上游失败 ({self.write_failure_count}/{self.max_write_errors}): {e}"
            )

        if self.write_failure_count >= self.max_write_errors and not open_failed:
            logger.warning("上游写入失败次数过多，重建连接")
            await self.recreate()
        return False

    def _schedule_read(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        if delay > 0:
            self._read_handle = loop.call_later(delay, self._read)
        else:
            self._read_handle = loop.call_soon(self._read)

    def _read(self) -> None:
        self._read_handle = None
        if not self.is_open:
            return

        line = self._transport.read_line()
        if line:
            self._on_data(line)
            self._schedule_read(0)
        else:
            self._schedule_read(self.read_poll_interval)
