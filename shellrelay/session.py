"""
Shell-Relay 隧道会话

把上游 shell 流和下游 TCP 连接组合在一起，持续双向转发字节。

使用示例:
    from shellrelay import TunnelSession

    session = TunnelSession(
        source_address="127.0.0.1:22",
        destination_address="192.168.7.1:20000",
    )

    # 启动会话（阻塞，直到调用 stop()）
    await session.run()

    # 或在后台运行
    task = asyncio.create_task(session.run())
    ...
    session.stop()
    await task
"""

import asyncio
import logging
from functools import partial
from typing import Callable

from .buffer import FtpConsolidationBuffer
from .config import RelayConfig
from .downstream import DownstreamConnection
from .protocol import (
    DownstreamClosed,
    DownstreamData,
    SessionEvent,
    Shutdown,
    UpstreamData,
    WatchdogExpired,
)
from .stats import TrafficCounters, TrafficReporter
from .transport import ShellTransport, create_transport
from .upstream import UpstreamStream
from .watchdog import InactivityWatchdog, inactivity_notice

logger = logging.getLogger(__name__)


class TunnelSession:
    """
    隧道会话

    会话是唯一修改共享状态的对象：上游读取、下游读取和定时器只向队列投递事件，
    由 run() 按顺序逐个处理
    """

    def __init__(
        self,
        source_address: str | None = None,
        destination_address: str | None = None,
        time_to_live: float | None = None,
        ftp_mode: bool | None = None,
        config: RelayConfig | None = None,
        transport_factory: Callable[[], ShellTransport] | None = None,
    ):
        """
        初始化会话

        Args:
            source_address: 上游地址（host:port）
            destination_address: 下游地址（host:port）
            time_to_live: 上游不活动超时（秒）
            ftp_mode: 是否使用 FTP 模式
            config: 完整配置（可选，优先级低于直接参数）
            transport_factory: 上游传输工厂（默认根据配置创建）
        """
        overrides = {
            key: value
            for key, value in {
                "source_address": source_address,
                "destination_address": destination_address,
                "time_to_live": time_to_live,
                "ftp_mode": ftp_mode,
            }.items()
            if value is not None
        }
        if config:
            self.config = config.model_copy(update=overrides)
        else:
            self.config = RelayConfig(**overrides)

        cfg = self.config
        self.counters = TrafficCounters()
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._running = False

        self.watchdog = InactivityWatchdog(cfg.time_to_live, self._on_watchdog_expired)
        self.upstream = UpstreamStream(
            cfg.source_address,
            transport_factory or partial(create_transport, cfg),
            self.watchdog,
            on_data=self._on_upstream_data,
            read_poll_interval=cfg.read_poll_interval,
            max_write_errors=cfg.max_write_errors,
        )
        self.buffer = (
            FtpConsolidationBuffer(self._deliver, delay=cfg.ftp_flush_delay)
            if cfg.ftp_mode
            else None
        )
        self.downstream = DownstreamConnection(
            cfg.destination_address,
            self.counters,
            post=self.post,
            buffer=self.buffer,
            connect_timeout=cfg.connect_timeout,
            reconnect_interval=cfg.reconnect_interval,
            reconnect_backoff=cfg.reconnect_backoff,
            max_reconnect_interval=cfg.max_reconnect_interval,
            read_chunk_size=cfg.read_chunk_size,
        )
        self.reporter = TrafficReporter(self.counters, interval=cfg.stats_interval)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def source_address(self) -> str:
        return self.config.source_address

    @property
    def destination_address(self) -> str:
        return self.config.destination_address

    @property
    def time_to_live(self) -> float:
        return self.config.time_to_live

    def post(self, event: SessionEvent) -> None:
        """投递事件"""
        self._queue.put_nowait(event)

    def stop(self) -> None:
        """停止会话（run() 处理完已入队的事件后返回）"""
        self.post(Shutdown())

    async def run(self) -> None:
        """
        运行会话

        启动下游连接和上游流，然后按顺序处理事件，直到调用 stop()
        """
        self._running = True
        logger.info(
            f"会话启动: {self.source_address} <-> {self.destination_address} "
            f"(TTL={self.time_to_live:g}s, FTP={'开' if self.config.ftp_mode else '关'})"
        )

        try:
            self.reporter.start()
            self.downstream.start()
            try:
                await self.upstream.open()
            except Exception as e:
                logger.error(f"打开上游错误: {e}", exc_info=True)

            while self._running:
                event = await self._queue.get()
                try:
                    await self._dispatch(event)
                except Exception as e:
                    logger.error(f"处理事件错误: {event.type.value}, {e}", exc_info=True)
        finally:
            self._running = False
            await self._shutdown()

    async def _dispatch(self, event: SessionEvent) -> None:
        if isinstance(event, DownstreamData):
            await self.upstream.write(event.data)

        elif isinstance(event, UpstreamData):
            self.downstream.send(event.data)

        elif isinstance(event, WatchdogExpired):
            await self._handle_watchdog_expired(event)

        elif isinstance(event, DownstreamClosed):
            self.downstream.handle_closed(event.generation, event.error)

        elif isinstance(event, Shutdown):
            self._running = False

        else:
            logger.warning(f"未知事件类型: {type(event)}")

    async def _handle_watchdog_expired(self, event: WatchdogExpired) -> None:
        if not self.watchdog.is_current(event.generation):
            logger.debug("忽略过期的看门狗事件")
            return

        if self.downstream.is_connected:
            self.downstream.write(inactivity_notice(self.watchdog.time_to_live))

        logger.info(f"上游 {self.watchdog.time_to_live:g}s 无写入，主动关闭")
        await self.upstream.close()

    def _on_upstream_data(self, data: bytes) -> None:
        self.post(UpstreamData(data=data))

    def _on_watchdog_expired(self, generation: int) -> None:
        self.post(WatchdogExpired(generation=generation))

    def _deliver(self, data: bytes) -> bool:
        return self.downstream.write(data)

    async def _shutdown(self) -> None:
        self.watchdog.cancel()
        if self.buffer:
            self.buffer.cancel()
        await self.reporter.stop()
        await self.upstream.close()
        await self.downstream.close()
        logger.info(
            f"会话已停止: SSH={self.counters.bytes_from_upstream} 字节, "
            f"Server={self.counters.bytes_from_downstream} 字节"
        )


async def run_tunnel_session(
    source_address: str,
    destination_address: str,
    time_to_live: float = 300.0,
    ftp_mode: bool = False,
) -> None:
    """
    运行隧道会话

    便捷函数，用于快速启动会话

    Args:
        source_address: 上游地址（host:port）
        destination_address: 下游地址（host:port）
        time_to_live: 上游不活动超时（秒）
        ftp_mode: 是否使用 FTP 模式
    """
    session = TunnelSession(
        source_address=source_address,
        destination_address=destination_address,
        time_to_live=time_to_live,
        ftp_mode=ftp_mode,
    )
    await session.run()
