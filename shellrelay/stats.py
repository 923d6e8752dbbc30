"""
流量统计
"""

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class TrafficCounters:
    """双向转发字节数（只增不减）"""

    bytes_from_upstream: int = 0
    bytes_from_downstream: int = 0


class TrafficReporter:
    """定期输出流量统计（仅在有变化时输出）"""

    def __init__(self, counters: TrafficCounters, interval: float = 1.0):
        self.counters = counters
        self.interval = interval
        self._last = (0, 0)
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def report(self) -> bool:
        """输出一次统计，返回是否有变化"""
        current = (self.counters.bytes_from_upstream, self.counters.bytes_from_downstream)
        if current == self._last:
            return False

        logger.debug(f"流量统计: SSH={current[0]} 字节, Server={current[1]} 字节")
        self._last = current
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.report()
