"""
不活动看门狗

上游打开时启动倒计时，每次写入上游时重置。超时后由会话通知下游并关闭上游，
上游在下一次写入时重新打开。
"""

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


def inactivity_notice(time_to_live: float) -> bytes:
    """超时关闭上游时发给下游的提示"""
    return f"ACTIVELY CLOSED SSH CONNECTION (inactivity for {time_to_live:.15g}s)".encode()


class InactivityWatchdog:
    """
    单个倒计时定时器

    每次启动都分配新的代数（generation），超时回调带上该代数。
    已入队但随后被重置或取消的超时事件可通过 is_current() 识别并忽略。
    """

    def __init__(self, time_to_live: float, on_expire: Callable[[int], None]):
        self.time_to_live = time_to_live
        self._on_expire = on_expire
        self._handle: asyncio.TimerHandle | None = None
        self._generation = 0

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def deadline(self) -> float | None:
        """超时的事件循环时间，未启动时为 None"""
        return self._handle.when() if self._handle else None

    def start(self) -> None:
        """启动倒计时（已在计时时保持原截止时间）"""
        if self._handle is None:
            self._arm()

    def reset(self) -> None:
        """重新开始倒计时"""
        self.cancel()
        self._arm()

    def cancel(self) -> None:
        if self._handle:
            self._handle.cancel()
            self._handle = None
        self._generation += 1

    def is_current(self, generation: int) -> bool:
        """超时事件是否仍然有效"""
        return generation == self._generation and self._handle is None

    def _arm(self) -> None:
        self._generation += 1
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.time_to_live, self._expire, self._generation)

    def _expire(self, generation: int) -> None:
        self._handle = None
        logger.debug(f"看门狗超时: {self.time_to_live:g}s 内无上游写入")
        self._on_expire(generation)
