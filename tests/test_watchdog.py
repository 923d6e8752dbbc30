"""
不活动看门狗测试
"""

import asyncio
from unittest.mock import Mock

import pytest

from shellrelay.watchdog import InactivityWatchdog, inactivity_notice


class TestInactivityWatchdog:
    """测试看门狗"""

    @pytest.mark.asyncio
    async def test_expire(self):
        """测试超时回调带上当前代数"""
        on_expire = Mock()
        watchdog = InactivityWatchdog(0.05, on_expire)
        watchdog.start()
        generation = watchdog.generation

        await asyncio.sleep(0.1)

        on_expire.assert_called_once_with(generation)
        assert watchdog.armed is False
        assert watchdog.is_current(generation)

    @pytest.mark.asyncio
    async def test_start_keeps_deadline(self):
        """测试 start 不会推迟已在计时的截止时间"""
        watchdog = InactivityWatchdog(300, Mock())
        watchdog.start()
        deadline = watchdog.deadline

        await asyncio.sleep(0.01)
        watchdog.start()

        assert watchdog.deadline == deadline
        watchdog.cancel()

    @pytest.mark.asyncio
    async def test_reset_pushes_deadline(self):
        """测试 reset 重新开始倒计时"""
        watchdog = InactivityWatchdog(300, Mock())
        watchdog.start()
        deadline = watchdog.deadline

        await asyncio.sleep(0.01)
        watchdog.reset()

        assert watchdog.deadline > deadline
        assert watchdog.deadline >= asyncio.get_running_loop().time() + 299
        watchdog.cancel()

    @pytest.mark.asyncio
    async def test_reset_delays_expiry(self):
        """测试重置后在 TTL 内不会超时"""
        on_expire = Mock()
        watchdog = InactivityWatchdog(0.1, on_expire)
        watchdog.start()

        await asyncio.sleep(0.06)
        watchdog.reset()
        await asyncio.sleep(0.06)
        on_expire.assert_not_called()

        await asyncio.sleep(0.1)
        on_expire.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel(self):
        """测试取消"""
        on_expire = Mock()
        watchdog = InactivityWatchdog(0.05, on_expire)
        watchdog.start()
        watchdog.cancel()

        await asyncio.sleep(0.1)

        on_expire.assert_not_called()
        assert watchdog.armed is False
        assert watchdog.deadline is None

    @pytest.mark.asyncio
    async def test_stale_generation(self):
        """测试超时后重新计时，旧的超时事件失效"""
        on_expire = Mock()
        watchdog = InactivityWatchdog(0.05, on_expire)
        watchdog.start()
        await asyncio.sleep(0.1)
        generation = on_expire.call_args.args[0]

        watchdog.reset()

        assert not watchdog.is_current(generation)
        watchdog.cancel()


class TestInactivityNotice:
    """测试超时提示"""

    def test_notice_names_ttl(self):
        """测试提示中包含 TTL"""
        assert inactivity_notice(300) == b"ACTIVELY CLOSED SSH CONNECTION (inactivity for 300s)"
        assert inactivity_notice(2.5) == b"ACTIVELY CLOSED SSH CONNECTION (inactivity for 2.5s)"

    def test_large_ttl_not_in_exponent_form(self):
        """测试较大的 TTL 按普通数字输出"""
        assert inactivity_notice(1234567) == (
            b"ACTIVELY CLOSED SSH CONNECTION (inactivity for 1234567s)"
        )
        assert inactivity_notice(86400.0) == (
            b"ACTIVELY CLOSED SSH CONNECTION (inactivity for 86400s)"
        )
