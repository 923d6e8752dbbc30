"""
Shell-Relay 会话事件定义

TunnelSession 是唯一持有会话状态的对象，所有事件通过一个队列按顺序处理。

事件类型:
- upstream_data: 从上游（远程 shell）读到的数据，转发到下游
- downstream_data: 从下游 TCP 连接收到的数据，写入上游
- watchdog_expired: 不活动看门狗超时
- downstream_closed: 下游连接断开（对端关闭或读取出错）
- shutdown: 停止会话
"""

from enum import Enum

from pydantic import BaseModel, Field

from .errors import AddressFormatError


class EventType(str, Enum):
    """事件类型"""

    # 数据转发
    UPSTREAM_DATA = "upstream_data"
    DOWNSTREAM_DATA = "downstream_data"

    # 生命周期
    WATCHDOG_EXPIRED = "watchdog_expired"
    DOWNSTREAM_CLOSED = "downstream_closed"
    SHUTDOWN = "shutdown"


# ============== 数据事件 ==============


class UpstreamData(BaseModel):
    """上游数据（上游 → 下游）"""

    type: EventType = EventType.UPSTREAM_DATA
    data: bytes = Field(..., description="从上游读取的一行（或部分行）数据")


class DownstreamData(BaseModel):
    """下游数据（下游 → 上游）"""

    type: EventType = EventType.DOWNSTREAM_DATA
    data: bytes = Field(..., description="从下游 TCP 连接收到的数据块")


# ============== 生命周期事件 ==============


class WatchdogExpired(BaseModel):
    """
    看门狗超时

    generation 用于识别过期的超时事件：事件入队后如果看门狗又被重置，
    该事件将被忽略
    """

    type: EventType = EventType.WATCHDOG_EXPIRED
    generation: int = Field(..., description="触发时的看门狗代数")


class DownstreamClosed(BaseModel):
    """下游连接断开"""

    type: EventType = EventType.DOWNSTREAM_CLOSED
    generation: int = Field(..., description="断开的连接代数")
    error: str | None = Field(default=None, description="错误信息（对端正常关闭时为空）")


class Shutdown(BaseModel):
    """停止会话"""

    type: EventType = EventType.SHUTDOWN


SessionEvent = UpstreamData | DownstreamData | WatchdogExpired | DownstreamClosed | Shutdown


# ============== 地址 ==============


class Endpoint(BaseModel):
    """host:port 端点"""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_address(address: str) -> Endpoint:
    """
    解析 host:port 地址

    以最后一个冒号分隔主机和端口

    Raises:
        AddressFormatError: 缺少冒号、主机为空或端口不是有效整数
    """
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host:
        raise AddressFormatError(address)

    try:
        port_number = int(port)
    except ValueError:
        raise AddressFormatError(address, "端口必须是整数") from None

    if not 0 < port_number < 65536:
        raise AddressFormatError(address, "端口超出范围")

    return Endpoint(host=host, port=port_number)
