"""
Shell-Relay - SSH shell 与 TCP 服务之间的双向中继

提供：
- 上游远程 shell 流（SSH 或 FTP 模式下的原始 TCP 流）的按需打开与自动重建
- 下游 TCP 连接的自动重连
- 上游不活动超时关闭
- FTP 模式下的输出合并
"""

__version__ = "0.1.0"

from .errors import (
    RelayError,
    AddressFormatError,
    ConnectError,
    WriteError,
    PeerClosedError,
    CloseError,
)
from .protocol import (
    EventType,
    UpstreamData,
    DownstreamData,
    WatchdogExpired,
    DownstreamClosed,
    Shutdown,
    Endpoint,
    parse_address,
)
from .config import RelayConfig
from .transport import ShellTransport, SshShellTransport, TcpStreamTransport
from .upstream import UpstreamStream
from .downstream import DownstreamConnection
from .buffer import FtpConsolidationBuffer
from .watchdog import InactivityWatchdog
from .stats import TrafficCounters, TrafficReporter
from .session import TunnelSession, run_tunnel_session

__all__ = [
    # 版本
    "__version__",
    # 错误
    "RelayError",
    "AddressFormatError",
    "ConnectError",
    "WriteError",
    "PeerClosedError",
    "CloseError",
    # 事件
    "EventType",
    "UpstreamData",
    "DownstreamData",
    "WatchdogExpired",
    "DownstreamClosed",
    "Shutdown",
    # 地址
    "Endpoint",
    "parse_address",
    # 配置
    "RelayConfig",
    # 组件
    "ShellTransport",
    "SshShellTransport",
    "TcpStreamTransport",
    "UpstreamStream",
    "DownstreamConnection",
    "FtpConsolidationBuffer",
    "InactivityWatchdog",
    "TrafficCounters",
    "TrafficReporter",
    # 会话
    "TunnelSession",
    "run_tunnel_session",
]
