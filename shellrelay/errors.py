"""
Shell-Relay 错误类型

所有错误都在所属组件内部处理（记录日志、重试或自愈），
不会传播到 TunnelSession.run() 的调用方。
"""


class RelayError(Exception):
    """中继错误基类"""


class AddressFormatError(RelayError):
    """地址格式错误（不是 host:port）"""

    def __init__(self, address: str, reason: str = "需要 host:port 格式"):
        self.address = address
        super().__init__(f"地址格式错误: {address!r}（{reason}）")


class ConnectError(RelayError):
    """上游或下游连接失败"""


class WriteError(RelayError):
    """写入上游失败或只写入了部分数据"""


class PeerClosedError(RelayError):
    """下游对端关闭了连接"""


class CloseError(RelayError):
    """关闭句柄时出错"""
