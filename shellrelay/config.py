"""
Shell-Relay 配置
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class RelayConfig(BaseSettings):
    """中继配置"""

    # 端点
    source_address: str = Field(
        default="127.0.0.1:22", description="上游地址（SSH shell，host:port）"
    )
    destination_address: str = Field(
        default="192.168.7.1:20000", description="下游地址（TCP 服务端，host:port）"
    )

    # 上游（SSH）
    username: str = Field(default="debian", description="SSH 用户名")
    password: str = Field(default="temppwd", description="SSH 密码")
    term_type: str = Field(default="xterm", description="远程 shell 终端类型")
    open_timeout: float = Field(default=30.0, description="上游打开超时（秒）")
    time_to_live: float = Field(
        default=300.0, description="上游无写入多久后主动关闭（秒）"
    )
    read_poll_interval: float = Field(
        default=0.5, description="上游无数据时下次读取的间隔（秒）"
    )
    max_write_errors: int = Field(
        default=5, description="上游写入失败多少次后重建连接"
    )

    # 下游（TCP）
    connect_timeout: float = Field(default=15.0, description="下游连接超时（秒）")
    reconnect_interval: float = Field(default=5.0, description="重连间隔（秒）")
    reconnect_backoff: float = Field(
        default=1.0, description="连续失败时重连间隔的增长倍数（1 表示固定间隔）"
    )
    max_reconnect_interval: float | None = Field(
        default=None, description="重连间隔上限（秒，为空表示不限）"
    )
    read_chunk_size: int = Field(default=65536, description="下游单次读取的最大字节数")

    # FTP 模式
    ftp_mode: bool = Field(
        default=False,
        description="FTP 模式：上游使用原始 TCP 字节流，输出合并后再写入下游",
    )
    ftp_flush_delay: float = Field(
        default=0.2, description="FTP 模式下等待数据合并的静默时间（秒）"
    )

    # 调试
    verbose: bool = Field(default=False, description="详细日志")
    stats_interval: float = Field(default=1.0, description="流量统计输出间隔（秒）")

    model_config = {
        "env_prefix": "SHELLRELAY_",
        "env_file": ".env",
        "extra": "ignore",
    }
