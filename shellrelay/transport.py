"""
上游传输

提供两种上游字节流:
- SshShellTransport: 通过 asyncssh 打开交互式 shell（xterm 伪终端，密码认证）
- TcpStreamTransport: 原始 TCP 字节流（FTP 模式）

两者对 UpstreamStream 暴露相同的接口:
    await transport.open(endpoint)   # 失败抛出 ConnectError
    transport.read_line()            # 非阻塞，无数据返回 None
    transport.write(data)            # 返回写入字节数，失败抛出 WriteError
    await transport.close()          # 失败抛出 CloseError
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import asyncssh

from .config import RelayConfig
from .errors import CloseError, ConnectError, WriteError
from .protocol import Endpoint

logger = logging.getLogger(__name__)


class ShellTransport(ABC):
    """
    上游传输基类

    后台任务持续把读到的数据放入缓冲区，read_line() 从缓冲区中取出一行，
    因此读取永远不会阻塞事件循环
    """

    def __init__(self, read_chunk_size: int = 65536):
        self._read_chunk_size = read_chunk_size
        self._buffer = bytearray()
        self._pump_task: asyncio.Task | None = None
        self._eof = False

    @property
    def at_eof(self) -> bool:
        """远端已关闭且缓冲区已读空"""
        return self._eof and not self._buffer

    async def open(self, endpoint: Endpoint) -> None:
        reader = await self._connect(endpoint)
        self._eof = False
        self._pump_task = asyncio.create_task(self._pump(reader))

    def read_line(self) -> bytes | None:
        """
        取出一行数据（包含换行符）

        缓冲区中没有换行符时返回全部已缓冲的数据（例如 shell 提示符），
        缓冲区为空时返回 None
        """
        if not self._buffer:
            return None

        end = self._buffer.find(b"\n")
        end = len(self._buffer) if end < 0 else end + 1
        line = bytes(self._buffer[:end])
        del self._buffer[:end]
        return line

    def write(self, data: bytes) -> int:
        if self._eof:
            raise WriteError("上游已被远端关闭")
        self._write(data)
        return len(data)

    async def close(self) -> None:
        if self._pump_task:
            self._pump_task.cancel()
            self._pump_task = None
        self._eof = True
        self._buffer.clear()
        await self._disconnect()

    async def _pump(self, reader) -> None:
        """后台读取任务"""
        try:
            while True:
                chunk = await reader.read(self._read_chunk_size)
                if not chunk:
                    break
                self._buffer.extend(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"上游读取结束: {e}")
        finally:
            self._eof = True

    @abstractmethod
    async def _connect(self, endpoint: Endpoint):
        """建立连接，返回可 read(n) 的读取端"""

    @abstractmethod
    def _write(self, data: bytes) -> None:
        """写入数据，失败抛出 WriteError"""

    @abstractmethod
    async def _disconnect(self) -> None:
        """断开连接，失败抛出 CloseError"""


class SshShellTransport(ShellTransport):
    """SSH 交互式 shell"""

    def __init__(
        self,
        username: str,
        password: str,
        term_type: str = "xterm",
        open_timeout: float = 30.0,
        read_chunk_size: int = 65536,
    ):
        super().__init__(read_chunk_size)
        self.username = username
        self.password = password
        self.term_type = term_type
        self.open_timeout = open_timeout

        self._conn: asyncssh.SSHClientConnection | None = None
        self._process: asyncssh.SSHClientProcess | None = None

    async def _connect(self, endpoint: Endpoint):
        try:
            await asyncio.wait_for(self._open_shell(endpoint), timeout=self.open_timeout)
        except (asyncssh.Error, OSError, asyncio.TimeoutError, UnicodeError) as e:
            if self._conn:
                self._conn.close()
                self._conn = None
            raise ConnectError(f"SSH 连接失败 {endpoint}: {str(e) or type(e).__name__}") from e

        return self._process.stdout

    async def _open_shell(self, endpoint: Endpoint) -> None:
        self._conn = await asyncssh.connect(
            endpoint.host,
            endpoint.port,
            username=self.username,
            password=self.password,
            known_hosts=None,
        )
        self._process = await self._conn.create_process(
            term_type=self.term_type,
            encoding=None,
        )

    def _write(self, data: bytes) -> None:
        if not self._process:
            raise WriteError("SSH shell 未打开")
        try:
            self._process.stdin.write(data)
        except (asyncssh.Error, OSError) as e:
            raise WriteError(f"写入 SSH shell 失败: {e}") from e

    async def _disconnect(self) -> None:
        process, self._process = self._process, None
        conn, self._conn = self._conn, None
        try:
            if process:
                process.close()
            if conn:
                conn.close()
                await conn.wait_closed()
        except (asyncssh.Error, OSError) as e:
            raise CloseError(f"关闭 SSH 连接失败: {e}") from e


class TcpStreamTransport(ShellTransport):
    """原始 TCP 字节流"""

    def __init__(self, open_timeout: float = 30.0, read_chunk_size: int = 65536):
        super().__init__(read_chunk_size)
        self.open_timeout = open_timeout
        self._writer: asyncio.StreamWriter | None = None

    async def _connect(self, endpoint: Endpoint):
        try:
            reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=self.open_timeout,
            )
        except (OSError, asyncio.TimeoutError, UnicodeError) as e:
            raise ConnectError(f"TCP 连接失败 {endpoint}: {str(e) or type(e).__name__}") from e
        return reader

    def _write(self, data: bytes) -> None:
        if not self._writer or self._writer.is_closing():
            raise WriteError("TCP 流已关闭")
        try:
            self._writer.write(data)
        except OSError as e:
            raise WriteError(f"写入 TCP 流失败: {e}") from e

    async def _disconnect(self) -> None:
        writer, self._writer = self._writer, None
        if not writer:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            raise CloseError(f"关闭 TCP 流失败: {e}") from e


def create_transport(config: RelayConfig) -> ShellTransport:
    """根据配置创建上游传输（FTP 模式使用原始 TCP 流）"""
    if config.ftp_mode:
        return TcpStreamTransport(
            open_timeout=config.open_timeout,
            read_chunk_size=config.read_chunk_size,
        )
    return SshShellTransport(
        username=config.username,
        password=config.password,
        term_type=config.term_type,
        open_timeout=config.open_timeout,
        read_chunk_size=config.read_chunk_size,
    )
