"""
Shell-Relay 命令行工具

使用示例:
    # 使用默认地址启动
    shellrelay run

    # 指定上游和下游
    shellrelay run -s 127.0.0.1:22 -d 192.168.7.1:20000 -t 600 -v

    # FTP 模式
    shellrelay run -s 10.0.0.5:21 -d 127.0.0.1:2121 -f
"""

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import RelayConfig
from .session import TunnelSession

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """配置日志"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    # asyncssh 的连接日志过于详细
    logging.getLogger("asyncssh").setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__)
def main():
    """Shell-Relay - SSH shell 与 TCP 服务之间的双向中继"""
    pass


@main.command()
@click.option("--source", "-s", help="上游地址（SSH，host:port）")
@click.option("--destination", "-d", help="下游地址（TCP 服务端，host:port）")
@click.option("--ttl", "-t", type=float, help="上游不活动超时（秒）")
@click.option("--ftp", "-f", is_flag=True, help="FTP 模式")
@click.option("--user", "-u", help="SSH 用户名")
@click.option("--password", "-p", help="SSH 密码")
@click.option("--verbose", "-v", is_flag=True, help="详细日志")
def run(
    source: str | None,
    destination: str | None,
    ttl: float | None,
    ftp: bool,
    user: str | None,
    password: str | None,
    verbose: bool,
):
    """启动隧道中继"""
    overrides = {
        key: value
        for key, value in {
            "source_address": source,
            "destination_address": destination,
            "time_to_live": ttl,
            "ftp_mode": ftp or None,
            "username": user,
            "password": password,
            "verbose": verbose or None,
        }.items()
        if value is not None
    }
    config = RelayConfig(**overrides)
    setup_logging(config.verbose)

    console.print(f"[bold blue]Shell-Relay v{__version__}[/bold blue]")
    console.print(f"  上游: {config.source_address}")
    console.print(f"  下游: {config.destination_address}")
    console.print(f"  TTL: {config.time_to_live:g}s")
    if config.ftp_mode:
        console.print("  [yellow]FTP 模式: 上游使用原始 TCP 流，输出合并后写入[/yellow]")
    console.print()

    session = TunnelSession(config=config)

    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        console.print("\n[dim]已停止[/dim]")
        sys.exit(0)


if __name__ == "__main__":
    main()
