#!/usr/bin/env python
"""
下游服务示例

在本地监听 TCP 端口，打印中继转发过来的 shell 输出，并把标准输入的每一行作为命令发回。

使用方法:
    # 终端 1：启动下游服务
    python examples/target_server.py --port 20000

    # 终端 2：启动中继
    shellrelay run -s 127.0.0.1:22 -d 127.0.0.1:20000 -v
"""

import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

clients: set[asyncio.StreamWriter] = set()


async def handle_relay(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """处理中继连接"""
    peer = writer.get_extra_info("peername")
    logger.info(f"中继已连接: {peer}")
    clients.add(writer)
    try:
        while True:
            data = await reader.read(65536)
            if not data:
                break
            sys.stdout.write(data.decode("utf-8", errors="replace"))
            sys.stdout.flush()
    except ConnectionError as e:
        logger.warning(f"连接错误: {e}")
    finally:
        clients.discard(writer)
        writer.close()
        logger.info(f"中继已断开: {peer}")


async def forward_stdin() -> None:
    """把标准输入的每一行发给所有已连接的中继"""
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        for writer in list(clients):
            writer.write(line.encode())


async def main(host: str, port: int) -> None:
    server = await asyncio.start_server(handle_relay, host, port)
    logger.info(f"下游服务已启动: {host}:{port}")
    async with server:
        await forward_stdin()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Shell-Relay 下游服务示例")
    parser.add_argument("--host", default="127.0.0.1", help="监听地址")
    parser.add_argument("--port", type=int, default=20000, help="监听端口")
    args = parser.parse_args()

    try:
        asyncio.run(main(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("已停止")
