#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tailcast
- 监控一个日志文件，新增内容实时推给所有 WebSocket 查看端
- 新连接先收到最近 N 行
- 支持截断、文件删除后重新监控、系统通知不可用时轮询
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from . import config
from .detector import ChangeDetector
from .engine import BroadcastEngine
from .errors import WatchLost
from .logger import get_logger, setup_logging
from .server import LogServer

log = get_logger("main")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tailcast", description="把日志文件的新增内容推送给 WebSocket 查看端")
    parser.add_argument("log_file", nargs="?", help="要监控的日志文件（覆盖配置）")
    parser.add_argument("-c", "--config", help="YAML 配置文件路径")
    parser.add_argument("--host", help="监听地址")
    parser.add_argument("--port", type=int, help="监听端口")
    parser.add_argument("-n", "--lines", type=int, dest="history_lines", help="新连接发送的历史行数")
    parser.add_argument("--poll", action="store_true", help="强制使用轮询")
    parser.add_argument("--log-level", help="日志级别")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> config.Settings:
    cfg = config.load(args.config)
    if args.log_file:
        cfg.log_file = Path(args.log_file).expanduser()
    if args.host:
        cfg.host = args.host
    if args.port is not None:
        cfg.port = args.port
    if args.history_lines is not None:
        cfg.history_lines = args.history_lines
    if args.poll:
        cfg.use_polling = True
    if args.log_level:
        cfg.log_level = args.log_level.upper()
    cfg.validate()
    return cfg


async def wait_for_file(path: Path, interval: float):
    while not path.is_file():
        await asyncio.sleep(interval)


class App:
    """
    引擎 + WebSocket 服务 + 文件监控。
    监控失效（文件被删除）时按 rewatch 配置等待文件重新出现或者退出。
    """

    def __init__(self, cfg: config.Settings):
        self.cfg = cfg
        self.engine = BroadcastEngine(cfg.log_file, cfg.history_lines, cfg.chunk_size)
        self.server = LogServer(self.engine, cfg.host, cfg.port)
        self.detector: Optional[ChangeDetector] = None
        self.ready = asyncio.Event()
        self._lost: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def on_lost(self, err: WatchLost):
        self._loop.call_soon_threadsafe(self._lost.put_nowait, err)

    def shutdown(self):
        self._loop.call_soon_threadsafe(self._lost.put_nowait, None)

    def _start_detector(self):
        cfg = self.cfg
        self.detector = ChangeDetector(cfg.log_file, self.engine.cursor, self.engine.notify,
                                       on_lost=self.on_lost, use_polling=cfg.use_polling,
                                       poll_interval=cfg.poll_interval, debounce=cfg.debounce)
        try:
            self.detector.start()
        except WatchLost as e:
            self.on_lost(e)

    async def run(self) -> int:
        cfg = self.cfg
        self._loop = asyncio.get_running_loop()
        exit_code = 0
        self.engine.start()
        try:
            await self.server.start()
            self._start_detector()
            self.ready.set()
            while True:
                err = await self._lost.get()
                if err is None:
                    break
                self.detector.stop()
                if not cfg.rewatch:
                    log.error("%s，退出", err)
                    exit_code = 1
                    break
                log.warning("%s，等待文件重新出现", err)
                await wait_for_file(cfg.log_file, cfg.poll_interval)
                log.info("文件已重新出现，重新建立监控：%s", cfg.log_file)
                self.engine.rewind()
                self._start_detector()
        except (KeyboardInterrupt, asyncio.CancelledError):
            log.info("收到退出信号，正在关闭...")
        finally:
            if self.detector is not None:
                self.detector.stop()
            await self.server.stop()
            self.engine.stop()
        return exit_code


async def main(argv: Optional[List[str]] = None) -> int:
    cfg = build_settings(parse_args(argv))
    setup_logging(cfg.log_level, cfg.log_dir, cfg.log_backup_count, cfg.log_timezone)
    log.info("tailcast 启动成功，监控文件：%s", cfg.log_file)
    return await App(cfg).run()


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
