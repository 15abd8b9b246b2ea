"""
WebSocket 推日志：每个连接一个订阅者，每条消息一帧文本
"""
import asyncio
from typing import Optional

from websockets.asyncio.server import serve, ServerConnection
from websockets.exceptions import ConnectionClosed

from .engine import BroadcastEngine
from .logger import get_logger
from .registry import Subscriber

log = get_logger("server")

OUTBOX_LIMIT = 1000
# 1013 Try Again Later
OVERFLOW_CLOSE_CODE = 1013

_CLOSE = object()


class WebSocketChannel:
    """
    send() 在引擎线程里调用，只把文本放进本连接的发件箱，不等待网络；
    由 pump() 在事件循环里按顺序真正发出去。
    发件箱满了说明对端不再读取，按发送失败处理并断开连接。
    """

    def __init__(self, websocket: ServerConnection, loop: asyncio.AbstractEventLoop,
                 maxsize: int = OUTBOX_LIMIT):
        self.websocket = websocket
        self.loop = loop
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize)
        self._closing: Optional[asyncio.Task] = None

    def send(self, text: str) -> bool:
        if self.closed:
            return False
        if self._outbox.full():
            self._call(self._overflow)
            self.closed = True
            return False
        if not self._call(self._offer, text):
            self.closed = True
            return False
        return True

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._call(self._stop_pump)

    def _call(self, fn, *args) -> bool:
        try:
            self.loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            # 事件循环已关闭
            return False
        return True

    # 以下在事件循环线程里执行
    def _offer(self, text: str):
        if self._closing is not None:
            return
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            self.closed = True
            self._overflow()

    def _overflow(self):
        if self._closing is not None:
            return
        log.warning("发件箱已满（%d 条），断开连接：%s", self._outbox.maxsize, self.websocket.remote_address)
        self._stop_pump()
        self._closing = self.loop.create_task(self.websocket.close(OVERFLOW_CLOSE_CODE, "viewer too slow"))

    def _stop_pump(self):
        while not self._outbox.empty():
            self._outbox.get_nowait()
        self._outbox.put_nowait(_CLOSE)

    async def pump(self):
        while True:
            item = await self._outbox.get()
            if item is _CLOSE:
                return
            try:
                await self.websocket.send(item)
            except ConnectionClosed:
                self.closed = True
                return


class LogServer:
    def __init__(self, engine: BroadcastEngine, host: str = "0.0.0.0", port: int = 3000):
        self.engine = engine
        self.host = host
        self.port = port
        self._server = None

    async def handle(self, websocket: ServerConnection):
        channel = WebSocketChannel(websocket, asyncio.get_running_loop())
        sub = Subscriber(channel)
        log.info("客户端连接：%s (%s)", sub.id, websocket.remote_address)
        pump = asyncio.create_task(channel.pump())
        self.engine.connect(sub)
        try:
            # 查看端不需要发消息，收到的内容直接丢弃
            async for _ in websocket:
                pass
        except ConnectionClosed:
            pass
        finally:
            channel.close()
            self.engine.disconnect(sub.id)
            await pump
            log.info("客户端断开：%s", sub.id)

    async def start(self):
        self._server = await serve(self.handle, self.host, self.port)
        sockets = list(self._server.sockets)
        if sockets:
            self.port = sockets[0].getsockname()[1]
        log.info("WebSocket 服务已启动：ws://%s:%d", self.host, self.port)
        return self._server

    async def stop(self):
        server, self._server = self._server, None
        if server is not None:
            server.close()
            await server.wait_closed()
            log.info("WebSocket 服务已关闭")

