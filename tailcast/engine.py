"""
广播引擎
连接、断开、文件变化都排进同一个队列，由一个 worker 线程依次处理：
游标只在 worker 里被修改，订阅者集合由 registry 自己加锁。
"""
import queue
import threading
from pathlib import Path
from typing import Optional

from .cursor import TailCursor
from .detector import ChangeEvent
from .errors import ReadError
from .logger import get_logger
from .reader import CHUNK_SIZE, last_lines, read_range, stat_size, utf8_complete_len
from .registry import Subscriber, SubscriberRegistry

log = get_logger("engine")

READ_ERROR_MESSAGE = "Error reading log file."

_STOP = object()


class BroadcastEngine:
    def __init__(self, path, history_lines: int = 10, chunk_size: int = CHUNK_SIZE,
                 registry: Optional[SubscriberRegistry] = None,
                 cursor: Optional[TailCursor] = None):
        self.path = Path(path)
        self.history_lines = history_lines
        self.chunk_size = chunk_size
        self.registry = registry or SubscriberRegistry()
        # 新进程从文件末尾开始
        self.cursor = cursor or TailCursor(stat_size(self.path))
        self._queue: "queue.Queue" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    # ---------------- 线程安全的投递入口 ----------------
    def connect(self, sub: Subscriber):
        self._queue.put(("connect", sub))

    def disconnect(self, sub_id: str):
        self._queue.put(("disconnect", sub_id))

    def notify(self, event: ChangeEvent):
        self._queue.put(("change", event))

    def rewind(self):
        self._queue.put(("rewind", None))

    # ---------------- worker ----------------
    def start(self):
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._run, name="tailcast-engine", daemon=True)
        self._worker.start()
        log.info("广播引擎启动，起始偏移 %d", self.cursor.offset)

    def stop(self, timeout: Optional[float] = 5):
        worker, self._worker = self._worker, None
        if worker is None:
            return
        self._queue.put(_STOP)
        worker.join(timeout)
        log.info("广播引擎已停止")

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._dispatch(item)

    def run_pending(self) -> int:
        """在当前线程处理完队列里已有的命令（没有 worker 时使用）"""
        handled = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return handled
            if item is _STOP:
                continue
            self._dispatch(item)
            handled += 1

    def _dispatch(self, item):
        kind, payload = item
        try:
            if kind == "connect":
                self.on_connect(payload)
            elif kind == "disconnect":
                self.on_disconnect(payload)
            elif kind == "change":
                self.on_change(payload)
            elif kind == "rewind":
                self.cursor.reset()
                self.on_change(None)
        except Exception as e:
            log.exception("处理 %s 失败：%s", kind, e)

    # ---------------- 处理逻辑 ----------------
    def on_connect(self, sub: Subscriber):
        try:
            text = "\n".join(last_lines(self.path, self.history_lines, self.chunk_size))
        except ReadError as e:
            log.warning("读取最近 %d 行失败：%s", self.history_lines, e)
            text = READ_ERROR_MESSAGE
        if not self._deliver(sub, text):
            return
        self.registry.add(sub)

    def on_disconnect(self, sub_id: str):
        self.registry.remove(sub_id)

    def on_change(self, event: Optional[ChangeEvent]):
        # event 是检测线程更早算出来的，截断只按这里重新 stat 的结果判断
        try:
            size = stat_size(self.path)
        except ReadError as e:
            log.warning("stat 失败：%s", e, extra={"throttle": "engine.stat"})
            return
        if size < self.cursor.offset:
            log.info("文件被截断（%d < %d），从头开始读取", size, self.cursor.offset)
            self.cursor.reset()
        if size == self.cursor.offset:
            return
        start, end = self.cursor.compute_delta(size)
        try:
            data = read_range(self.path, start, end)
        except ReadError as e:
            log.warning("读取增量失败：%s", e, extra={"throttle": "engine.read"})
            return
        # 末尾不完整的 UTF-8 字符留到下次增长一起发
        data = data[:utf8_complete_len(data)]
        if not data:
            return
        self.on_growth(data)
        self.cursor.advance(start + len(data))

    def on_growth(self, data: bytes) -> int:
        text = data.decode("utf-8", errors="replace")
        sent = self.registry.for_each(lambda sub: self._deliver(sub, text))
        log.debug("广播 %d 字节给 %d 个订阅者", len(data), sent)
        return sent

    def _deliver(self, sub: Subscriber, text: str) -> bool:
        try:
            ok = sub.send(text)
        except Exception as e:
            log.info("发送给 %s 失败：%s", sub.id, e)
            ok = False
        if not ok:
            sub.close()
            self.registry.remove(sub.id)
        return ok
