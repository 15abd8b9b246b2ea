"""
文件变化检测
- 优先用 watchdog 的系统通知（inotify / FSEvents / ReadDirectoryChangesW）
- 不可用或配置要求时退回 PollingObserver 定时比对
- 文件被删除或移走后进入 lost 状态，需要上层重新建立监控
"""
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .cursor import TailCursor
from .errors import ReadError, WatchLost
from .logger import get_logger
from .reader import stat_size

log = get_logger("detector")

IDLE = "idle"
WATCHING = "watching"
LOST = "lost"
STOPPED = "stopped"


@dataclass(frozen=True)
class ChangeEvent:
    size_before: int
    size_after: int

    @property
    def grew(self) -> bool:
        return self.size_after > self.size_before

    @property
    def shrank(self) -> bool:
        return self.size_after < self.size_before


class _FileHandler(FileSystemEventHandler):
    def __init__(self, detector: "ChangeDetector"):
        super().__init__()
        self.detector = detector

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory and self.detector.is_target(event.src_path):
            self.detector.notify()

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory and self.detector.is_target(event.src_path):
            self.detector.notify()

    def on_deleted(self, event: FileSystemEvent):
        if self.detector.is_target(event.src_path):
            self.detector.lose("文件已删除")

    def on_moved(self, event: FileSystemEvent):
        if self.detector.is_target(event.src_path):
            self.detector.lose("文件已被移走")
        elif self.detector.is_target(event.dest_path):
            # 编辑器原子替换：新文件直接 rename 到目标路径
            self.detector.notify()


class ChangeDetector:
    def __init__(self, path, cursor: TailCursor, sink: Callable[[ChangeEvent], None],
                 on_lost: Optional[Callable[[WatchLost], None]] = None,
                 use_polling: bool = False, poll_interval: float = 1.0,
                 debounce: float = 0.05):
        self.path = Path(os.path.abspath(path))
        self._dir = os.path.realpath(self.path.parent)
        self._target = os.path.join(self._dir, self.path.name)
        self.cursor = cursor
        self.sink = sink
        self.on_lost = on_lost
        self.use_polling = use_polling
        self.poll_interval = poll_interval
        self.debounce = debounce

        self.state = IDLE
        self.lost_reason: Optional[str] = None
        self.polling = False
        self._lost = threading.Event()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._observer = None

    # ------------------------------------------------------------------
    def is_target(self, src_path) -> bool:
        if not src_path:
            return False
        p = os.fsdecode(src_path)
        return os.path.join(os.path.realpath(os.path.dirname(p)), os.path.basename(p)) == self._target

    def start(self):
        if not self.path.is_file():
            raise WatchLost(self.path, "文件不存在")
        handler = _FileHandler(self)
        if not self.use_polling:
            try:
                self._observer = self._start_observer(Observer(), handler)
            except OSError as e:
                log.warning("系统文件通知不可用，改用轮询：%s", e)
        if self._observer is None:
            self._observer = self._start_observer(PollingObserver(timeout=self.poll_interval), handler)
            self.polling = True
        self.state = WATCHING
        log.info("开始监控：%s（%s）", self.path, "轮询" if self.polling else "系统通知")
        # 启动前后之间的写入
        self.check()

    def _start_observer(self, observer, handler):
        observer.schedule(handler, self._dir, recursive=False)
        observer.daemon = True
        observer.start()
        return observer

    def stop(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self.state != LOST:
                self.state = STOPPED
        obs, self._observer = self._observer, None
        if obs is not None:
            obs.stop()
            if obs is not threading.current_thread():
                obs.join()
        log.info("停止监控：%s", self.path)

    def wait_lost(self, timeout: Optional[float] = None) -> bool:
        return self._lost.wait(timeout)

    # ------------------------------------------------------------------
    def notify(self):
        """收到一次通知；debounce > 0 时把一串通知合并成一次 check"""
        if self.debounce <= 0:
            self.check()
            return
        with self._lock:
            if self.state != WATCHING or self._timer is not None:
                return
            self._timer = threading.Timer(self.debounce, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self):
        with self._lock:
            self._timer = None
        self.check()

    def check(self) -> Optional[ChangeEvent]:
        """重新 stat 文件，大小与游标偏移不同时交给 sink"""
        if self.state != WATCHING:
            return None
        # 先取偏移再 stat
        offset = self.cursor.offset
        try:
            size = stat_size(self.path)
        except ReadError as e:
            if isinstance(e.cause, FileNotFoundError):
                self.lose("文件已删除")
            else:
                log.warning("stat 失败，等待下次通知：%s", e, extra={"throttle": "detector.stat"})
            return None
        if size == offset:
            return None
        event = ChangeEvent(offset, size)
        if event.shrank:
            log.info("检测到截断：%d -> %d", offset, size)
        else:
            log.debug("检测到增长：%d -> %d", offset, size)
        self.sink(event)
        return event

    def lose(self, reason: str):
        with self._lock:
            if self.state in (LOST, STOPPED):
                return
            self.state = LOST
            self.lost_reason = reason
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        log.error("监控失效：%s（%s）", self.path, reason)
        if self._observer is not None:
            self._observer.stop()
        self._lost.set()
        if self.on_lost is not None:
            self.on_lost(WatchLost(self.path, reason))
