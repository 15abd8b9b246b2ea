import itertools
import threading
from typing import Callable, Dict, List, Optional

from .logger import get_logger

log = get_logger("registry")

CONNECTED = "connected"
CLOSED = "closed"

_ids = itertools.count(1)


class Subscriber:
    """
    一个已连接的查看端。
    channel 需要提供 send(text) -> bool 和 closed 属性。
    """

    def __init__(self, channel, id: Optional[str] = None):
        self.id = id or f"sub-{next(_ids)}"
        self.channel = channel
        self.state = CONNECTED

    @property
    def closed(self) -> bool:
        return self.state == CLOSED or bool(getattr(self.channel, "closed", False))

    def send(self, text: str) -> bool:
        if self.closed:
            return False
        ok = self.channel.send(text)
        if not ok:
            self.state = CLOSED
        return bool(ok)

    def close(self):
        self.state = CLOSED

    def __repr__(self) -> str:
        return f"Subscriber({self.id}, {self.state})"


class SubscriberRegistry:
    def __init__(self):
        self._subs: Dict[str, Subscriber] = {}
        self._lock = threading.Lock()

    def add(self, sub: Subscriber):
        with self._lock:
            self._subs[sub.id] = sub
            total = len(self._subs)
        log.info("订阅者加入：%s，当前 %d 个", sub.id, total)

    def remove(self, sub_id: str) -> Optional[Subscriber]:
        with self._lock:
            sub = self._subs.pop(sub_id, None)
            total = len(self._subs)
        if sub is not None:
            sub.close()
            log.info("订阅者移除：%s，当前 %d 个", sub_id, total)
        return sub

    def get(self, sub_id: str) -> Optional[Subscriber]:
        with self._lock:
            return self._subs.get(sub_id)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._subs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)

    def __contains__(self, sub_id: str) -> bool:
        with self._lock:
            return sub_id in self._subs

    def for_each(self, fn: Callable[[Subscriber], object]) -> int:
        """
        对当前每个订阅者调用 fn，返回实际调用次数。
        遍历的是加锁拷贝出来的快照，fn 在锁外执行，所以 fn 里可以 remove。
        已关闭的订阅者直接移除，不会调用 fn。
        """
        with self._lock:
            snapshot = list(self._subs.values())
        visited = 0
        for sub in snapshot:
            if sub.closed:
                self.remove(sub.id)
                continue
            if sub.id not in self:
                continue
            fn(sub)
            visited += 1
        return visited
