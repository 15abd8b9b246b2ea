import threading
from typing import Tuple


class TailCursor:
    """
    已推送内容的边界（字节偏移）
    - 只在成功读取并广播之后 advance
    - 只有检测到截断时 reset 归零
    """

    def __init__(self, offset: int = 0):
        if offset < 0:
            raise ValueError(f"offset 不能为负数：{offset}")
        self._offset = offset
        self._lock = threading.Lock()

    @property
    def offset(self) -> int:
        with self._lock:
            return self._offset

    def compute_delta(self, current_size: int) -> Tuple[int, int]:
        with self._lock:
            if current_size < self._offset:
                raise ValueError(f"文件大小 {current_size} 小于偏移 {self._offset}，应先 reset")
            return self._offset, current_size

    def advance(self, new_offset: int):
        with self._lock:
            if new_offset < self._offset:
                raise ValueError(f"偏移只能前进：{self._offset} -> {new_offset}")
            self._offset = new_offset

    def reset(self):
        with self._lock:
            self._offset = 0

    def __repr__(self) -> str:
        return f"TailCursor(offset={self.offset})"
