from __future__ import annotations

import time
from pathlib import Path
from typing import Callable


class FakeChannel:
    def __init__(self, fail: bool = False, raises: bool = False) -> None:
        self.messages: list[str] = []
        self.fail = fail
        self.raises = raises
        self.closed = False

    def send(self, text: str) -> bool:
        if self.raises:
            raise ConnectionResetError("peer gone")
        if self.fail:
            return False
        self.messages.append(text)
        return True


def append(path: Path, data: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(data)


def wait_until(pred: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(interval)
    return pred()
