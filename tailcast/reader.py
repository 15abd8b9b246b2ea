"""
日志文件读取：stat、增量读取、倒序读取最后 N 行
"""
import os
from collections import deque
from pathlib import Path
from typing import Deque, List, Union

from .errors import ReadError

CHUNK_SIZE = 1024

PathLike = Union[str, Path]


def stat_size(path: PathLike) -> int:
    try:
        return os.stat(path).st_size
    except OSError as e:
        raise ReadError(path, e) from e


def read_range(path: PathLike, start: int, end: int) -> bytes:
    """读取 [start, end)；文件在读取期间被截断时返回的字节可能少于 end - start"""
    if end <= start:
        return b""
    try:
        with open(path, "rb") as f:
            f.seek(start)
            return f.read(end - start)
    except OSError as e:
        raise ReadError(path, e) from e


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


def last_lines(path: PathLike, n: int, chunk_size: int = CHUNK_SIZE) -> List[str]:
    """
    从文件末尾按块倒序读取，返回最后 n 个非空行（旧的在前）。

    每个块拼到尚未完整的开头片段前面，再按换行切分；凑够 n 行或者读到文件开头就停。
    内存只和 n × 行长 + 一个块有关，与文件大小无关。
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size 必须为正数：{chunk_size}")
    lines: Deque[bytes] = deque()
    try:
        with open(path, "rb") as f:
            pos = f.seek(0, os.SEEK_END)
            head = b""
            while pos > 0 and len(lines) < n:
                step = min(chunk_size, pos)
                pos -= step
                f.seek(pos)
                parts = (f.read(step) + head).split(b"\n")
                # parts[0] 的左边界还没读到，留到下一轮
                head = parts[0]
                for raw in reversed(parts[1:]):
                    if raw and raw != b"\r":
                        lines.appendleft(raw)
                        if len(lines) >= n:
                            break
            if pos == 0 and len(lines) < n and head and head != b"\r":
                lines.appendleft(head)
    except OSError as e:
        raise ReadError(path, e) from e
    return [_decode(raw) for raw in lines]


def utf8_complete_len(data: bytes) -> int:
    """去掉末尾被截断的 UTF-8 多字节字符后的长度；非法字节原样保留"""
    n = len(data)
    for back in range(1, min(4, n) + 1):
        b = data[n - back]
        if b < 0x80:
            return n
        if b >= 0xC0:
            need = 2 if b < 0xE0 else 3 if b < 0xF0 else 4
            return n - back if back < need else n
    return n
