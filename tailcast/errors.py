class TailcastError(Exception):
    pass


class ReadError(TailcastError):
    """The log file could not be stat'ed or read at this instant."""

    def __init__(self, path, cause: BaseException | None = None):
        self.path = str(path)
        self.cause = cause
        msg = f"无法读取日志文件：{self.path}" if cause is None else f"无法读取日志文件：{self.path} ({cause})"
        super().__init__(msg)


class WatchLost(TailcastError):
    """The watched file disappeared or the observer died; the watch is over."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"监控已失效：{self.path} ({reason})")
