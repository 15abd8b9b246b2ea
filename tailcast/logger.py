import os, logging, time
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
import coloredlogs
import pytz

ROOT = "tailcast"
CONSOLE_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s %(funcName)s:%(lineno)d | %(message)s"


class ThrottleFilter(logging.Filter):
    """带 throttle 标记的记录，同一个 key 在 window 秒内只放行一次"""

    def __init__(self, window: float = 60):
        super().__init__()
        self.window = window
        self._last = {}

    def filter(self, record):
        key = getattr(record, "throttle", None)
        if not key:
            return True
        now = time.monotonic()
        last = self._last.get(key)
        if last is not None and now - last < self.window:
            return False
        self._last[key] = now
        return True


def _tz_converter(tz_name: str):
    tz = pytz.timezone(tz_name)
    return lambda *args: datetime.now(tz).timetuple()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT}.{name}")


def setup_logging(level: str = "INFO", log_dir: str | None = None,
                  backup_count: int = 14, timezone: str = "UTC",
                  throttle_window: float = 60) -> logging.Logger:
    logger = logging.getLogger(ROOT)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logging.Formatter.converter = _tz_converter(timezone)

    coloredlogs.install(level=level.upper(), logger=logger, fmt=CONSOLE_FMT)
    for h in logger.handlers:
        h.addFilter(ThrottleFilter(throttle_window))

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(os.path.join(log_dir, "tailcast.log"),
                                                when="midnight", backupCount=backup_count, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FMT))
        file_handler.addFilter(ThrottleFilter(throttle_window))
        logger.addHandler(file_handler)
    return logger
