from __future__ import annotations

import logging
import time
import tempfile
import unittest
from pathlib import Path

from tailcast.logger import ThrottleFilter, get_logger, setup_logging


def _record(msg: str, throttle: str | None = None) -> logging.LogRecord:
    rec = logging.LogRecord("tailcast.test", logging.WARNING, __file__, 1, msg, None, None)
    if throttle:
        rec.throttle = throttle
    return rec


class LoggerTests(unittest.TestCase):
    def test_throttle_filter(self) -> None:
        f = ThrottleFilter(window=60)
        self.assertTrue(f.filter(_record("plain")))
        self.assertTrue(f.filter(_record("plain")))
        self.assertTrue(f.filter(_record("stat failed", "stat")))
        self.assertFalse(f.filter(_record("stat failed", "stat")))
        self.assertTrue(f.filter(_record("read failed", "read")))

    def test_setup_logging_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = setup_logging("INFO", log_dir=td, timezone="Asia/Shanghai")
            try:
                get_logger("test").info("hello %s", "file")
                for h in root.handlers:
                    h.flush()
                text = (Path(td) / "tailcast.log").read_text(encoding="utf-8")
                self.assertIn("hello file", text)
                self.assertIn("tailcast.test", text)
            finally:
                for h in list(root.handlers):
                    root.removeHandler(h)
                    h.close()
                logging.Formatter.converter = time.localtime


if __name__ == "__main__":
    unittest.main()
