from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from tailcast.errors import ReadError
from tailcast.reader import last_lines, read_range, stat_size, utf8_complete_len


class LastLinesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _file(self, data: bytes) -> Path:
        p = self.root / "app.log"
        p.write_bytes(data)
        return p

    def test_last_n_lines_any_chunk_size(self) -> None:
        lines = [f"line {i} " + "x" * (i % 7) for i in range(40)]
        data = ("\n".join(lines) + "\n").encode()
        p = self._file(data)
        for chunk in (1, 3, 16, len(data), len(data) + 100, 1024):
            for n in (0, 1, 5, 40, 100):
                with self.subTest(chunk=chunk, n=n):
                    expected = lines[-n:] if n else []
                    self.assertEqual(last_lines(p, n, chunk_size=chunk), expected)

    def test_no_trailing_newline_counts_last_fragment(self) -> None:
        p = self._file(b"a\nb\nc")
        self.assertEqual(last_lines(p, 2, chunk_size=2), ["b", "c"])
        self.assertEqual(last_lines(p, 10, chunk_size=1), ["a", "b", "c"])

    def test_empty_lines_are_skipped(self) -> None:
        p = self._file(b"a\n\n\nb\n\n")
        self.assertEqual(last_lines(p, 2, chunk_size=3), ["a", "b"])
        self.assertEqual(last_lines(p, 1), ["b"])

    def test_crlf_lines(self) -> None:
        p = self._file(b"one\r\ntwo\r\nthree\r\n")
        self.assertEqual(last_lines(p, 2, chunk_size=4), ["two", "three"])

    def test_empty_file(self) -> None:
        p = self._file(b"")
        self.assertEqual(last_lines(p, 10), [])

    def test_multibyte_split_across_chunks(self) -> None:
        p = self._file("日志一\n日志二\n".encode("utf-8"))
        self.assertEqual(last_lines(p, 2, chunk_size=1), ["日志一", "日志二"])

    def test_reads_only_the_tail_of_a_big_file(self) -> None:
        p = self._file(b"".join(b"row %d\n" % i for i in range(100000)))
        reads: list[int] = []
        real_open = open

        def tracking_open(*args, **kwargs):
            f = real_open(*args, **kwargs)
            orig = f.read

            def read(size=-1):
                chunk = orig(size)
                reads.append(len(chunk))
                return chunk

            f.read = read  # type: ignore[method-assign]
            return f

        import tailcast.reader as reader_mod

        reader_mod.open = tracking_open  # type: ignore[attr-defined]
        try:
            self.assertEqual(last_lines(p, 3, chunk_size=64), ["row 99997", "row 99998", "row 99999"])
        finally:
            del reader_mod.open
        self.assertLessEqual(sum(reads), 128)

    def test_missing_file_raises_read_error(self) -> None:
        with self.assertRaises(ReadError):
            last_lines(self.root / "missing.log", 10)
        with self.assertRaises(ReadError):
            last_lines(self.root / "missing.log", 0)

    def test_bad_chunk_size(self) -> None:
        p = self._file(b"a\n")
        with self.assertRaises(ValueError):
            last_lines(p, 1, chunk_size=0)


class RangeTests(unittest.TestCase):
    def test_read_range_and_stat(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "app.log"
            p.write_bytes(b"hello world\n")
            self.assertEqual(stat_size(p), 12)
            self.assertEqual(read_range(p, 6, 12), b"world\n")
            self.assertEqual(read_range(p, 12, 12), b"")
            # 文件比预期短时只返回实际存在的字节
            self.assertEqual(read_range(p, 6, 100), b"world\n")

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "nope.log"
            with self.assertRaises(ReadError) as cm:
                stat_size(p)
            self.assertIsInstance(cm.exception.cause, FileNotFoundError)
            with self.assertRaises(ReadError):
                read_range(p, 0, 10)


class Utf8BoundaryTests(unittest.TestCase):
    def test_complete_len(self) -> None:
        raw = "a日志".encode("utf-8")
        self.assertEqual(utf8_complete_len(raw), len(raw))
        self.assertEqual(utf8_complete_len(raw[:-1]), 4)
        self.assertEqual(utf8_complete_len(raw[:-2]), 4)
        self.assertEqual(utf8_complete_len(raw[:5]), 4)
        self.assertEqual(utf8_complete_len(b""), 0)
        self.assertEqual(utf8_complete_len("😀".encode("utf-8")[:3]), 0)
        # 非法的续字节不截掉
        self.assertEqual(utf8_complete_len(b"ab\x80\x80"), 4)


if __name__ == "__main__":
    unittest.main()
