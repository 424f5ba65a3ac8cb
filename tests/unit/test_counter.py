"""
Unit tests for printable character counting.
"""

import io

import pytest

from pcc.counter import (
    Histogram,
    count_printable,
    is_printable,
    PRINTABLE_COUNT,
)


class TestCountPrintable:
    """Tests for count_printable()."""

    def test_all_printable(self):
        assert count_printable(b"Hello, World!") == 13

    def test_empty(self):
        assert count_printable(b"") == 0

    def test_non_printable_skipped(self):
        assert count_printable(b"a\nb\tc\x00\xff") == 3

    def test_boundaries(self):
        """31 and 127 are excluded, 32 and 126 included."""
        assert count_printable(bytes([31])) == 0
        assert count_printable(bytes([32])) == 1
        assert count_printable(bytes([126])) == 1
        assert count_printable(bytes([127])) == 0

    def test_every_byte_value(self):
        assert count_printable(bytes(range(256))) == 95

    def test_pure_without_histogram(self):
        histogram = Histogram()
        count_printable(b"AAA")
        assert histogram.total == 0

    def test_accepts_bytearray_and_memoryview(self):
        assert count_printable(bytearray(b"ab\x01")) == 2
        assert count_printable(memoryview(b"ab\x01c")) == 3


class TestHistogram:
    """Tests for the Histogram class."""

    def test_starts_empty(self):
        histogram = Histogram()

        assert len(histogram) == PRINTABLE_COUNT
        assert histogram.total == 0
        assert all(count == 0 for _, count in histogram)

    def test_observe_records_each_byte(self):
        histogram = Histogram()

        assert histogram.observe(b"abca") == 4
        assert histogram["a"] == 2
        assert histogram["b"] == 1
        assert histogram["c"] == 1
        assert histogram["d"] == 0

    @pytest.mark.parametrize("wrap", [bytearray, memoryview])
    def test_observe_buffer_types(self, wrap):
        histogram = Histogram()

        assert histogram.observe(wrap(b"ab\x00b")) == 3
        assert histogram["b"] == 2

    def test_lookup_by_value(self):
        histogram = Histogram()
        histogram.observe(b"~")

        assert histogram[126] == 1
        assert histogram["~"] == 1

    def test_lookup_non_printable(self):
        with pytest.raises(KeyError):
            Histogram()["\n"]
        with pytest.raises(KeyError):
            Histogram()[127]

    def test_accumulates_across_buffers(self):
        """Two connections: "AAA" and "  B\\x01"."""
        histogram = Histogram()

        assert count_printable(b"AAA", histogram) == 3
        assert count_printable(b"  B\x01", histogram) == 3

        assert histogram["A"] == 3
        assert histogram[" "] == 2
        assert histogram["B"] == 1
        assert histogram.total == 6

    def test_matches_byte_frequencies(self):
        data = bytes(range(256)) * 3 + b"zzz"
        histogram = Histogram()
        histogram.observe(data)

        for char, count in histogram:
            expected = data.count(char.encode())
            assert count == expected

    def test_snapshot_is_a_copy(self):
        histogram = Histogram()
        histogram.observe(b"x")
        snapshot = histogram.snapshot()

        histogram.observe(b"x")

        assert snapshot["x"] == 1
        assert histogram["x"] == 2
        assert list(snapshot)[0] == " "
        assert list(snapshot)[-1] == "~"

    def test_is_printable(self):
        assert is_printable(ord("a"))
        assert not is_printable(0)


class TestReport:
    """Tests for the shutdown report."""

    def test_report_lines_format(self):
        histogram = Histogram()
        histogram.observe(b"AA ")

        lines = histogram.report_lines()

        assert len(lines) == 95
        assert lines[0] == "char ' ' : 1 times"
        assert lines[ord("A") - 32] == "char 'A' : 2 times"
        assert lines[-1] == "char '~' : 0 times"

    def test_write_report(self):
        histogram = Histogram()
        histogram.observe(b"'")
        stream = io.StringIO()

        histogram.write_report(stream)

        output = stream.getvalue().splitlines()
        assert len(output) == 95
        assert "char ''' : 1 times" in output

    def test_write_report_defaults_to_stdout(self, capsys):
        Histogram().write_report()

        captured = capsys.readouterr()
        assert captured.out.startswith("char ' ' : 0 times\n")
        assert captured.out.count("\n") == 95
