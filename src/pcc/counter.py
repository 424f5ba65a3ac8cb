"""
=============================================================================
PRINTABLE CHARACTER COUNTING
=============================================================================

A byte is "printable" when its value lies in [32, 126]:

    31  (unit separator)   ✗
    32  ' ' (space)        ✓  ← first slot
    ...
    126 '~' (tilde)        ✓  ← last slot
    127 (DEL)              ✗

The Histogram keeps one counter per printable character, 95 in total,
indexed by `value - 32`. It lives for the whole server process and only
ever grows.

=============================================================================
"""

import sys
from collections import Counter
from typing import Dict, Iterator, List, Optional, TextIO, Tuple, Union


PRINTABLE_MIN = 32
PRINTABLE_MAX = 126
PRINTABLE_COUNT = PRINTABLE_MAX - PRINTABLE_MIN + 1  # 95

REPORT_LINE = "char '{char}' : {count} times"


def is_printable(value: int) -> bool:
    """Check whether a byte value is a printable ASCII character."""
    return PRINTABLE_MIN <= value <= PRINTABLE_MAX


class Histogram:
    """
    Per-character observation counters for printable ASCII.

    Only the accept loop's thread mutates a Histogram. The shutdown path
    reads it after that loop has stopped, so no lock is needed.

    Usage:
        histogram = Histogram()
        histogram.observe(b"AAA")      # → 3
        histogram["A"]                 # → 3
        histogram.write_report()       # 95 lines on stdout
    """

    def __init__(self):
        self._counts: List[int] = [0] * PRINTABLE_COUNT

    def observe(self, buffer: bytes) -> int:
        """
        Count the printable bytes of a buffer and record each one.

        Counter() walks the buffer in place, without copying it; the
        per-value tallies are then folded into the 95 slots.

        Args:
            buffer: Raw bytes (bytes, bytearray or memoryview).

        Returns:
            Number of bytes in the buffer with a value in [32, 126].
        """
        total = 0
        for value, occurrences in Counter(buffer).items():
            if is_printable(value):
                self._counts[value - PRINTABLE_MIN] += occurrences
                total += occurrences
        return total

    def __getitem__(self, char: Union[str, int]) -> int:
        """Look up a counter by character ('A') or byte value (65)."""
        value = ord(char) if isinstance(char, str) else char
        if not is_printable(value):
            raise KeyError(char)
        return self._counts[value - PRINTABLE_MIN]

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        for index, count in enumerate(self._counts):
            yield chr(index + PRINTABLE_MIN), count

    def __len__(self) -> int:
        return PRINTABLE_COUNT

    @property
    def total(self) -> int:
        """Sum of all counters."""
        return sum(self._counts)

    def snapshot(self) -> Dict[str, int]:
        """Copy of the counters keyed by character, in ascending order."""
        return dict(self)

    def report_lines(self) -> List[str]:
        """The shutdown report, one line per printable character."""
        return [REPORT_LINE.format(char=char, count=count) for char, count in self]

    def write_report(self, stream: Optional[TextIO] = None) -> None:
        """
        Print the shutdown report.

        Args:
            stream: Where to write. Defaults to sys.stdout, looked up at
                    call time so redirections made after startup apply.
        """
        stream = stream if stream is not None else sys.stdout
        for line in self.report_lines():
            print(line, file=stream)
        stream.flush()


def count_printable(buffer: bytes, histogram: Optional[Histogram] = None) -> int:
    """
    Count printable bytes in a buffer.

    With a histogram, every printable byte is also recorded in it.
    Without one, this is a pure function.
    """
    if histogram is None:
        histogram = Histogram()
    return histogram.observe(buffer)
