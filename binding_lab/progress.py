"""Operator-facing progress log for evaluation runs."""

import threading
from typing import Callable, Optional


class ProgressLog:
    """Ordered, append-only list of progress lines.

    Lines are pushed to ``sink`` as they arrive so failures surface while a
    run is still going, not only in a final summary.
    """

    def __init__(self, sink: Optional[Callable[[str], None]] = None):
        self._lines: list[str] = []
        self._lock = threading.Lock()
        self._sink = sink

    def emit(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)
        if self._sink is not None:
            self._sink(line)

    @property
    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def __str__(self) -> str:
        return "\n".join(self.lines)
