"""Shared fixtures: a line-based screen emulator and canned metric sources."""

from __future__ import annotations

from collections.abc import Callable, Iterable

import pytest

from sysstats.dispatcher import MetricSources
from sysstats.display import ClearLine, Move, RenderOp, SetLineCount, Write
from sysstats.providers import MemorySnapshot, Session

GB = 10**9


class FakeScreen:
    """Applies render ops to a list of lines, like a terminal that never scrolls off.

    Cursor moves may only land on lines that were already written, which is
    what ESC[nE / ESC[nF allow on a real terminal.
    """

    def __init__(self) -> None:
        self.lines: list[str] = [""]
        self.row = 0
        self.col = 0

    def apply(self, ops: Iterable[RenderOp]) -> None:
        for op in ops:
            if isinstance(op, Move):
                target = self.row + op.lines
                assert 0 <= target < len(self.lines), f"move {op.lines} from {self.row} leaves screen"
                self.row, self.col = target, 0
            elif isinstance(op, ClearLine):
                self.lines[self.row] = ""
            elif isinstance(op, Write):
                self._write(op.text)
            elif isinstance(op, SetLineCount):
                pass

    def _write(self, text: str) -> None:
        for ch in text:
            if ch == "\n":
                self.row += 1
                self.col = 0
                if self.row == len(self.lines):
                    self.lines.append("")
                continue
            line = self.lines[self.row].ljust(self.col)
            self.lines[self.row] = line[: self.col] + ch + line[self.col + 1:]
            self.col += 1


def make_sources(
    memory: Callable[[], MemorySnapshot] | None = None,
    cpu_percent: Callable[[float], float] | None = None,
    sessions: Callable[[], list[Session]] | None = None,
    cores: int = 4,
) -> MetricSources:
    """MetricSources that never touch the host and never sleep."""
    return MetricSources(
        memory=memory or (lambda: MemorySnapshot(8 * GB, 16 * GB, 9 * GB, 18 * GB)),
        cpu_percent=cpu_percent or (lambda interval: 25.0),
        cores=lambda: cores,
        sessions=sessions or (lambda: [Session("alice", "pts/0", "10.0.0.5")]),
        self_memory_kb=lambda: 2048,
    )


@pytest.fixture
def screen() -> FakeScreen:
    return FakeScreen()
