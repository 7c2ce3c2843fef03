"""Cursor/display model for the sysstats dashboard.

Rendering is split in two. ``plan_render`` is a pure function of the previous
per-section line counts, the round's ``Sample`` and the ``Config``; it returns
an ordered list of render operations. ``Terminal`` turns those operations
into text and ANSI cursor movements and records the new line counts.

Refresh-mode layout (top to bottom)::

    HEADER   runtime line
    MEMORY   separator, header, round_count reserved rows (row i = round i)
    CPU      separator, core count, total cpu use
    GRAPH    round_count reserved rows (row i = round i), graphics only
    USERS    separator, header, one line per session

USERS is the only section whose height changes between rounds, so it sits
last: growing or shrinking it never moves a row that carries history.
"""

from __future__ import annotations

import enum
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TextIO

from sysstats.config import Config
from sysstats.dispatcher import Sample
from sysstats.providers import MemorySnapshot, OsIdentity, Session

# ── Constants ──────────────────────────────────────────────────────────────

SEPARATOR = "-" * 39
MEMORY_TITLE = "### Memory ### (Phys.Used/Tot -- Virtual Used/Tot)"
USERS_TITLE = "### Sessions/users ###"
SYSTEM_TITLE = "### System Information ###"

GB = 1e9
NEAR_ZERO_GB = 0.01

# ANSI control sequences
CURSOR_UP = "\x1b[{}F"      # up n lines, column 1
CURSOR_DOWN = "\x1b[{}E"    # down n lines, column 1
ERASE_LINE = "\x1b[2K"


class Section(enum.Enum):
    HEADER = "header"
    MEMORY = "memory"
    CPU = "cpu"
    GRAPH = "graph"
    USERS = "users"


LineCounts = dict[Section, int]


# ── Render operations ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Move:
    """Relative vertical cursor move: positive is down, negative is up."""

    lines: int


@dataclass(frozen=True, slots=True)
class ClearLine:
    pass


@dataclass(frozen=True, slots=True)
class Write:
    text: str


@dataclass(frozen=True, slots=True)
class SetLineCount:
    section: Section
    count: int


RenderOp = Move | ClearLine | Write | SetLineCount


# ── Formatting helpers ─────────────────────────────────────────────────────


def fmt_gb(n: int | float) -> str:
    return f"{n / GB:.2f} GB"


def memory_graph(current_gb: float, previous_gb: float | None) -> str:
    """Render the physical-memory change since the previous round.

    ``|o`` marks a change in [0, 0.01) GB (or no previous sample) and ``|@``
    a change in (-0.01, 0). Larger changes draw one ``#`` (growth) or ``:``
    (shrinkage) per 0.01 GB, rounded to the nearest, closed by ``*`` or ``@``.
    """
    if previous_gb is None:
        return f"  |o 0.00 ({current_gb:.2f})"

    diff = current_gb - previous_gb
    if 0.0 <= diff < NEAR_ZERO_GB:
        return f"  |o 0.00 ({current_gb:.2f})"
    if -NEAR_ZERO_GB < diff < 0.0:
        return f"  |@ 0.00 ({current_gb:.2f})"

    length = round(abs(diff) * 100)
    if diff > 0:
        return f"  |{'#' * length}* {diff:.2f} ({current_gb:.2f})"
    return f"  |{':' * length}@ {diff:.2f} ({current_gb:.2f})"


def cpu_graph(percent: float) -> str:
    """One ``|`` per 2% of CPU use, followed by the percentage."""
    bar = "|" * round(max(percent, 0.0) / 2)
    return f"\t{bar} {percent:.2f}%"


def memory_row(
    memory: MemorySnapshot,
    previous: MemorySnapshot | None,
    graphics: bool,
) -> str:
    row = (
        f"{fmt_gb(memory.phys_used)} / {fmt_gb(memory.phys_total)}  -- "
        f"{fmt_gb(memory.virt_used)} / {fmt_gb(memory.virt_total)}"
    )
    if graphics:
        prev_gb = previous.phys_used / GB if previous is not None else None
        row += memory_graph(memory.phys_used / GB, prev_gb)
    return row


def session_line(session: Session) -> str:
    line = f" {session.user}\t{session.terminal_line}"
    if session.remote_host:
        line += f" ({session.remote_host})"
    return line


def _unavailable(metric: str, sample: Sample) -> str:
    return f" !! {metric} unavailable: {sample.failures.get(metric, 'no data')}"


def runtime_line(sample: Sample) -> str:
    if sample.self_memory_kb is None:
        return " Memory usage: n/a"
    return f" Memory usage: {sample.self_memory_kb} kilobytes"


def banner(config: Config) -> str:
    return f"Nbr of samples: {config.round_count} -- every {config.interval_seconds} secs"


def os_identity_lines(identity: OsIdentity) -> list[str]:
    return [
        SEPARATOR,
        SYSTEM_TITLE,
        f" System Name = {identity.name}",
        f" Machine Name = {identity.host}",
        f" Version = {identity.version}",
        f" Release = {identity.release}",
        f" Architecture = {identity.arch}",
        SEPARATOR,
    ]


# ── Section contents ───────────────────────────────────────────────────────


def _memory_text(sample: Sample, previous: MemorySnapshot | None, graphics: bool) -> str:
    if sample.memory is None:
        return _unavailable("memory", sample)
    return memory_row(sample.memory, previous, graphics)


def _cpu_lines(sample: Sample) -> list[str]:
    cores = "n/a" if sample.cores is None else str(sample.cores)
    if sample.cpu_percent is None:
        usage = _unavailable("cpu", sample)
    else:
        usage = f" total cpu use = {sample.cpu_percent:.2f}%"
    return [SEPARATOR, f"Number of cores: {cores}", usage]


def _graph_text(sample: Sample) -> str:
    if sample.cpu_percent is None:
        return "\t" + _unavailable("cpu", sample).strip()
    return cpu_graph(sample.cpu_percent)


def _users_lines(sample: Sample) -> list[str]:
    if "users" in sample.failures:
        return [SEPARATOR, USERS_TITLE, _unavailable("users", sample)]
    return [SEPARATOR, USERS_TITLE, *(session_line(s) for s in sample.sessions)]


# ── Planning ───────────────────────────────────────────────────────────────


def _lines(texts: Iterable[str], clear: bool = True) -> list[RenderOp]:
    ops: list[RenderOp] = []
    for text in texts:
        if clear:
            ops.append(ClearLine())
        ops.append(Write(text + "\n"))
    return ops


def _move(lines: int) -> list[RenderOp]:
    return [Move(lines)] if lines else []


def _reserved_block(
    lead: list[str],
    row: str,
    row_index: int,
    reserved: int,
    redraw: bool,
) -> list[RenderOp]:
    """Write one row inside a block of ``reserved`` rows preceded by ``lead`` lines.

    On the first draw the whole block is written with blank rows reserved.
    Afterwards only row ``row_index`` is rewritten; the cursor skips the other
    rows and ends just below the block.
    """
    if not redraw:
        rows = [row if r == row_index else "" for r in range(reserved)]
        return _lines([*lead, *rows])
    return [
        *_move(len(lead) + row_index),
        *_lines([row]),
        *_move(reserved - row_index - 1),
    ]


def _plan_sequential(
    sample: Sample,
    previous_memory: MemorySnapshot | None,
    config: Config,
) -> list[RenderOp]:
    header = [f">>> iteration {sample.round_index}", runtime_line(sample)]
    ops = _lines(header, clear=False)
    ops.append(SetLineCount(Section.HEADER, len(header)))

    if config.collect_memory_cpu:
        row = _memory_text(sample, previous_memory, config.graphics)
        memory = [SEPARATOR, MEMORY_TITLE, row]
        ops += _lines(memory, clear=False)
        ops.append(SetLineCount(Section.MEMORY, len(memory)))

        cpu = _cpu_lines(sample)
        ops += _lines(cpu, clear=False)
        ops.append(SetLineCount(Section.CPU, len(cpu)))

        if config.graphics:
            ops += _lines([_graph_text(sample)], clear=False)
            ops.append(SetLineCount(Section.GRAPH, 1))

    if config.collect_users:
        users = _users_lines(sample)
        ops += _lines(users, clear=False)
        ops.append(SetLineCount(Section.USERS, len(users)))
    return ops


def _plan_refresh(
    previous_counts: LineCounts,
    sample: Sample,
    previous_memory: MemorySnapshot | None,
    config: Config,
) -> list[RenderOp]:
    n = config.round_count
    row = min(sample.round_index, n - 1)
    ops = _move(-sum(previous_counts.values()))

    ops += _lines([runtime_line(sample)])
    ops.append(SetLineCount(Section.HEADER, 1))

    if config.collect_memory_cpu:
        lead = [SEPARATOR, MEMORY_TITLE]
        size = len(lead) + n
        ops += _reserved_block(
            lead,
            _memory_text(sample, previous_memory, config.graphics),
            row,
            n,
            redraw=previous_counts.get(Section.MEMORY) == size,
        )
        ops.append(SetLineCount(Section.MEMORY, size))

        cpu = _cpu_lines(sample)
        ops += _lines(cpu)
        ops.append(SetLineCount(Section.CPU, len(cpu)))

        if config.graphics:
            ops += _reserved_block(
                [],
                _graph_text(sample),
                row,
                n,
                redraw=previous_counts.get(Section.GRAPH) == n,
            )
            ops.append(SetLineCount(Section.GRAPH, n))

    if config.collect_users:
        users = _users_lines(sample)
        ops += _lines(users)
        stale = previous_counts.get(Section.USERS, 0) - len(users)
        if stale > 0:
            ops += _lines([""] * stale)
            ops += _move(-stale)
        ops.append(SetLineCount(Section.USERS, len(users)))
    return ops


def plan_render(
    previous_counts: LineCounts,
    sample: Sample,
    previous_memory: MemorySnapshot | None,
    config: Config,
) -> list[RenderOp]:
    """Plan the output for one round.

    Args:
        previous_counts: Lines each section occupied after the last render
            (empty before the first round).
        sample: This round's results.
        previous_memory: Last successful memory snapshot, for the delta graph.
        config: Run settings; ``sequential`` and ``graphics`` pick the layout.

    Returns:
        Ordered render operations. In refresh mode the cursor starts and ends
        just below the dashboard.
    """
    if config.sequential:
        return _plan_sequential(sample, previous_memory, config)
    return _plan_refresh(previous_counts, sample, previous_memory, config)


def apply_line_counts(previous_counts: LineCounts, ops: Iterable[RenderOp]) -> LineCounts:
    counts = dict(previous_counts)
    for op in ops:
        if isinstance(op, SetLineCount):
            counts[op.section] = op.count
    return counts


# ── Terminal output ────────────────────────────────────────────────────────


class Terminal:
    """Writes render operations to a text stream as ANSI sequences."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout

    def execute(self, ops: Iterable[RenderOp], counts: LineCounts) -> None:
        """Emit ``ops`` and record every SetLineCount into ``counts``."""
        out: list[str] = []
        for op in ops:
            if isinstance(op, Write):
                out.append(op.text)
            elif isinstance(op, ClearLine):
                out.append(ERASE_LINE)
            elif isinstance(op, Move):
                if op.lines > 0:
                    out.append(CURSOR_DOWN.format(op.lines))
                elif op.lines < 0:
                    out.append(CURSOR_UP.format(-op.lines))
            elif isinstance(op, SetLineCount):
                counts[op.section] = op.count
        self._stream.write("".join(out))
        self._stream.flush()

    def write_lines(self, lines: Iterable[str]) -> None:
        self._stream.write("".join(f"{line}\n" for line in lines))
        self._stream.flush()
