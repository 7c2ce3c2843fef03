"""Metric providers: stateless reads of memory, CPU, sessions and OS identity."""

import platform
import resource
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import psutil


class ProviderError(Exception):
    """A metric source could not be read or parsed."""


# ── Data types ──────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class MemorySnapshot:
    """Physical and virtual (physical + swap) memory usage, in bytes."""
    phys_used: int
    phys_total: int
    virt_used: int
    virt_total: int


@dataclass(frozen=True, slots=True)
class Session:
    user: str           # may be empty
    terminal_line: str
    remote_host: str    # empty for local logins


@dataclass(frozen=True, slots=True)
class OsIdentity:
    name: str
    host: str
    version: str
    release: str
    arch: str


# ── Memory ──────────────────────────────────────────────────────────────────

def read_memory_snapshot() -> MemorySnapshot:
    """Read physical and virtual memory usage.

    psutil's ``used`` is MemTotal - MemFree - Buffers - Cached (Cached
    including SReclaimable), which is the figure the dashboard reports.
    """
    try:
        ram = psutil.virtual_memory()
        swap = psutil.swap_memory()
    except (OSError, RuntimeError) as e:
        raise ProviderError(f"cannot read memory info: {e}") from e

    return MemorySnapshot(
        phys_used=ram.used,
        phys_total=ram.total,
        virt_used=ram.used + swap.used,
        virt_total=ram.total + swap.total,
    )


# ── CPU ─────────────────────────────────────────────────────────────────────

def _split_cpu_times(times: Any) -> tuple[float, float]:
    """Return (busy, idle) jiffies: busy = user+nice+system+irq+softirq, idle = idle+iowait."""
    busy = (
        times.user
        + getattr(times, "nice", 0.0)
        + times.system
        + getattr(times, "irq", 0.0)
        + getattr(times, "softirq", 0.0)
    )
    idle = times.idle + getattr(times, "iowait", 0.0)
    return busy, idle


def _calc_cpu_percent(prev: tuple[float, float], curr: tuple[float, float]) -> float:
    """Compute busy percentage between two (busy, idle) samples."""
    busy_delta = curr[0] - prev[0]
    total_delta = busy_delta + (curr[1] - prev[1])
    if total_delta <= 0:
        return 0.0
    return 100.0 * busy_delta / total_delta


def read_cpu_busy_percent(
    interval_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """Sample aggregate CPU times, wait ``interval_seconds``, sample again.

    Blocks for the whole interval; callers use it as their pacing source.
    """
    try:
        before = _split_cpu_times(psutil.cpu_times())
        sleep(interval_seconds)
        after = _split_cpu_times(psutil.cpu_times())
    except (OSError, RuntimeError) as e:
        raise ProviderError(f"cannot read cpu times: {e}") from e
    return _calc_cpu_percent(before, after)


def core_count() -> int:
    """Number of logical CPUs currently online."""
    cores = psutil.cpu_count()
    if not cores:
        raise ProviderError("cannot determine number of cores")
    return cores


# ── Sessions ────────────────────────────────────────────────────────────────

def list_sessions() -> list[Session]:
    """Currently logged-in sessions, in the order the OS reports them."""
    try:
        users = psutil.users()
    except (OSError, RuntimeError) as e:
        raise ProviderError(f"cannot enumerate sessions: {e}") from e

    return [
        Session(
            user=u.name or "",
            terminal_line=u.terminal or "",
            remote_host=u.host or "",
        )
        for u in users
    ]


# ── Identity / self ─────────────────────────────────────────────────────────

def read_os_identity() -> OsIdentity:
    uts = platform.uname()
    return OsIdentity(
        name=uts.system,
        host=uts.node,
        version=uts.version,
        release=uts.release,
        arch=uts.machine,
    )


def read_self_memory_kb() -> int:
    """Peak resident set size of this process in kilobytes (Linux units)."""
    try:
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    except OSError as e:
        raise ProviderError(f"cannot read resource usage: {e}") from e
