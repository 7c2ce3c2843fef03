"""Worker dispatch: one short-lived thread per enabled metric per round.

Each worker owns a single-slot queue used as a one-shot result channel and
never touches coordinator state. The coordinator joins every channel, in a
fixed order, before the round is handed to the display.
"""

from __future__ import annotations

import queue
import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sysstats import providers
from sysstats.config import Config
from sysstats.providers import MemorySnapshot, ProviderError, Session

# Collection order is also the order results are read back.
METRIC_ORDER = ("memory", "users", "cpu")

# Signals only the coordinator may handle
_MASKED_SIGNALS = {signal.SIGINT, getattr(signal, "SIGTSTP", signal.SIGINT)}


class SpawnError(Exception):
    """A worker thread or its channel could not be created."""


class ProtocolError(Exception):
    """A worker's channel was empty or carried an unexpected payload."""


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Ok:
    payload: Any


@dataclass(frozen=True, slots=True)
class Failed:
    error: str


WorkerResult = Ok | Failed

# (compute, expected payload type)
_Job = tuple[Callable[[], Any], type]


@dataclass(frozen=True, slots=True)
class CpuReading:
    percent: float
    cores: int


@dataclass(slots=True)
class Sample:
    """One round's worth of results, as consumed by the display."""

    round_index: int
    memory: MemorySnapshot | None = None
    cpu_percent: float | None = None
    cores: int | None = None
    sessions: list[Session] = field(default_factory=lambda: list[Session]())
    self_memory_kb: int | None = None
    failures: dict[str, str] = field(default_factory=lambda: dict[str, str]())


@dataclass(frozen=True, slots=True)
class MetricSources:
    """Provider callables used by the workers. Swappable for tests."""

    memory: Callable[[], MemorySnapshot] = providers.read_memory_snapshot
    cpu_percent: Callable[[float], float] = providers.read_cpu_busy_percent
    cores: Callable[[], int] = providers.core_count
    sessions: Callable[[], list[Session]] = providers.list_sessions
    self_memory_kb: Callable[[], int] = providers.read_self_memory_kb


# ── Workers ────────────────────────────────────────────────────────────────


def _block_coordinator_signals() -> None:
    """Keep SIGINT/SIGTSTP off this thread so they land on the coordinator."""
    if hasattr(signal, "pthread_sigmask"):
        signal.pthread_sigmask(signal.SIG_BLOCK, _MASKED_SIGNALS)


def _worker(compute: Callable[[], Any], channel: queue.Queue[WorkerResult]) -> None:
    _block_coordinator_signals()
    try:
        result: WorkerResult = Ok(compute())
    except ProviderError as e:
        result = Failed(str(e))
    except Exception as e:  # noqa: BLE001 - any worker fault stays in its section
        result = Failed(f"{type(e).__name__}: {e}")
    channel.put_nowait(result)


def _spawn(
    name: str, compute: Callable[[], Any]
) -> tuple[threading.Thread, queue.Queue[WorkerResult]]:
    channel: queue.Queue[WorkerResult] = queue.Queue(maxsize=1)
    thread = threading.Thread(
        target=_worker,
        args=(compute, channel),
        daemon=True,
        name=f"sysstats-{name}",
    )
    try:
        thread.start()
    except RuntimeError as e:
        raise SpawnError(f"{name}: {e}") from e
    return thread, channel


def _receive(
    thread: threading.Thread,
    channel: queue.Queue[WorkerResult],
    expected: type,
) -> WorkerResult:
    """Join a worker and take its single result off the channel."""
    thread.join()
    try:
        result = channel.get_nowait()
        if isinstance(result, Failed):
            return result
        if not isinstance(result, Ok) or not isinstance(result.payload, expected):
            raise ProtocolError(f"unexpected result {result!r}")
    except queue.Empty:
        return Failed(str(ProtocolError("worker exited without a result")))
    except ProtocolError as e:
        return Failed(str(e))
    return result


# ── Round ──────────────────────────────────────────────────────────────────


def _plan_workers(config: Config, sources: MetricSources) -> dict[str, _Job]:
    """Map each enabled metric to (compute, expected payload type)."""
    plan: dict[str, _Job] = {}
    if config.collect_memory_cpu:
        plan["memory"] = (sources.memory, MemorySnapshot)

        def cpu() -> CpuReading:
            cores = sources.cores()
            percent = sources.cpu_percent(config.interval_seconds)
            return CpuReading(percent=float(percent), cores=cores)

        plan["cpu"] = (cpu, CpuReading)
    if config.collect_users:
        plan["users"] = (lambda: list(sources.sessions()), list)
    return plan


def run_round(
    config: Config,
    round_index: int,
    sources: MetricSources | None = None,
) -> Sample:
    """Collect one round of metrics concurrently.

    Every enabled worker is started before any is joined, so the session
    enumeration never waits on the CPU interval. Only the CPU worker sleeps.

    Raises:
        SpawnError: If a worker thread cannot be started.
    """
    sources = sources or MetricSources()
    plan = _plan_workers(config, sources)

    running = {name: _spawn(name, compute) for name, (compute, _) in plan.items()}

    sample = Sample(round_index=round_index)
    try:
        sample.self_memory_kb = sources.self_memory_kb()
    except ProviderError:
        sample.self_memory_kb = None

    for name in METRIC_ORDER:
        if name not in running:
            continue
        thread, channel = running[name]
        result = _receive(thread, channel, plan[name][1])
        if isinstance(result, Failed):
            sample.failures[name] = result.error
            continue
        if name == "memory":
            sample.memory = result.payload
        elif name == "users":
            sample.sessions = result.payload
        else:
            sample.cpu_percent = result.payload.percent
            sample.cores = result.payload.cores
    return sample
