"""Round scheduler: dispatch, render, advance, for a fixed number of rounds."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sysstats import display, providers
from sysstats.config import Config
from sysstats.dispatcher import MetricSources, Sample, run_round
from sysstats.display import LineCounts, Terminal
from sysstats.providers import MemorySnapshot, OsIdentity, ProviderError
from sysstats.signals import SignalController, TerminateRequested


@dataclass
class RunState:
    """Cross-round state. Only the coordinator touches it, between rounds."""

    previous_memory: MemorySnapshot | None = None
    line_counts: LineCounts = field(default_factory=lambda: LineCounts())
    rounds_done: int = 0


class Scheduler:
    """Drives ``config.round_count`` rounds and prints the OS block at the end."""

    def __init__(
        self,
        config: Config,
        controller: SignalController,
        terminal: Terminal | None = None,
        sources: MetricSources | None = None,
        sleep: Callable[[float], None] = time.sleep,
        os_identity: Callable[[], OsIdentity] = providers.read_os_identity,
    ) -> None:
        self.config = config
        self.controller = controller
        self.terminal = terminal or Terminal()
        self.sources = sources or MetricSources()
        self.state = RunState()
        self._sleep = sleep
        self._os_identity = os_identity

    def run(self) -> int:
        """Run every round, or until an interrupt is confirmed.

        Returns:
            Process exit status (always 0; spawn failures propagate).
        """
        self.controller.start()
        try:
            with self.controller.protected():
                self.terminal.write_lines([display.banner(self.config)])
            for i in range(self.config.round_count):
                self._round(i)
            self.controller.finish()
        except TerminateRequested:
            pass
        self._emit_os_identity()
        return 0

    def _round(self, index: int) -> None:
        sample = run_round(self.config, index, self.sources)

        # The CPU worker already waited out the interval
        if not self.config.collect_memory_cpu:
            self._sleep(self.config.interval_seconds)

        with self.controller.protected():
            self._render(sample)

    def _render(self, sample: Sample) -> None:
        ops = display.plan_render(
            self.state.line_counts, sample, self.state.previous_memory, self.config
        )
        self.terminal.execute(ops, self.state.line_counts)
        if sample.memory is not None:
            self.state.previous_memory = sample.memory
        self.state.rounds_done += 1

    def _emit_os_identity(self) -> None:
        try:
            lines = display.os_identity_lines(self._os_identity())
        except (OSError, ProviderError) as e:
            lines = [display.SEPARATOR, f" !! system information unavailable: {e}"]
        self.terminal.write_lines(lines)
