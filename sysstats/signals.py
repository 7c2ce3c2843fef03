"""Interrupt and suspend handling for the coordinator.

Only the main thread installs these handlers; workers block the same signals
(see ``dispatcher``). The controller is an explicit state machine:

    IDLE --start--> RUNNING --interrupt--> PAUSED --resume--> RUNNING
                    RUNNING --finish-----> TERMINATED
                    PAUSED  --confirm----> TERMINATED

An interrupt prompts on stderr and blocks on one line of stdin. A declined
prompt is erased and the interrupted wait resumes where it was; a confirmed
one raises ``TerminateRequested`` out of that wait. Suspend requests are
swallowed.
"""

from __future__ import annotations

import enum
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType
from typing import Any, TextIO

PROMPT = "Do you want to quit? [y/n] "
CLEAR_LINE = "\r\x1b[2K"
ERASE_PREVIOUS_LINE = "\x1b[1F\x1b[2K"

SIGTSTP: int | None = getattr(signal, "SIGTSTP", None)


class State(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"


class Event(enum.Enum):
    START = "start"
    INTERRUPT = "interrupt"
    RESUME = "resume"
    CONFIRM = "confirm"
    FINISH = "finish"


TRANSITIONS: dict[tuple[State, Event], State] = {
    (State.IDLE, Event.START): State.RUNNING,
    (State.RUNNING, Event.INTERRUPT): State.PAUSED,
    (State.PAUSED, Event.RESUME): State.RUNNING,
    (State.PAUSED, Event.CONFIRM): State.TERMINATED,
    (State.RUNNING, Event.FINISH): State.TERMINATED,
}


class InvalidTransition(RuntimeError):
    def __init__(self, state: State, event: Event) -> None:
        super().__init__(f"cannot {event.value} while {state.value}")
        self.state = state
        self.event = event


class TerminateRequested(Exception):
    """The operator confirmed the interrupt prompt."""


class SignalController:
    """Owns the run state and the SIGINT/SIGTSTP handlers of the coordinator."""

    def __init__(
        self,
        input_stream: TextIO | None = None,
        prompt_stream: TextIO | None = None,
    ) -> None:
        self._input = input_stream if input_stream is not None else sys.stdin
        self._prompt = prompt_stream if prompt_stream is not None else sys.stderr
        self._state = State.IDLE
        self._previous_handlers: dict[int, Any] = {}
        self._deferring = False
        self._pending_interrupt = False
        self._pending_suspend = False

    @property
    def state(self) -> State:
        return self._state

    def _fire(self, event: Event) -> State:
        try:
            self._state = TRANSITIONS[(self._state, event)]
        except KeyError:
            raise InvalidTransition(self._state, event) from None
        return self._state

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        self._fire(Event.START)

    def finish(self) -> None:
        """Mark a normal end of run. No-op if already terminated."""
        if self._state is not State.TERMINATED:
            self._fire(Event.FINISH)

    def install(self) -> None:
        """Install the handlers. Must be called from the main thread."""
        self._previous_handlers[signal.SIGINT] = signal.signal(
            signal.SIGINT, self._on_interrupt
        )
        if SIGTSTP is not None:
            self._previous_handlers[SIGTSTP] = signal.signal(SIGTSTP, self._on_suspend)

    def restore(self) -> None:
        """Put back whatever handlers were active before ``install``."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    # ── Handlers ───────────────────────────────────────────────────────────

    def _on_interrupt(self, signum: int, frame: FrameType | None) -> None:
        if self._deferring:
            self._pending_interrupt = True
            return
        self.handle_interrupt()

    def _on_suspend(self, signum: int, frame: FrameType | None) -> None:
        if self._deferring:
            self._pending_suspend = True
            return
        self.handle_suspend()

    def handle_interrupt(self) -> None:
        """Ask the operator whether to quit.

        Raises:
            TerminateRequested: If the answer starts with ``y`` or ``Y``.
        """
        if self._state is not State.RUNNING:
            # Already prompting, or not running at all
            return
        self._fire(Event.INTERRUPT)

        self._prompt.write(CLEAR_LINE + PROMPT)
        self._prompt.flush()
        answer = self._input.readline()

        if answer[:1] in ("y", "Y"):
            self._fire(Event.CONFIRM)
            raise TerminateRequested()

        self._prompt.write(ERASE_PREVIOUS_LINE)
        self._prompt.flush()
        self._fire(Event.RESUME)

    def handle_suspend(self) -> None:
        """Swallow a suspend request and wipe the ``^Z`` echo."""
        self._prompt.write(CLEAR_LINE)
        self._prompt.flush()

    @contextmanager
    def protected(self) -> Iterator[None]:
        """Hold signal handling until the block exits.

        Used around dashboard writes so a prompt never lands mid-redraw.
        """
        self._deferring = True
        try:
            yield
        finally:
            self._deferring = False
        if self._pending_suspend:
            self._pending_suspend = False
            self.handle_suspend()
        if self._pending_interrupt:
            self._pending_interrupt = False
            self.handle_interrupt()
