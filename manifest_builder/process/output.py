"""Output events and the lazily consumed output sequence.

A relayed process produces ``StdoutLine`` and ``StderrLine`` events followed
by exactly one ``Exit`` event. Events travel from the relay threads to the
consumer through an ``OutputChannel``; the consumer pulls them from an
``OutputSequence``.

Ordering: lines from one pipe keep their order. Interleaving between stdout
and stderr is not specified, and ``Exit`` is only very likely, not guaranteed,
to follow the last line of the still draining pipes.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import ClassVar

from manifest_builder.types import OutputStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StdoutLine:
    """A line of stdout output, without its line terminator."""

    line: str
    stream: ClassVar[OutputStream] = OutputStream.STDOUT


@dataclass(frozen=True)
class StderrLine:
    """A line of stderr output, without its line terminator."""

    line: str
    stream: ClassVar[OutputStream] = OutputStream.STDERR


@dataclass(frozen=True)
class Exit:
    """The process has exited with ``returncode``.

    Negative values mean the process was killed by that signal.
    """

    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0


Output = StdoutLine | StderrLine | Exit


@dataclass
class CollectedOutput:
    """Everything a fully drained sequence produced.

    Attributes:
        stdout: Stdout lines joined with newlines.
        stderr: Stderr lines joined with newlines.
        exit: The exit event, or None if the sequence ended without one.
    """

    stdout: str = ""
    stderr: str = ""
    exit: Exit | None = None

    @property
    def success(self) -> bool:
        return self.exit is not None and self.exit.success


# Marks that one producer has finished and dropped its sender.
_SENDER_DONE = object()


class OutputChannel:
    """Multi-producer, single-consumer channel of output events.

    The channel knows how many producers feed it and ends once each of them
    has called ``drop_sender``. Closing the receiving side makes further
    sends fail so producers can stop.
    """

    def __init__(self, senders: int) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._closed = threading.Event()
        self._senders = senders

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: Output) -> bool:
        """Queue an event. Returns False if the receiver is gone."""
        if self._closed.is_set():
            return False
        self._queue.put(event)
        return True

    def drop_sender(self) -> None:
        """Signal that one producer will not send anything more."""
        self._queue.put(_SENDER_DONE)

    def recv(self) -> Output | None:
        """Block for the next event; None once every sender is gone."""
        while self._senders > 0:
            item = self._queue.get()
            if item is _SENDER_DONE:
                self._senders -= 1
                continue
            return item  # type: ignore[return-value]
        return None

    def close(self) -> None:
        """Close the receiving side and discard buffered events."""
        self._closed.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break


class OutputSequence:
    """Lazy, single-consumer, non-restartable sequence of output events.

    Iterating blocks until the next event arrives and stops once the relay
    has finished. Closing the sequence (explicitly, via ``with`` or by
    dropping it) abandons any remaining events; relay threads stop on
    their next send attempt.

    Example:
        with builder.build(base_dir, env, ["foo"]) as output:
            for event in output:
                if isinstance(event, Exit):
                    print(event.success)
    """

    def __init__(
        self,
        channel: OutputChannel,
        threads: Sequence[threading.Thread],
        pid: int,
        argv: Sequence[str],
    ) -> None:
        self._channel = channel
        self._threads = list(threads)
        self._exhausted = False
        self.pid = pid
        self.argv = list(argv)

    def __iter__(self) -> Iterator[Output]:
        return self

    def __next__(self) -> Output:
        if self._exhausted or self._channel.closed:
            raise StopIteration
        event = self._channel.recv()
        if event is None:
            self._exhausted = True
            raise StopIteration
        return event

    def __enter__(self) -> OutputSequence:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        channel = getattr(self, "_channel", None)
        if channel is not None and not getattr(self, "_exhausted", True):
            channel.close()

    @property
    def exhausted(self) -> bool:
        """Whether the sequence has ended because the relay finished."""
        return self._exhausted

    def close(self) -> None:
        """Abandon the remaining events.

        A no-op once the sequence is exhausted.
        """
        if self._exhausted or self._channel.closed:
            return
        logger.debug("Abandoning output of pid=%d", self.pid)
        self._channel.close()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the relay threads to finish.

        Args:
            timeout: Overall time limit in seconds (None waits forever).

        Returns:
            True if all relay threads have finished, which implies the
            process has been reaped.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in self._threads)

    def collect(self) -> CollectedOutput:
        """Drain the sequence into a CollectedOutput."""
        stdout: list[str] = []
        stderr: list[str] = []
        exit_event: Exit | None = None

        for event in self:
            if isinstance(event, StdoutLine):
                stdout.append(event.line)
            elif isinstance(event, StderrLine):
                stderr.append(event.line)
            else:
                exit_event = event

        return CollectedOutput(
            stdout="\n".join(stdout),
            stderr="\n".join(stderr),
            exit=exit_event,
        )

    def __repr__(self) -> str:
        return f"OutputSequence(pid={self.pid}, exhausted={self._exhausted})"


__all__ = [
    "CollectedOutput",
    "Exit",
    "Output",
    "OutputChannel",
    "OutputSequence",
    "StderrLine",
    "StdoutLine",
]
