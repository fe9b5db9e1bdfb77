"""Output relay for spawned processes.

This module turns a ProcessHandle into an OutputSequence:
- One thread per pipe reads lines and forwards them tagged by stream
- One thread waits for the process and sends the single Exit event
- All three share one channel; the sequence ends when all have finished

Undecodable lines are logged and skipped unless a lossy codec error
handler is requested. When the consumer abandons the
sequence, readers stop at their next line and close their pipe; the exit
watcher still reaps the process.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import IO

from manifest_builder.process.launcher import ProcessHandle
from manifest_builder.process.output import (
    Exit,
    Output,
    OutputChannel,
    OutputSequence,
    StderrLine,
    StdoutLine,
)

logger = logging.getLogger(__name__)

# stdout reader, stderr reader, exit watcher
RELAY_PRODUCERS = 3


def _strip_line_ending(raw: bytes) -> bytes:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


def decode_line(raw: bytes, errors: str = "strict") -> str | None:
    """Decode one output line without its terminator.

    With ``errors="strict"`` an undecodable line is logged and None is
    returned so the caller skips it; any other codec error handler, such
    as ``"replace"``, keeps every line.
    """
    try:
        return _strip_line_ending(raw).decode("utf-8", errors=errors)
    except UnicodeDecodeError as e:
        logger.warning("Failed to decode output line: %s", e)
        return None


def read_lines_to_channel(
    pipe: IO[bytes] | None,
    channel: OutputChannel,
    make_event: Callable[[str], Output],
    errors: str = "strict",
) -> None:
    """Forward lines from ``pipe`` until EOF or until the receiver is gone.

    Args:
        pipe: Binary read end of a pipe (None sends nothing).
        channel: Channel to forward events into.
        make_event: Wraps a decoded line into an output event.
        errors: Codec error handler for undecodable lines (see decode_line).
    """
    try:
        if pipe is None:
            return
        for raw in pipe:
            line = decode_line(raw, errors)
            if line is None:
                continue

            if not channel.send(make_event(line)):
                # receiver is gone
                break
    except OSError as e:
        logger.warning("Failed to read output: %s", e)
    finally:
        if pipe is not None:
            pipe.close()
        channel.drop_sender()


def wait_to_channel(handle: ProcessHandle, channel: OutputChannel) -> None:
    """Wait for the process to exit and send its Exit event."""
    try:
        returncode = handle.wait()
        channel.send(Exit(returncode))
    finally:
        channel.drop_sender()


def relay_output(handle: ProcessHandle, errors: str = "strict") -> OutputSequence:
    """Relay a process's stdout, stderr and exit status into one sequence.

    Takes ownership of the handle's pipes and its wait capability; the
    caller must not read from or wait on the handle afterwards.

    Args:
        handle: Freshly launched process.
        errors: Codec error handler for output lines. The default skips
            undecodable lines; "replace" keeps them with U+FFFD substitutes.

    Returns:
        OutputSequence yielding lines followed by one Exit event.
    """
    channel = OutputChannel(senders=RELAY_PRODUCERS)
    name = f"relay-{handle.pid}"

    threads = [
        threading.Thread(
            target=read_lines_to_channel,
            args=(handle.take_stdout(), channel, StdoutLine, errors),
            name=f"{name}-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=read_lines_to_channel,
            args=(handle.take_stderr(), channel, StderrLine, errors),
            name=f"{name}-stderr",
            daemon=True,
        ),
        threading.Thread(
            target=wait_to_channel,
            args=(handle, channel),
            name=f"{name}-wait",
            daemon=True,
        ),
    ]
    for thread in threads:
        thread.start()

    logger.debug("Relaying output of pid=%d", handle.pid)
    return OutputSequence(channel, threads, pid=handle.pid, argv=handle.argv)


__all__ = [
    "RELAY_PRODUCERS",
    "decode_line",
    "read_lines_to_channel",
    "relay_output",
    "wait_to_channel",
]
