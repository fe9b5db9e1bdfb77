"""Sinks for streaming container image tarballs.

A sink accepts bytes and is finalized exactly once:
- FileSink: flush and fsync the output file
- StdoutSink: flush standard output
- RuntimeSink: close the loader's stdin, wait for it and check its exit status

Only RuntimeSink can fail at finalize time for reasons other than I/O,
which is why every sink reports failures through SinkError.

When streaming fails before finalize, ``abort`` releases the sink instead:
FileSink removes the partial file and RuntimeSink reaps its loader.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from manifest_builder.process import (
    LaunchError,
    OutputSequence,
    StderrLine,
    StdoutLine,
    launch,
    relay_output,
)

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Error while writing to or finalizing a sink."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SinkClosedError(SinkError):
    """The sink was already finalized."""

    def __init__(self, sink: str) -> None:
        super().__init__(f"Sink {sink} is already finalized", error_code="SINK_CLOSED")
        self.sink = sink


class SinkWriteError(SinkError):
    """I/O error while writing to or flushing a sink."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="SINK_WRITE_ERROR")


class SinkOpenError(SinkError):
    """The sink's destination could not be opened or started."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="SINK_OPEN_ERROR")


class UnderlyingProcessFailed(SinkError):
    """The process backing a sink exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        super().__init__(
            f"Writing to {argv[0]} was unsuccessful (exit code {returncode})",
            error_code="UNDERLYING_PROCESS_FAILED",
        )
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class _BaseSink:
    """Shared bookkeeping: reject writes once finalized."""

    def __init__(self) -> None:
        self._finalized = False
        self.bytes_written = 0

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _check_open(self) -> None:
        if self._finalized:
            raise SinkClosedError(str(self))

    def _mark_finalized(self) -> None:
        self._check_open()
        self._finalized = True


class FileSink(_BaseSink):
    """Sink writing to a regular file, created or truncated on open."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        try:
            self._file: BinaryIO = open(self.path, "wb")
        except OSError as e:
            logger.error("Could not open output file %s: %s", self.path, e)
            raise SinkOpenError(f"Could not open output file {self.path}: {e}") from e

    def write(self, data: bytes) -> None:
        self._check_open()
        try:
            self._file.write(data)
        except OSError as e:
            raise SinkWriteError(f"Error writing to {self.path}: {e}") from e
        self.bytes_written += len(data)

    def finalize(self) -> None:
        """Flush and fsync the file, then close it."""
        self._mark_finalized()
        try:
            self._file.flush()
            os.fsync(self._file.fileno())
        except OSError as e:
            raise SinkWriteError(f"Error syncing {self.path}: {e}") from e
        finally:
            self._file.close()
        logger.info("Wrote %d bytes to %s", self.bytes_written, self.path)

    def abort(self) -> None:
        """Close and remove the partially written file."""
        if self._finalized:
            return
        self._finalized = True
        self._file.close()
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.info("Removed partial output %s", self.path)

    def __str__(self) -> str:
        return f"file '{self.path}'"


class StdoutSink(_BaseSink):
    """Sink writing to standard output (or another binary stream)."""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        super().__init__()
        self._stream = stream if stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> None:
        self._check_open()
        try:
            self._stream.write(data)
        except OSError as e:
            raise SinkWriteError(f"Error writing to stdout: {e}") from e
        self.bytes_written += len(data)

    def finalize(self) -> None:
        """Flush the stream; standard output stays open."""
        self._mark_finalized()
        try:
            self._stream.flush()
        except OSError as e:
            raise SinkWriteError(f"Error flushing stdout: {e}") from e

    def abort(self) -> None:
        """Stop accepting data; what was written to stdout cannot be taken back."""
        self._finalized = True

    def __str__(self) -> str:
        return "stdout"


class RuntimeSink(_BaseSink):
    """Sink writing to the stdin of a loader process such as ``docker load``.

    The loader's own output is relayed and logged while data is written,
    so the loader never blocks on a full stdout or stderr pipe.
    """

    def __init__(self, argv: Sequence[str], cwd: str | Path | None = None) -> None:
        super().__init__()
        self.argv = list(argv)
        try:
            handle = launch(cwd or Path.cwd(), None, self.argv, stdin=True)
        except LaunchError as e:
            logger.error("Failed to call runtime %s: %s", self.argv[0], e.cause)
            raise SinkOpenError(f"Failed to call runtime {self.argv[0]}: {e.cause}") from e

        stdin = handle.take_stdin()
        self._output: OutputSequence = relay_output(handle)
        if stdin is None:
            self._output.collect()
            raise SinkOpenError(f"Runtime {self.argv[0]} was started without stdin")
        self._stdin: BinaryIO = stdin  # type: ignore[assignment]

    @property
    def pid(self) -> int:
        return self._output.pid

    def write(self, data: bytes) -> None:
        self._check_open()
        try:
            self._stdin.write(data)
        except OSError as e:
            raise SinkWriteError(f"Error writing to {self.argv[0]}: {e}") from e
        self.bytes_written += len(data)

    def finalize(self) -> None:
        """Close the loader's stdin and wait for it to exit.

        Raises:
            UnderlyingProcessFailed: If the loader exited with a non-zero status.
            SinkWriteError: If flushing the remaining data failed.
        """
        self._mark_finalized()
        flush_error: OSError | None = None
        try:
            self._stdin.flush()
        except OSError as e:
            flush_error = e
        self._close_stdin()
        returncode, stderr = self._drain()

        if returncode != 0:
            raise UnderlyingProcessFailed(
                self.argv,
                -1 if returncode is None else returncode,
                "\n".join(stderr),
            )
        if flush_error is not None:
            raise SinkWriteError(
                f"Error writing to {self.argv[0]}: {flush_error}"
            ) from flush_error
        logger.info("Loaded %d bytes into %s", self.bytes_written, self.argv[0])

    def abort(self) -> None:
        """Close the loader's stdin and reap it without checking its status.

        The loader sees a truncated image and is expected to fail; its
        output is logged.
        """
        if self._finalized:
            return
        self._finalized = True
        self._close_stdin()
        returncode, _ = self._drain()
        logger.info("Aborted %s (exit code %s)", self.argv[0], returncode)

    def _close_stdin(self) -> None:
        try:
            # closing signals end of input to the loader
            self._stdin.close()
        except OSError as e:
            logger.debug("Error closing stdin of %s: %s", self.argv[0], e)

    def _drain(self) -> tuple[int | None, list[str]]:
        """Log the loader's remaining output and return its exit status."""
        stderr: list[str] = []
        returncode: int | None = None
        for event in self._output:
            if isinstance(event, StdoutLine):
                logger.info("%s: %s", self.argv[0], event.line)
            elif isinstance(event, StderrLine):
                logger.warning("%s: %s", self.argv[0], event.line)
                stderr.append(event.line)
            else:
                returncode = event.returncode
        return returncode, stderr

    def __str__(self) -> str:
        return self.argv[0]


ContainerSink = FileSink | StdoutSink | RuntimeSink


__all__ = [
    "ContainerSink",
    "FileSink",
    "RuntimeSink",
    "SinkClosedError",
    "SinkError",
    "SinkOpenError",
    "SinkWriteError",
    "StdoutSink",
    "UnderlyingProcessFailed",
]
