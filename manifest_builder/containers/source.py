"""Container image sources.

A container source is an executable that writes an image tarball to its
stdout, such as the stream script produced by a container builder. This
module runs it and copies the stream into a sink.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import IO

from manifest_builder.containers.sink import ContainerSink
from manifest_builder.process import LaunchError, launch
from manifest_builder.process.relay import decode_line

logger = logging.getLogger(__name__)

# Default chunk size for copying the image stream (1 MiB)
DEFAULT_CHUNK_SIZE = 1024 * 1024


class ContainerStreamError(Exception):
    """Streaming the container image failed."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.returncode = returncode
        self.code = "container_stream_error"


def _log_stderr(pipe: IO[bytes], program: str, lines: list[str]) -> None:
    with pipe:
        for raw in pipe:
            line = decode_line(raw)
            if line is None:
                continue
            lines.append(line)
            logger.debug("%s: %s", program, line)


class ContainerSource:
    """Executable streaming a container image for ``name:tag``.

    The script receives the image name and tag as CONTAINER_NAME and
    CONTAINER_TAG in its environment.
    """

    def __init__(self, script: str | Path, name: str, tag: str = "latest") -> None:
        self.script = Path(script)
        self.name = name
        self.tag = tag

    def stream_container(
        self,
        sink: ContainerSink,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """Copy the image stream into ``sink``.

        The sink is not finalized; the caller does that once streaming
        succeeded.

        Args:
            sink: Destination of the image tarball.
            chunk_size: Bytes copied per write.

        Returns:
            Number of bytes streamed.

        Raises:
            ContainerStreamError: If the script cannot be started or fails.
            SinkError: If writing to the sink fails.
        """
        env = {"CONTAINER_NAME": self.name, "CONTAINER_TAG": self.tag}
        try:
            handle = launch(Path.cwd(), env, [self.script])
        except LaunchError as e:
            raise ContainerStreamError(
                f"Failed to start container source {self.script}: {e.cause}"
            ) from e

        stdout = handle.take_stdout()
        stderr = handle.take_stderr()
        if stdout is None or stderr is None:
            for pipe in (stdout, stderr):
                if pipe is not None:
                    pipe.close()
            handle.wait()
            raise ContainerStreamError(
                f"Container source {self.script} was started without output pipes"
            )

        stderr_lines: list[str] = []
        stderr_thread = threading.Thread(
            target=_log_stderr,
            args=(stderr, self.script.name, stderr_lines),
            name=f"container-source-{handle.pid}-stderr",
            daemon=True,
        )
        stderr_thread.start()

        logger.info("Streaming container %s:%s to %s", self.name, self.tag, sink)
        bytes_streamed = 0
        try:
            with stdout:
                while True:
                    chunk = stdout.read(chunk_size)
                    if not chunk:
                        break
                    sink.write(chunk)
                    bytes_streamed += len(chunk)
        finally:
            # closing stdout above unblocks a script still writing
            returncode = handle.wait()
            stderr_thread.join()

        if returncode != 0:
            detail = stderr_lines[-1] if stderr_lines else "no output"
            raise ContainerStreamError(
                f"Container source {self.script} failed with exit code "
                f"{returncode}: {detail}",
                returncode=returncode,
            )

        logger.info("Streamed %d bytes", bytes_streamed)
        return bytes_streamed


__all__ = ["DEFAULT_CHUNK_SIZE", "ContainerSource", "ContainerStreamError"]
