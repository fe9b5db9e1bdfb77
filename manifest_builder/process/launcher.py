"""Process launcher for external build and packaging tools.

This module handles:
- Spawning a child process with a working directory and merged environment
- Capturing stdout/stderr as pipes so they can be relayed
- Optionally exposing the child's stdin to the caller
- Handing pipes and the wait capability to exactly one owner
"""

from __future__ import annotations

import errno
import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


class LaunchError(Exception):
    """Raised when a child process cannot be spawned.

    Missing and non-executable binaries are not distinguished; the underlying
    OSError is available as ``cause`` and as ``__cause__``.
    """

    def __init__(self, argv: Sequence[str], cause: OSError) -> None:
        self.argv = list(argv)
        self.cause = cause
        self.code = "launch_error"
        program = self.argv[0] if self.argv else "<empty>"
        super().__init__(f"Failed to launch {program}: {cause}")


class ProcessHandle:
    """Owner of a spawned child process.

    Each pipe can be taken exactly once; whoever takes it is responsible
    for reading (or writing) and closing it. ``wait`` consumes the handle's
    wait capability and must be called exactly once.
    """

    def __init__(self, process: subprocess.Popen[bytes], argv: Sequence[str]) -> None:
        self._process = process
        self.argv = list(argv)
        self._waited = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """Exit status once the process has been waited for, else None."""
        return self._process.returncode

    def take_stdout(self) -> IO[bytes] | None:
        """Take ownership of the stdout read end."""
        pipe, self._process.stdout = self._process.stdout, None
        return pipe

    def take_stderr(self) -> IO[bytes] | None:
        """Take ownership of the stderr read end."""
        pipe, self._process.stderr = self._process.stderr, None
        return pipe

    def take_stdin(self) -> IO[bytes] | None:
        """Take ownership of the stdin write end (only set when requested)."""
        pipe, self._process.stdin = self._process.stdin, None
        return pipe

    def wait(self) -> int:
        """Block until the child exits and return its exit status.

        Raises:
            RuntimeError: If the handle was already waited on.
        """
        if self._waited:
            raise RuntimeError(f"process {self.pid} was already waited on")
        self._waited = True
        returncode = self._process.wait()
        logger.debug("Process pid=%d exited with %d", self.pid, returncode)
        return returncode

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, argv={self.argv!r})"


def launch(
    cwd: str | Path,
    env_overrides: Mapping[str, str] | None,
    argv: Sequence[str | os.PathLike[str]],
    *,
    stdin: bool = False,
) -> ProcessHandle:
    """Spawn a child process with captured stdout and stderr.

    Args:
        cwd: Working directory of the child; must exist.
        env_overrides: Variables merged into the inherited environment.
        argv: Program and arguments.
        stdin: Connect a pipe to the child's stdin instead of /dev/null.

    Returns:
        ProcessHandle owning the child and its pipes.

    Raises:
        LaunchError: If the process could not be spawned.
    """
    args = [os.fspath(arg) for arg in argv]
    if not args:
        raise LaunchError(args, OSError(errno.EINVAL, "empty argument vector"))

    env = dict(os.environ)
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Launching: %s", shlex.join(args))
    logger.debug("Working directory: %s", cwd)

    try:
        process = subprocess.Popen(
            args,
            cwd=cwd,
            env=env,
            stdin=subprocess.PIPE if stdin else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("Failed to launch %s: %s", args[0] if args else "<empty>", e)
        raise LaunchError(args, e) from e

    logger.debug("Started pid=%d", process.pid)
    return ProcessHandle(process, args)


__all__ = ["LaunchError", "ProcessHandle", "launch"]
