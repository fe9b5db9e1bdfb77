"""Output targets for container images.

An output target is where a streamed image ends up: a file, standard
output, or a container runtime loading it from stdin. Without an explicit
target the first runtime found on the search path is used, falling back
to ``<name>-container.tar``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from manifest_builder.containers.sink import (
    ContainerSink,
    FileSink,
    RuntimeSink,
    StdoutSink,
)
from manifest_builder.types import ContainerRuntime

logger = logging.getLogger(__name__)

STDOUT_MARKER = "-"

# Search order within each directory of the search path
RUNTIME_SEARCH_ORDER = (ContainerRuntime.DOCKER, ContainerRuntime.PODMAN)


class InvalidRuntimeError(ValueError):
    """The runtime name is not a supported container runtime."""

    def __init__(self, name: str) -> None:
        names = ", ".join(f"'{r.value}'" for r in ContainerRuntime)
        super().__init__(f"Runtime must be one of {names}, got '{name}'")
        self.name = name
        self.code = "invalid_runtime"


def parse_runtime(name: str) -> ContainerRuntime:
    """Parse a container runtime name.

    Raises:
        InvalidRuntimeError: If ``name`` is not 'docker' or 'podman'.
    """
    try:
        return ContainerRuntime(name)
    except ValueError:
        raise InvalidRuntimeError(name) from None


def runtime_sink(runtime: ContainerRuntime) -> RuntimeSink:
    """Start ``<runtime> load`` and return a sink writing to its stdin."""
    return RuntimeSink([runtime.value, "load"])


@dataclass(frozen=True)
class OutputTarget:
    """Destination of a container image.

    Exactly one of ``path`` and ``runtime`` is set, unless the target is
    standard output, in which case neither is.
    """

    path: Path | None = None
    runtime: ContainerRuntime | None = None

    @classmethod
    def file(cls, path: str | Path) -> OutputTarget:
        return cls(path=Path(path))

    @classmethod
    def stdout(cls) -> OutputTarget:
        return cls()

    @classmethod
    def for_runtime(cls, runtime: ContainerRuntime) -> OutputTarget:
        return cls(runtime=runtime)

    @classmethod
    def parse_file(cls, value: str) -> OutputTarget:
        """Parse a file argument; '-' means standard output."""
        if value == STDOUT_MARKER:
            return cls.stdout()
        return cls.file(value)

    @property
    def is_stdout(self) -> bool:
        return self.path is None and self.runtime is None

    def to_sink(self) -> ContainerSink:
        """Open the sink for this target.

        Raises:
            SinkOpenError: If the file cannot be opened or the runtime started.
        """
        if self.runtime is not None:
            return runtime_sink(self.runtime)
        if self.path is not None:
            return FileSink(self.path)
        return StdoutSink()

    def __str__(self) -> str:
        if self.runtime is not None:
            return self.runtime.display_name
        if self.path is not None:
            return f"file '{self.path}'"
        return "stdout"


def first_in_path(
    names: Iterable[str],
    search_path: Iterable[str | Path],
) -> tuple[Path, str] | None:
    """Find the first of ``names`` present in ``search_path``.

    Directories are searched in order; within a directory ``names`` are
    tried in order.

    Returns:
        Tuple of (full path, name) or None if nothing was found.
    """
    names = list(names)
    for directory in search_path:
        if not directory:
            continue
        for name in names:
            candidate = Path(directory) / name
            if candidate.is_file():
                return candidate, name
    return None


def detect_or_default(
    env_name: str,
    search_path: Iterable[str | Path] | None = None,
) -> OutputTarget:
    """Pick a container runtime from the search path, else a tarball file.

    Args:
        env_name: Environment name used for the fallback file name.
        search_path: Directories to search (defaults to $PATH).

    Returns:
        The detected runtime target or ``<env_name>-container.tar``.
    """
    default_to_file = OutputTarget.file(f"{env_name}-container.tar")

    if search_path is None:
        path_var = os.environ.get("PATH")
        if path_var is None:
            logger.debug("Could not read PATH variable")
            return default_to_file
        search_path = path_var.split(os.pathsep)

    found = first_in_path((r.value for r in RUNTIME_SEARCH_ORDER), search_path)
    if found is None:
        logger.debug("No container runtime found in PATH")
        return default_to_file

    path, name = found
    logger.debug("Detected container runtime %s at %s", name, path)
    return OutputTarget.for_runtime(ContainerRuntime(name))


__all__ = [
    "InvalidRuntimeError",
    "OutputTarget",
    "RUNTIME_SEARCH_ORDER",
    "STDOUT_MARKER",
    "detect_or_default",
    "first_in_path",
    "parse_runtime",
    "runtime_sink",
]
