"""Manifest builder running the build makefile.

This module handles:
- Composing make invocations for build and clean goals
- Starting builds in the background and relaying their output
- Running clean synchronously and reporting failures with captured output

Build failures are data: ``build`` only raises when the driver cannot be
started, and a failed build shows up as a non-zero Exit in its output.
Clean failures raise CleanError carrying the driver's output.
"""

from __future__ import annotations

import logging
import os
import shlex
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from manifest_builder.process import LaunchError, OutputSequence, launch, relay_output

if TYPE_CHECKING:
    from manifest_builder.config import Settings

logger = logging.getLogger(__name__)

BUILD_ALL_GOAL = "build"
CLEAN_ALL_GOAL = "clean"

Action = Literal["build", "clean"]


class ManifestBuilderError(Exception):
    """Base error for manifest builder operations."""

    def __init__(self, message: str, code: str = "builder_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class BuilderConfigError(ManifestBuilderError):
    """The builder is missing required configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="config_error")


class CallBuilderError(ManifestBuilderError):
    """The build driver could not be started."""

    def __init__(self, cause: LaunchError) -> None:
        super().__init__(
            f"Failed to call package builder: {cause.cause}",
            code="call_builder_error",
        )
        self.cause = cause


class CleanError(ManifestBuilderError):
    """The clean goal ran but reported failure."""

    def __init__(self, stdout: str, stderr: str, returncode: int) -> None:
        super().__init__(
            f"Failed to clean up build artifacts (exit code {returncode})",
            code="clean_failed",
        )
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode


@dataclass(frozen=True)
class BuildMkConfig:
    """Resolved configuration of the make-based builder.

    Attributes:
        gnumake_bin: GNU make executable.
        build_mk: Makefile implementing the build and clean goals.
        env_binding_key: Make variable receiving the environment path.
        env: Extra environment variables for the driver.
    """

    gnumake_bin: Path
    build_mk: Path
    env_binding_key: str = "FLOX_ENV"
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        env: Mapping[str, str] | None = None,
    ) -> BuildMkConfig:
        """Resolve builder configuration from application settings.

        Raises:
            BuilderConfigError: If no build makefile is configured.
        """
        if settings.build_mk is None:
            raise BuilderConfigError(
                "No build makefile configured; set MANIFEST_BUILDER_BUILD_MK"
            )
        return cls(
            gnumake_bin=settings.gnumake_bin,
            build_mk=settings.build_mk,
            env_binding_key=settings.env_binding_key,
            env=dict(env or {}),
        )


def compose_goals(action: Action, packages: Sequence[str]) -> list[str]:
    """Compose make goals for ``action``.

    An empty package list selects every package via the bare goal.
    Otherwise each package becomes ``<action>/<package>``, duplicates
    included.
    """
    if not packages:
        return [BUILD_ALL_GOAL if action == "build" else CLEAN_ALL_GOAL]
    return [f"{action}/{package}" for package in packages]


def compose_command(
    config: BuildMkConfig,
    base_dir: Path,
    flox_env: Path,
    goals: Sequence[str],
) -> list[str]:
    """Compose the make invocation for ``goals``.

    Returns:
        Command as list of strings suitable for launch().
    """
    cmd = [os.fspath(config.gnumake_bin)]
    cmd.extend(["-f", os.fspath(config.build_mk)])
    cmd.extend(["-C", os.fspath(base_dir)])
    cmd.append(f"{config.env_binding_key}={os.fspath(flox_env)}")
    cmd.extend(goals)
    return cmd


def result_link(base_dir: Path, package: str) -> Path:
    """Link to the build result of ``package`` created by a successful build."""
    return base_dir / f"result-{package}"


def build_cache_link(base_dir: Path, package: str) -> Path:
    """Link to the build cache of ``package``."""
    return base_dir / f"result-{package}-buildCache"


class ManifestBuilder(ABC):
    """Builds and cleans packages defined in a rendered environment."""

    @abstractmethod
    def build(
        self,
        base_dir: Path,
        flox_env: Path,
        packages: Sequence[str],
    ) -> OutputSequence:
        """Start building ``packages`` in the background.

        Iterate the returned sequence to follow progress; it ends with an
        Exit event carrying the build's exit status.
        """

    @abstractmethod
    def clean(
        self,
        base_dir: Path,
        flox_env: Path,
        packages: Sequence[str],
    ) -> None:
        """Remove build artifacts of ``packages`` and wait for completion."""


class BuildMk(ManifestBuilder):
    """Manifest builder driven by the build makefile."""

    def __init__(self, config: BuildMkConfig) -> None:
        self.config = config

    def _launch(
        self,
        base_dir: Path,
        flox_env: Path,
        goals: Sequence[str],
        errors: str = "strict",
    ) -> OutputSequence:
        cmd = compose_command(self.config, base_dir, flox_env, goals)
        logger.debug("Running manifest goals: %s", shlex.join(cmd))
        try:
            handle = launch(base_dir, self.config.env, cmd)
        except LaunchError as e:
            logger.error("Failed to call package builder: %s", e.cause)
            raise CallBuilderError(e) from e
        return relay_output(handle, errors)

    def build(
        self,
        base_dir: Path,
        flox_env: Path,
        packages: Sequence[str],
    ) -> OutputSequence:
        """Build ``packages`` defined in the environment rendered at ``flox_env``.

        An empty package list builds every package. Packages missing from the
        environment make the makefile fail, which is reported through the
        Exit event like any other build failure.

        On success the driver links each result to ``base_dir/result-<name>``.

        Args:
            base_dir: Directory the makefile runs in.
            flox_env: Path of the rendered environment.
            packages: Package names to build.

        Returns:
            OutputSequence of the running build.

        Raises:
            CallBuilderError: If the driver could not be started.
        """
        goals = compose_goals("build", packages)
        output = self._launch(base_dir, flox_env, goals)
        logger.info("Started build of %s (pid=%d)", " ".join(goals), output.pid)
        return output

    def clean(
        self,
        base_dir: Path,
        flox_env: Path,
        packages: Sequence[str],
    ) -> None:
        """Clean build artifacts of ``packages``.

        Removes the ``result-<name>`` and ``result-<name>-buildCache`` links,
        the store paths they point to and temporary build directories. An
        empty package list cleans every package. Output is captured in full;
        bytes that are not valid UTF-8 become U+FFFD.

        Raises:
            CallBuilderError: If the driver could not be started.
            CleanError: If the driver exited with a non-zero status.
        """
        goals = compose_goals("clean", packages)
        with self._launch(base_dir, flox_env, goals, errors="replace") as output:
            collected = output.collect()

        if collected.exit is None:
            # exit watcher failed before reporting a status
            raise CleanError(collected.stdout, collected.stderr, returncode=-1)

        if not collected.exit.success:
            logger.debug(
                "Failed to clean build artifacts: status=%d stderr=%s stdout=%s",
                collected.exit.returncode,
                collected.stderr,
                collected.stdout,
            )
            raise CleanError(
                collected.stdout,
                collected.stderr,
                collected.exit.returncode,
            )

        logger.info("Cleaned %s", " ".join(goals))


__all__ = [
    "BUILD_ALL_GOAL",
    "CLEAN_ALL_GOAL",
    "BuildMk",
    "BuildMkConfig",
    "BuilderConfigError",
    "CallBuilderError",
    "CleanError",
    "ManifestBuilder",
    "ManifestBuilderError",
    "build_cache_link",
    "compose_command",
    "compose_goals",
    "result_link",
]
