"""Shared type definitions for manifest_builder.

This module contains enums shared across subpackages to avoid circular
imports.
"""

from enum import Enum


class OutputStream(str, Enum):
    """Origin of a relayed output line."""

    STDOUT = "stdout"
    STDERR = "stderr"


class ContainerRuntime(str, Enum):
    """Container runtime able to load an image tarball from stdin."""

    DOCKER = "docker"
    PODMAN = "podman"

    @property
    def display_name(self) -> str:
        """Human readable name, e.g. 'Docker runtime'."""
        return f"{self.value.capitalize()} runtime"


__all__ = ["ContainerRuntime", "OutputStream"]
