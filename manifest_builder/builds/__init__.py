"""Build orchestration module.

This module handles:
- Composing build driver invocations
- Running builds in the background with relayed output
- Cleaning build results
"""

from manifest_builder.builds.builder import (
    BuildMk,
    BuildMkConfig,
    CallBuilderError,
    CleanError,
    ManifestBuilder,
    ManifestBuilderError,
)

__all__ = [
    "BuildMk",
    "BuildMkConfig",
    "CallBuilderError",
    "CleanError",
    "ManifestBuilder",
    "ManifestBuilderError",
]
