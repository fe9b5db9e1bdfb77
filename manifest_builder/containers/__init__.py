"""Container image output module.

This module handles:
- Sinks for image tarballs (file, stdout, container runtime)
- Output target selection and runtime detection
- Streaming an image from a source script into a sink
"""

from manifest_builder.containers.sink import (
    ContainerSink,
    FileSink,
    RuntimeSink,
    SinkError,
    StdoutSink,
    UnderlyingProcessFailed,
)
from manifest_builder.containers.source import ContainerSource, ContainerStreamError
from manifest_builder.containers.target import OutputTarget, detect_or_default

__all__ = [
    "ContainerSink",
    "ContainerSource",
    "ContainerStreamError",
    "FileSink",
    "OutputTarget",
    "RuntimeSink",
    "SinkError",
    "StdoutSink",
    "UnderlyingProcessFailed",
    "detect_or_default",
]
