"""External process execution.

This module handles:
- Launching child processes with captured pipes
- Relaying stdout/stderr lines and the exit status through one channel
- Exposing the relayed output as a lazy OutputSequence
"""

from manifest_builder.process.launcher import LaunchError, ProcessHandle, launch
from manifest_builder.process.output import (
    CollectedOutput,
    Exit,
    Output,
    OutputSequence,
    StderrLine,
    StdoutLine,
)
from manifest_builder.process.relay import relay_output

__all__ = [
    "CollectedOutput",
    "Exit",
    "LaunchError",
    "Output",
    "OutputSequence",
    "ProcessHandle",
    "StderrLine",
    "StdoutLine",
    "launch",
    "relay_output",
]
