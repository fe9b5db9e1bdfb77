"""Manifest Builder - orchestration around external build and packaging engines.

This package drives a make-based manifest build driver, streams container
images into files or container runtimes, and relays the output of the
external processes it spawns.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
