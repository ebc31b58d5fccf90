"""Typed exceptions raised by pxwriter.

Each error type maps to one failure class of the writer: bad configuration,
operations outside the session state machine, hits that cannot be routed to
a collection, and output files that cannot be written.
"""
from __future__ import annotations


class PxWriterError(Exception):
    """Base exception for all pxwriter errors."""


class ConfigurationError(PxWriterError, ValueError):
    """Raised when the writer configuration is invalid or inconsistent."""


class LifecycleError(PxWriterError, RuntimeError):
    """Raised when an operation is attempted outside its valid session state."""


class UnknownDetectorError(PxWriterError, KeyError):
    """Raised when a hit references a detector with no resolved collection."""

    def __init__(self, detector: str):
        self.detector = detector
        super().__init__(detector)

    def __str__(self) -> str:
        return f"No output collection resolved for detector '{self.detector}'"


class OutputFileError(PxWriterError, OSError):
    """Raised when an output file cannot be created or written."""
