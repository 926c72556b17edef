"""Exceptions raised by the walkers and their collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class PreconditionError(ValueError):
    """Input violates an assumption of the tool (e.g. multi-sample data for a single-sample caller)."""


class InternalConsistencyError(RuntimeError):
    """A state that the calling logic should make unreachable was reached."""


class AccumulatorFinalizedError(RuntimeError):
    """Raised when an accumulator is mutated after finalize()."""


class IntervalWriteError(RuntimeError):
    """Raised when the merged intervals cannot be written."""

    def __init__(self, message: str, *, path: str | Path, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.path = str(path)
        self.cause = cause
