"""Run log storage."""

from .audit import RunLog, NullRunLog, RunAction, RunEntry

__all__ = ["RunLog", "NullRunLog", "RunAction", "RunEntry"]
