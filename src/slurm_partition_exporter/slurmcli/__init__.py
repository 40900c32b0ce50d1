"""Slurm command line package.

Provides a runner that executes Slurm inspection commands and returns their
raw output, plus typed records for the comma separated formats requested
from those commands. Aggregation into metrics is handled by collector
modules.

Exports:
    SlurmCommandRunner: Executes sinfo/squeue with a timeout.
    CommandError: Raised when a command cannot produce output.
    records: Module containing line splitting and Pydantic record models.
    DEFAULT_TIMEOUT: Default command timeout in seconds.
"""

from . import records
from .runner import (
    DEFAULT_TIMEOUT,
    CommandError,
    SlurmCommandRunner,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "CommandError",
    "SlurmCommandRunner",
    "records",
]
