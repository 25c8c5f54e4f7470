"""Error taxonomy for JobPool Toolkit.

Only startup problems are exceptions.  Per-job failures (a program that
cannot be started, a non-zero exit) are recorded in the job's outcome and
never raised past the worker pool.
"""

from __future__ import annotations


class JobPoolError(Exception):
    """Base class for errors that stop a run before any job starts."""


class ConfigurationError(JobPoolError):
    """Raised for invalid option values or a malformed configuration file."""


class CommandSourceError(JobPoolError):
    """Raised when the list of commands cannot be read."""
