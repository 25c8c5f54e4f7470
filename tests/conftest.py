"""Shared test fixtures."""

from __future__ import annotations

import os
import sys

import pytest

from jobpool_toolkit.jobs.models import ExecutionOutcome, ExitStatus, JobDescriptor
from jobpool_toolkit.logging.logger import close_logging


posix_only = pytest.mark.skipif(os.name == 'nt', reason='needs a POSIX shell')

PYTHON = sys.executable


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    close_logging()


def make_outcome(index: int = 0, command: str = 'true', status: ExitStatus | None = None, **kwargs) -> ExecutionOutcome:
    return ExecutionOutcome(
        job=JobDescriptor(index=index, command=command),
        status=status or ExitStatus.success(),
        **kwargs,
    )
