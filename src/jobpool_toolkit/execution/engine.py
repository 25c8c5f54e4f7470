"""Execution engine for JobPool Toolkit.

Runs a single job as a child process using ``subprocess``.  The child gets
an empty standard input and both output streams are captured in full.
``subprocess.run`` drains stdout and stderr while waiting for the child, so a
command that floods one stream cannot block on a full pipe.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..jobs.models import ExecutionOutcome, ExitStatus, JobDescriptor
from ..logging.logger import TRACE
from ..shell.resolver import ShellResolution


log = logging.getLogger(__name__)


def build_invocation(command: str, resolution: ShellResolution) -> List[str]:
    """Build the argument vector for ``command``.

    Raises:
        ValueError: for direct execution of an empty command or one with
            unbalanced quotes.
    """
    if not resolution.direct:
        return [resolution.interpreter, '-c', command]
    argv = shlex.split(command)
    if not argv:
        raise ValueError('empty command')
    return argv


class Executor:
    """Start jobs and collect their outcomes.

    Args:
        resolution: Interpreter to run commands through, or direct execution.
        dry_run: Record what would run without starting anything.
        cwd: Working directory for children; ``None`` inherits ours.
    """

    def __init__(self, resolution: ShellResolution, dry_run: bool = False, cwd: Optional[Path] = None):
        self.resolution = resolution
        self.dry_run = dry_run
        self.cwd = cwd

    def execute(self, job: JobDescriptor, worker: int = 0) -> ExecutionOutcome:
        started_at = datetime.now()
        if self.dry_run:
            return ExecutionOutcome(job=job, status=ExitStatus.dry_run(), started_at=started_at, worker=worker)

        try:
            argv = build_invocation(job.command, self.resolution)
        except ValueError as exc:
            return self._spawn_error(job, f'cannot parse command: {exc}', started_at, worker)

        log.debug("Starting job %d '%s' on worker %d", job.index, job.command, worker)
        log.log(TRACE, 'argv for job %d: %r', job.index, argv)
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                cwd=self.cwd,
            )
        except (OSError, ValueError) as exc:
            reason = getattr(exc, 'strerror', None) or exc
            return self._spawn_error(job, f'{argv[0]}: {reason}', started_at, worker)
        duration = time.monotonic() - start

        if proc.returncode == 0:
            status = ExitStatus.success()
        else:
            status = ExitStatus.failure(proc.returncode)
        return ExecutionOutcome(
            job=job,
            status=status,
            stdout=proc.stdout,
            stderr=proc.stderr,
            duration=duration,
            started_at=started_at,
            worker=worker,
        )

    def _spawn_error(self, job: JobDescriptor, message: str, started_at: datetime, worker: int) -> ExecutionOutcome:
        log.debug("Job %d '%s' could not be started: %s", job.index, job.command, message)
        return ExecutionOutcome(job=job, status=ExitStatus.spawn_error(message), started_at=started_at, worker=worker)
