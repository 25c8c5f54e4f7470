"""Job records for JobPool Toolkit.

A ``JobDescriptor`` pairs a command line with its position in the source.
Each descriptor is consumed by one executor call, which produces an
``ExecutionOutcome`` holding the exit status and the two captured output
streams.  ``RunSummary`` aggregates outcomes for the final report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Optional


class ExitKind(Enum):
    SUCCESS = auto()
    FAILURE = auto()
    SPAWN_ERROR = auto()
    DRY_RUN = auto()


@dataclass(frozen=True)
class JobDescriptor:
    index: int
    command: str


@dataclass(frozen=True)
class ExitStatus:
    """How a job ended.

    ``code`` is set for ``SUCCESS`` and ``FAILURE``; ``message`` is set for
    ``SPAWN_ERROR``.  ``DRY_RUN`` marks a job that was reported but never
    started.
    """

    kind: ExitKind
    code: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def success(cls) -> ExitStatus:
        return cls(ExitKind.SUCCESS, code=0)

    @classmethod
    def failure(cls, code: int) -> ExitStatus:
        return cls(ExitKind.FAILURE, code=code)

    @classmethod
    def spawn_error(cls, message: str) -> ExitStatus:
        return cls(ExitKind.SPAWN_ERROR, message=message)

    @classmethod
    def dry_run(cls) -> ExitStatus:
        return cls(ExitKind.DRY_RUN)

    @property
    def failed(self) -> bool:
        return self.kind in (ExitKind.FAILURE, ExitKind.SPAWN_ERROR)

    def describe(self) -> str:
        if self.kind is ExitKind.SPAWN_ERROR:
            return f'spawn error: {self.message}'
        if self.kind is ExitKind.DRY_RUN:
            return 'dry run'
        return f'exit {self.code}'


@dataclass(frozen=True)
class ExecutionOutcome:
    job: JobDescriptor
    status: ExitStatus
    stdout: bytes = b''
    stderr: bytes = b''
    duration: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)
    worker: int = 0

    @property
    def index(self) -> int:
        return self.job.index

    @property
    def command(self) -> str:
        return self.job.command

    @property
    def failed(self) -> bool:
        return self.status.failed


@dataclass
class RunSummary:
    """Counters derived from the stream of outcomes of one run.

    ``spawn_errors`` is a subset of ``failed``.  ``planned`` counts dry-run
    jobs.
    """

    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    spawn_errors: int = 0
    skipped: int = 0
    planned: int = 0
    halted: bool = False

    def record(self, outcome: ExecutionOutcome) -> None:
        self.submitted += 1
        kind = outcome.status.kind
        if kind is ExitKind.SUCCESS:
            self.succeeded += 1
        elif kind is ExitKind.DRY_RUN:
            self.planned += 1
        else:
            self.failed += 1
            if kind is ExitKind.SPAWN_ERROR:
                self.spawn_errors += 1

    def record_skip(self, job: JobDescriptor) -> None:
        self.submitted += 1
        self.skipped += 1

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.skipped == 0
