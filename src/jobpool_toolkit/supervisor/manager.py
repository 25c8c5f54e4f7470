"""Worker supervisor for JobPool Toolkit.

Runs jobs from one ordered source on a fixed number of worker threads.
Workers take jobs in source order under a lock and hand each outcome back
through a queue; the thread that called ``run`` reports outcomes one at a
time in the order they complete.

With ``halt_on_error`` a failed job sets a shared halt flag.  Workers check
the flag before taking the next job, so no new job starts once a failure is
seen, while jobs already running finish and are reported.  Jobs left in the
source are counted as skipped.
"""

from __future__ import annotations

import logging
import queue
import threading
from enum import Enum, auto
from typing import Callable, Iterable, Iterator, Optional

from ..jobs.models import ExecutionOutcome, JobDescriptor, RunSummary


log = logging.getLogger(__name__)

ExecuteFn = Callable[[JobDescriptor, int], ExecutionOutcome]
ResultFn = Callable[[ExecutionOutcome], None]
SkipFn = Callable[[JobDescriptor], None]


class PoolState(Enum):
    ACCEPTING = auto()
    DRAINING = auto()
    STOPPED = auto()


class _WorkerDone:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error


class WorkerSupervisor:
    """Manage a fixed pool of worker threads running jobs."""

    def __init__(self, max_workers: int, execute: ExecuteFn, *, halt_on_error: bool = False):
        self.max_workers = max(max_workers, 1)
        self.execute = execute
        self.halt_on_error = halt_on_error
        self.state = PoolState.ACCEPTING
        self._halt = threading.Event()
        self._source_lock = threading.Lock()
        self._source: Iterator[JobDescriptor] = iter(())
        self._results: queue.Queue = queue.Queue()
        self._threads: list[threading.Thread] = []

    @property
    def halted(self) -> bool:
        return self._halt.is_set()

    def _next_job(self) -> Optional[JobDescriptor]:
        if self._halt.is_set():
            return None
        with self._source_lock:
            return next(self._source, None)

    def _work(self, worker: int) -> None:
        error = None
        try:
            while True:
                job = self._next_job()
                if job is None:
                    break
                outcome = self.execute(job, worker)
                if outcome.failed and self.halt_on_error and not self._halt.is_set():
                    log.debug("Job %d '%s' failed, halting", job.index, job.command)
                    self._halt.set()
                self._results.put(outcome)
        except Exception as exc:  # re-raised by run()
            error = exc
        finally:
            self._results.put(_WorkerDone(error))

    def run(
        self,
        jobs: Iterable[JobDescriptor],
        on_result: Optional[ResultFn] = None,
        on_skip: Optional[SkipFn] = None,
    ) -> RunSummary:
        """Run ``jobs`` and report each outcome as it completes.

        ``on_result`` and ``on_skip`` are called from the calling thread only,
        once per job.  Returns the summary for the run.  An exception raised
        by ``execute`` is re-raised here after all workers have stopped.
        """
        if self.state is not PoolState.ACCEPTING:
            raise RuntimeError('WorkerSupervisor.run() can only be called once')
        summary = RunSummary()
        self._source = iter(jobs)
        log.debug('Starting %d worker threads', self.max_workers)
        for worker in range(self.max_workers):
            t = threading.Thread(target=self._work, args=(worker,), name=f'jobpool-worker-{worker}', daemon=True)
            self._threads.append(t)
            t.start()

        errors = []
        running = len(self._threads)
        while running:
            item = self._results.get()
            if isinstance(item, _WorkerDone):
                running -= 1
                if item.error is not None:
                    errors.append(item.error)
                    self._halt.set()
                continue
            summary.record(item)
            if self._halt.is_set():
                self.state = PoolState.DRAINING
            if on_result is not None:
                on_result(item)
        for t in self._threads:
            t.join()

        if errors:
            self.state = PoolState.STOPPED
            raise errors[0]

        if self._halt.is_set():
            self.state = PoolState.DRAINING
            summary.halted = True
            for job in self._source:
                summary.record_skip(job)
                if on_skip is not None:
                    on_skip(job)
        self.state = PoolState.STOPPED
        log.debug('All workers finished')
        return summary
