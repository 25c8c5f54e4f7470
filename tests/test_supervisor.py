from __future__ import annotations

import threading
import time

import allure
import pytest

from conftest import make_outcome, posix_only
from jobpool_toolkit.discovery.engine import enumerate_jobs
from jobpool_toolkit.execution.engine import Executor
from jobpool_toolkit.jobs.models import ExecutionOutcome, ExitStatus, JobDescriptor
from jobpool_toolkit.shell.resolver import ShellResolution
from jobpool_toolkit.supervisor.manager import PoolState, WorkerSupervisor

pytestmark = [
    allure.epic("Dispatch"),
    allure.feature("Worker Pool"),
]


class ConcurrencyProbe:
    """Fake executor recording how many jobs run at the same time."""

    def __init__(self, delay: float = 0.02, failing: frozenset[str] = frozenset()):
        self.delay = delay
        self.failing = failing
        self.running = 0
        self.max_running = 0
        self.started: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, job: JobDescriptor, worker: int) -> ExecutionOutcome:
        with self._lock:
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            self.started.append(job.command)
        time.sleep(self.delay)
        with self._lock:
            self.running -= 1
        status = ExitStatus.failure(1) if job.command in self.failing else ExitStatus.success()
        return make_outcome(job.index, job.command, status, worker=worker)


@pytest.mark.parametrize(("n_jobs", "workers"), [(1, 1), (5, 1), (5, 2), (8, 3), (6, 6), (3, 8)])
def test_every_job_is_reported_once(n_jobs: int, workers: int) -> None:
    probe = ConcurrencyProbe(delay=0.005)
    reported: list[int] = []
    jobs = enumerate_jobs(f"job-{i}" for i in range(n_jobs))

    summary = WorkerSupervisor(workers, probe).run(jobs, on_result=lambda o: reported.append(o.index))

    assert sorted(reported) == list(range(n_jobs))
    assert summary.submitted == n_jobs
    assert summary.succeeded == n_jobs
    assert summary.ok


@pytest.mark.parametrize("workers", [1, 2, 4])
def test_running_jobs_never_exceed_worker_count(workers: int) -> None:
    probe = ConcurrencyProbe(delay=0.03)
    jobs = enumerate_jobs(f"job-{i}" for i in range(12))

    WorkerSupervisor(workers, probe).run(jobs)

    assert 1 <= probe.max_running <= workers


def test_jobs_are_taken_in_source_order() -> None:
    probe = ConcurrencyProbe(delay=0.001)
    jobs = enumerate_jobs(f"job-{i}" for i in range(10))

    WorkerSupervisor(1, probe).run(jobs)

    assert probe.started == [f"job-{i}" for i in range(10)]


def test_results_are_reported_in_completion_order() -> None:
    def execute(job: JobDescriptor, worker: int) -> ExecutionOutcome:
        time.sleep(0.3 if job.command == "slow" else 0.0)
        return make_outcome(job.index, job.command, worker=worker)

    reported: list[str] = []
    WorkerSupervisor(2, execute).run(enumerate_jobs(["slow", "fast"]), on_result=lambda o: reported.append(o.command))

    assert reported == ["fast", "slow"]


def test_failures_without_halt_do_not_stop_the_run() -> None:
    probe = ConcurrencyProbe(delay=0.0, failing=frozenset({"job-1"}))
    jobs = enumerate_jobs(f"job-{i}" for i in range(4))

    supervisor = WorkerSupervisor(1, probe)
    summary = supervisor.run(jobs)

    assert probe.started == ["job-0", "job-1", "job-2", "job-3"]
    assert summary.failed == 1
    assert summary.succeeded == 3
    assert summary.skipped == 0
    assert not summary.halted
    assert not summary.ok
    assert supervisor.state is PoolState.STOPPED


def test_halt_with_single_worker_skips_remaining_jobs() -> None:
    probe = ConcurrencyProbe(delay=0.0, failing=frozenset({"exit 1"}))
    jobs = enumerate_jobs(["exit 1", "sleep 5 && echo late", "echo never"])
    reported: list[str] = []
    skipped: list[str] = []

    supervisor = WorkerSupervisor(1, probe, halt_on_error=True)
    summary = supervisor.run(
        jobs,
        on_result=lambda o: reported.append(o.command),
        on_skip=lambda j: skipped.append(j.command),
    )

    assert probe.started == ["exit 1"]
    assert reported == ["exit 1"]
    assert skipped == ["sleep 5 && echo late", "echo never"]
    assert summary.halted
    assert summary.failed == 1
    assert summary.skipped == 2
    assert summary.submitted == 3
    assert supervisor.state is PoolState.STOPPED


def test_halt_lets_running_jobs_finish() -> None:
    slow_started = threading.Event()

    def execute(job: JobDescriptor, worker: int) -> ExecutionOutcome:
        if job.command == "slow":
            slow_started.set()
            time.sleep(0.2)
            return make_outcome(job.index, job.command, worker=worker)
        slow_started.wait(timeout=5)
        return make_outcome(job.index, job.command, ExitStatus.failure(2), worker=worker)

    jobs = enumerate_jobs(["slow", "fail", "after-1", "after-2", "after-3"])
    reported: list[str] = []

    summary = WorkerSupervisor(2, execute, halt_on_error=True).run(jobs, on_result=lambda o: reported.append(o.command))

    assert "slow" in reported
    assert "fail" in reported
    assert summary.halted
    assert summary.submitted == 5
    assert summary.failed >= 1
    assert summary.submitted == summary.succeeded + summary.failed + summary.skipped


def test_no_job_starts_after_halt_is_observed() -> None:
    started: list[str] = []
    lock = threading.Lock()

    def execute(job: JobDescriptor, worker: int) -> ExecutionOutcome:
        with lock:
            started.append(job.command)
        if job.index == 0:
            return make_outcome(job.index, job.command, ExitStatus.failure(1), worker=worker)
        time.sleep(0.2)
        return make_outcome(job.index, job.command, worker=worker)

    jobs = enumerate_jobs(f"job-{i}" for i in range(40))

    summary = WorkerSupervisor(3, execute, halt_on_error=True).run(jobs)

    # Only jobs taken before job-0 failed may run: at most one per worker.
    assert 1 <= len(started) <= 3
    assert sorted(started) == [f"job-{i}" for i in range(len(started))]
    assert summary.skipped == 40 - len(started)
    assert summary.submitted == 40


def test_spawn_error_triggers_halt() -> None:
    def execute(job: JobDescriptor, worker: int) -> ExecutionOutcome:
        status = ExitStatus.spawn_error("not found") if job.index == 0 else ExitStatus.success()
        return make_outcome(job.index, job.command, status, worker=worker)

    summary = WorkerSupervisor(1, execute, halt_on_error=True).run(enumerate_jobs(["missing", "echo a"]))

    assert summary.spawn_errors == 1
    assert summary.failed == 1
    assert summary.skipped == 1


def test_unexpected_executor_error_is_raised() -> None:
    def execute(job: JobDescriptor, worker: int) -> ExecutionOutcome:
        if job.index == 1:
            raise RuntimeError("boom")
        return make_outcome(job.index, job.command, worker=worker)

    with pytest.raises(RuntimeError, match="boom"):
        WorkerSupervisor(2, execute).run(enumerate_jobs(["a", "b", "c"]))


def test_run_can_only_be_called_once() -> None:
    supervisor = WorkerSupervisor(1, ConcurrencyProbe(delay=0.0))
    supervisor.run(enumerate_jobs(["a"]))

    with pytest.raises(RuntimeError):
        supervisor.run(enumerate_jobs(["b"]))


def test_zero_workers_still_runs_jobs() -> None:
    summary = WorkerSupervisor(0, ConcurrencyProbe(delay=0.0)).run(enumerate_jobs(["a", "b"]))

    assert summary.succeeded == 2


@posix_only
def test_real_processes_run_concurrently_and_report_all() -> None:
    executor = Executor(ShellResolution("sh"))
    jobs = enumerate_jobs(["echo a", "echo b"])
    outcomes: dict[str, bytes] = {}

    summary = WorkerSupervisor(2, executor.execute).run(jobs, on_result=lambda o: outcomes.update({o.command: o.stdout}))

    assert outcomes == {"echo a": b"a\n", "echo b": b"b\n"}
    assert summary.succeeded == 2


@posix_only
def test_dry_run_counts_every_job() -> None:
    executor = Executor(ShellResolution("sh"), dry_run=True)
    jobs = enumerate_jobs(["echo a", "exit 1", "echo c"])

    summary = WorkerSupervisor(2, executor.execute, halt_on_error=True).run(jobs)

    assert summary.submitted == 3
    assert summary.planned == 3
    assert summary.ok
