"""Logging and reporting for JobPool Toolkit.

``setup_logging`` wires the package logger to the terminal (through
``rich``) and, optionally, to an append-only log file.  ``JobReporter``
turns finished jobs into console output and log records: each job's
captured stdout and stderr are written in one piece once the job is done.
``JSONLogger`` collects one record per job and writes them to disk when
flushed.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..jobs.models import ExecutionOutcome, ExitKind, JobDescriptor, RunSummary


TRACE = 5
logging.addLevelName(TRACE, 'TRACE')

LOGGER_NAME = 'jobpool_toolkit'
OUTPUT_LOGGER_NAME = 'jobpool_toolkit.output'
LOG_FORMAT = '[%(asctime)s] %(levelname)s %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%dT%H:%M:%S%z'

log = logging.getLogger(LOGGER_NAME)
output_log = logging.getLogger(OUTPUT_LOGGER_NAME)


def verbosity_level(verbose: int = 0, quiet: bool = False) -> int:
    if quiet:
        return logging.ERROR
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    if verbose == 2:
        return logging.DEBUG
    return TRACE


def close_logging() -> None:
    """Detach and close every handler installed by ``setup_logging``."""
    for logger in (log, output_log):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(verbose: int = 0, quiet: bool = False, log_path: Optional[Path] = None) -> None:
    """Configure package logging for one run.

    The terminal handler follows the verbosity flags.  The log file, when
    given, always receives INFO and above plus the captured job output.

    Raises:
        OSError: if ``log_path`` cannot be opened.
    """
    close_logging()
    level = verbosity_level(verbose, quiet)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        log_time_format='[%Y-%m-%dT%H:%M:%S]',
    )
    console_handler.setLevel(level)
    log.addHandler(console_handler)
    log.setLevel(TRACE)
    log.propagate = False

    output_log.propagate = False
    output_log.setLevel(logging.INFO)
    if log_path is not None:
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        log.addHandler(file_handler)
        output_log.addHandler(file_handler)
    else:
        output_log.addHandler(logging.NullHandler())


def _decode(data: bytes) -> str:
    return data.decode('utf-8', errors='replace')


class JobReporter:
    """Print and log finished jobs.

    Called from a single thread; each call writes one job's output in full
    before returning.
    """

    def report(self, outcome: ExecutionOutcome) -> None:
        command = outcome.command
        kind = outcome.status.kind
        if kind is ExitKind.DRY_RUN:
            log.debug("Would execute '%s'", command)
            return
        if kind is ExitKind.SPAWN_ERROR:
            log.error("'%s' could not be started: %s", command, outcome.status.message)
            return

        log.info("'%s' took %.3fs", command, outcome.duration)
        if kind is ExitKind.FAILURE:
            log.warning("'%s' exited with status code %d", command, outcome.status.code)
        if outcome.stdout:
            click.echo(outcome.stdout, nl=False)
            output_log.info('stdout of %s:\n%s', command, _decode(outcome.stdout).rstrip('\n'))
        if outcome.stderr:
            click.echo(outcome.stderr, nl=False, err=True)
            output_log.info('stderr of %s:\n%s', command, _decode(outcome.stderr).rstrip('\n'))

    def report_skip(self, job: JobDescriptor) -> None:
        log.info("'%s' skipped after halt", job.command)

    def report_summary(self, summary: RunSummary) -> None:
        log.info(
            '%d jobs: %d succeeded, %d failed (%d not started), %d skipped, %d dry run',
            summary.submitted,
            summary.succeeded,
            summary.failed,
            summary.spawn_errors,
            summary.skipped,
            summary.planned,
        )
        if summary.halted:
            log.warning('Halted after a failed job; %d jobs were not started', summary.skipped)


def summary_table(summary: RunSummary) -> Table:
    table = Table(title='Run summary')
    table.add_column('Status')
    table.add_column('Jobs', justify='right')
    table.add_row('Submitted', str(summary.submitted))
    table.add_row('Succeeded', str(summary.succeeded))
    table.add_row('Failed', str(summary.failed))
    table.add_row('  not started', str(summary.spawn_errors))
    table.add_row('Skipped', str(summary.skipped))
    table.add_row('Dry run', str(summary.planned))
    return table


class JSONLogger:
    def __init__(self, path: Path):
        self.path = path
        self.records: List[Dict[str, Any]] = []

    def add_record(self, outcome: ExecutionOutcome) -> None:
        self.records.append({
            'index': outcome.index,
            'command': outcome.command,
            'status': outcome.status.kind.name.lower(),
            'exit_code': outcome.status.code,
            'error_msg': outcome.status.message,
            'worker': outcome.worker,
            'started_at': outcome.started_at.isoformat(),
            'duration_s': round(outcome.duration, 6),
            'stdout': _decode(outcome.stdout),
            'stderr': _decode(outcome.stderr),
        })

    def add_skip(self, job: JobDescriptor) -> None:
        self.records.append({
            'index': job.index,
            'command': job.command,
            'status': 'skipped',
        })

    def flush(self) -> None:
        with self.path.open('w', encoding='utf-8') as f:
            json.dump(self.records, f, indent=2)
