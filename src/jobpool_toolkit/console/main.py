"""Command‑line interface for JobPool Toolkit.

``jobpool`` runs the given command lines on a pool of worker threads and
prints each job's captured output once the job has finished.  Commands come
from the positional arguments, from ``--file`` or from standard input, in
that order of precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from .. import __version__
from ..config_loader import build_pool_config, load_config
from ..discovery.engine import discover_commands, enumerate_jobs
from ..errors import JobPoolError
from ..execution.engine import Executor
from ..logging.logger import JSONLogger, JobReporter, close_logging, log, setup_logging, summary_table
from ..shell.resolver import resolve_shell
from ..supervisor.manager import WorkerSupervisor


EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_STARTUP_ERROR = 2

console = Console(stderr=True)


class StartupError(click.ClickException):
    exit_code = EXIT_STARTUP_ERROR


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('commands', nargs=-1)
@click.option('-f', '--file', 'jobs_file', type=click.Path(dir_okay=False, path_type=Path), help='Read commands from file (one command per line).')
@click.option('-j', '--jobs', type=click.IntRange(min=0), default=None, help='Number of parallel jobs [default: number of CPUs].')
@click.option('--shell', default=None, help='Interpreter used as `<shell> -c <command>`.')
@click.option('--no-shell', is_flag=True, help='Split commands into program and arguments and run them without a shell.')
@click.option('--halt-on-error', is_flag=True, help='Start no new jobs once any job has failed.')
@click.option('--dry-run', is_flag=True, help='Only report what would be run (visible with -vv).')
@click.option('-l', '--log', 'log_path', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Append log and job output to file.')
@click.option('--json-log', 'json_log_path', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Write one JSON record per job to file.')
@click.option('--summary', 'show_summary', is_flag=True, help='Print a summary table when all jobs are done.')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path), default=None, help='YAML file with default options.')
@click.option('-q', '--quiet', is_flag=True, help='Only print errors from jobpool itself.')
@click.option('-v', '--verbose', count=True, help='Increase verbosity (up to -vvv).')
@click.version_option(version=__version__, prog_name='jobpool')
@click.pass_context
def cli(
    ctx: click.Context,
    commands: Tuple[str, ...],
    jobs_file: Optional[Path],
    jobs: Optional[int],
    shell: Optional[str],
    no_shell: bool,
    halt_on_error: bool,
    dry_run: bool,
    log_path: Optional[Path],
    json_log_path: Optional[Path],
    show_summary: bool,
    config_path: Optional[Path],
    quiet: bool,
    verbose: int,
) -> None:
    """Run COMMANDS in parallel and print their output as each one finishes."""
    if quiet and verbose:
        raise click.UsageError('--quiet and --verbose are mutually exclusive.')

    try:
        file_config = load_config(config_path) if config_path is not None else {}
        pool_config = build_pool_config(
            file_config,
            jobs=jobs,
            shell=shell,
            no_shell=no_shell,
            halt_on_error=halt_on_error,
            dry_run=dry_run,
        )
        if log_path is None and file_config.get('log'):
            log_path = Path(file_config['log'])
        stdin = None if commands or jobs_file else click.open_file('-')
        job_list = enumerate_jobs(discover_commands(commands, jobs_file=jobs_file, stream=stdin))
    except JobPoolError as exc:
        raise StartupError(str(exc)) from exc

    try:
        setup_logging(verbose=verbose, quiet=quiet, log_path=log_path)
    except OSError as exc:
        raise StartupError(f'Cannot open log file {log_path}: {exc.strerror or exc}') from exc

    try:
        resolution = resolve_shell(pool_config)
        log.debug(
            'Running %d jobs on %d workers (shell: %s)',
            len(job_list),
            pool_config.worker_count,
            resolution,
        )
        executor = Executor(resolution, dry_run=pool_config.dry_run)
        supervisor = WorkerSupervisor(
            pool_config.worker_count,
            executor.execute,
            halt_on_error=pool_config.halt_on_error,
        )
        reporter = JobReporter()
        json_logger = JSONLogger(json_log_path) if json_log_path is not None else None

        def on_result(outcome):
            reporter.report(outcome)
            if json_logger is not None:
                json_logger.add_record(outcome)

        def on_skip(job):
            reporter.report_skip(job)
            if json_logger is not None:
                json_logger.add_skip(job)

        summary = supervisor.run(job_list, on_result=on_result, on_skip=on_skip)
        reporter.report_summary(summary)
        if json_logger is not None:
            json_logger.flush()
        if show_summary:
            console.print(summary_table(summary))
    finally:
        close_logging()

    ctx.exit(EXIT_OK if summary.ok else EXIT_JOB_FAILED)


if __name__ == '__main__':  # pragma: no cover
    cli()
