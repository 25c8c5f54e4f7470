"""Command discovery for JobPool Toolkit.

Produces the ordered list of command lines for a run from exactly one
origin: positional arguments, a jobs file, or a text stream (normally
standard input), in that order of precedence.  The whole source is read
before any job starts so a read error never leaves a partial run behind.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO

from ..errors import CommandSourceError
from ..jobs.models import JobDescriptor


log = logging.getLogger(__name__)


def _read_lines(lines: Iterable[str]) -> List[str]:
    commands = []
    for line in lines:
        command = line.rstrip('\r\n')
        if command.strip():
            commands.append(command)
    return commands


def discover_commands(
    args: Sequence[str],
    jobs_file: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> List[str]:
    """Return the commands to run.

    Args:
        args: Commands given on the command line.  When non-empty, the file
            and stream are ignored.
        jobs_file: File with one command per line, used when ``args`` is empty.
        stream: Text stream with one command per line, used when neither of
            the above is given.

    Blank lines in a file or stream are skipped.

    Raises:
        CommandSourceError: if the file or stream cannot be read.
    """
    if args:
        if jobs_file is not None:
            log.debug('Commands given as arguments, ignoring %s', jobs_file)
        return list(args)
    if jobs_file is not None:
        try:
            with jobs_file.open('r', encoding='utf-8') as f:
                return _read_lines(f)
        except (OSError, UnicodeDecodeError) as exc:
            reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else exc
            raise CommandSourceError(f'Cannot read jobs file {jobs_file}: {reason}') from exc
    if stream is None:
        return []
    try:
        return _read_lines(stream)
    except (OSError, UnicodeDecodeError) as exc:
        raise CommandSourceError(f'Cannot read commands from standard input: {exc}') from exc


def enumerate_jobs(commands: Iterable[str]) -> List[JobDescriptor]:
    return [JobDescriptor(index=i, command=command) for i, command in enumerate(commands)]
