"""Configuration for JobPool Toolkit.

Defaults may come from a YAML file (``--config``); values given on the
command line take precedence.  The result is a read-only ``PoolConfig``
built once before any job is dispatched.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError


KNOWN_KEYS = frozenset({'jobs', 'shell', 'no_shell', 'halt_on_error', 'dry_run', 'log'})


@dataclass(frozen=True)
class PoolConfig:
    worker_count: int
    shell: Optional[str] = None
    no_shell: bool = False
    halt_on_error: bool = False
    dry_run: bool = False


def load_config(path: Path) -> Dict[str, Any]:
    """Load run defaults from a YAML file.

    An empty file yields an empty mapping.  Anything other than a mapping of
    known keys raises ``ConfigurationError``.
    """
    try:
        with path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f'Cannot read config file {path}: {exc.strerror or exc}') from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f'Invalid YAML in config file {path}: {exc}') from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f'Config file {path} must contain a mapping, got {type(data).__name__}')
    unknown = sorted(str(key) for key in data if key not in KNOWN_KEYS)
    if unknown:
        raise ConfigurationError(f'Unknown config keys in {path}: {", ".join(unknown)}')
    for key in ('no_shell', 'halt_on_error', 'dry_run'):
        if key in data and not isinstance(data[key], bool):
            raise ConfigurationError(f'Config key {key!r} must be true or false')
    for key in ('shell', 'log'):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ConfigurationError(f'Config key {key!r} must be a string')
    return data


def default_worker_count() -> int:
    """Number of CPUs this process may run on, at least 1."""
    if hasattr(os, 'sched_getaffinity'):
        count = len(os.sched_getaffinity(0))
    else:
        count = os.cpu_count() or 1
    return max(count, 1)


def resolve_worker_count(value: Any = None) -> int:
    """Turn a configured worker count into a usable one.

    ``None`` means the host's available parallelism.  Zero is clamped to 1.
    """
    if value is None:
        return default_worker_count()
    if isinstance(value, bool):
        raise ConfigurationError(f'Invalid worker count: {value!r}')
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Invalid worker count: {value!r}') from None
    if isinstance(value, float) and value != count:
        raise ConfigurationError(f'Invalid worker count: {value!r}')
    if count < 0:
        raise ConfigurationError(f'Worker count must not be negative: {count}')
    return max(count, 1)


def build_pool_config(
    file_config: Optional[Dict[str, Any]] = None,
    *,
    jobs: Optional[int] = None,
    shell: Optional[str] = None,
    no_shell: bool = False,
    halt_on_error: bool = False,
    dry_run: bool = False,
) -> PoolConfig:
    """Merge command-line values over config-file defaults."""
    cfg = file_config or {}
    return PoolConfig(
        worker_count=resolve_worker_count(jobs if jobs is not None else cfg.get('jobs')),
        shell=shell if shell is not None else cfg.get('shell'),
        no_shell=no_shell or bool(cfg.get('no_shell', False)),
        halt_on_error=halt_on_error or bool(cfg.get('halt_on_error', False)),
        dry_run=dry_run or bool(cfg.get('dry_run', False)),
    )
