"""Shell resolution for JobPool Toolkit.

Decides once per run whether commands go through an interpreter
(``<shell> -c <command>``) or are split and started directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..config_loader import PoolConfig


@dataclass(frozen=True)
class ShellResolution:
    interpreter: Optional[str] = None

    @property
    def direct(self) -> bool:
        return self.interpreter is None

    def __str__(self) -> str:
        return 'direct' if self.direct else self.interpreter


DIRECT = ShellResolution()


def platform_default_shell(os_name: Optional[str] = None) -> str:
    if (os_name or os.name) == 'nt':
        return 'powershell'
    return 'sh'


def resolve_shell(config: PoolConfig, os_name: Optional[str] = None) -> ShellResolution:
    """Pick the interpreter for a run.

    ``no_shell`` wins over an explicit ``shell``.  An unknown interpreter is
    not checked here; it shows up as a spawn error for each job.
    """
    if config.no_shell:
        return DIRECT
    if config.shell is not None:
        return ShellResolution(config.shell)
    return ShellResolution(platform_default_shell(os_name))
