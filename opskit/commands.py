# opskit/commands.py
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .config import Settings
from .errors import CommandError

log = logging.getLogger(__name__)


@dataclass
class Result:
    rc: int
    out: str
    err: str


def run(
    cmd: Sequence[str],
    *,
    check: bool = True,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> Result:
    log.debug("run: %s", shlex.join(cmd))
    full_env = None if env is None else {**os.environ, **env}
    proc = subprocess.run(
        list(cmd),
        stdin=subprocess.DEVNULL,
        capture_output=True,
        text=True,
        env=full_env,
        timeout=timeout,
    )
    if check and proc.returncode != 0:
        raise CommandError(shlex.join(cmd), proc.returncode, proc.stdout, proc.stderr)
    return Result(proc.returncode, proc.stdout, proc.stderr)


def sudo(cmd: Sequence[str], *, settings: Settings | None = None, **kwargs) -> Result:
    """Prefix ``cmd`` with the OPSKIT_SUDO command unless it already starts with sudo."""
    settings = settings or Settings.from_env()
    prefix = shlex.split(settings.sudo)
    if not prefix or (cmd and cmd[0] == "sudo"):
        return run(cmd, **kwargs)
    return run([*prefix, *cmd], **kwargs)
