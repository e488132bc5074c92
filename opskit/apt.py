# opskit/apt.py
"""Thin apt-get wrapper honouring OPSKIT_SUDO and OPSKIT_APT."""

from __future__ import annotations

import logging
import shlex
from typing import List

from .commands import Result, run, sudo
from .config import Settings

log = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def _apt(settings: Settings | None, *args: str) -> Result:
    settings = settings or Settings.from_env()
    cmd: List[str] = [*shlex.split(settings.apt), "-y", "-q", *args]
    return sudo(cmd, settings=settings, env=_APT_ENV)


def update(settings: Settings | None = None) -> Result:
    log.info("apt: update")
    return _apt(settings, "update")


def install(*packages: str, settings: Settings | None = None) -> Result:
    if not packages:
        raise ValueError("install: no packages given")
    log.info("apt: install %s", " ".join(packages))
    return _apt(settings, "install", "--no-install-recommends", *packages)


def remove(*packages: str, settings: Settings | None = None) -> Result:
    if not packages:
        raise ValueError("remove: no packages given")
    log.info("apt: remove %s", " ".join(packages))
    return _apt(settings, "remove", *packages)


def is_installed(package: str) -> bool:
    res = run(["dpkg-query", "-W", "-f=${Status}", package], check=False)
    # "install ok installed"; "unknown ok not-installed" must not match
    return res.rc == 0 and res.out.split()[-1:] == ["installed"]
