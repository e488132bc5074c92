# opskit/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE


@dataclass
class Settings:
    debug: bool = False
    sudo: str = "sudo -n"
    apt: str = "apt-get"
    region: str = "us-east-1"
    stack: str = ""
    ssh_user: str = "ubuntu"
    ssh_bin: str = "ssh"
    agent_bin: str = "ssh-agent"
    add_bin: str = "ssh-add"
    agent_timeout: int = 10
    handshake_timeout: int = 30
    log_file: str = ""
    lib_path: list[Path] = field(default_factory=list)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from OPSKIT_* variables (AWS_REGION is honoured for the
        region when OPSKIT_REGION is unset). Unset variables keep defaults.
        """
        env = os.environ if env is None else env
        base = cls()
        updates = {}
        if "OPSKIT_DEBUG" in env:
            updates["debug"] = _flag(env["OPSKIT_DEBUG"])
        if env.get("OPSKIT_SUDO") is not None:
            # an empty override disables privilege escalation (already root)
            updates["sudo"] = env["OPSKIT_SUDO"]
        if env.get("OPSKIT_APT"):
            updates["apt"] = env["OPSKIT_APT"]
        region = env.get("OPSKIT_REGION") or env.get("AWS_REGION")
        if region:
            updates["region"] = region
        if env.get("OPSKIT_STACK"):
            updates["stack"] = env["OPSKIT_STACK"]
        if env.get("OPSKIT_SSH_USER"):
            updates["ssh_user"] = env["OPSKIT_SSH_USER"]
        if env.get("OPSKIT_LOG_FILE"):
            updates["log_file"] = env["OPSKIT_LOG_FILE"]
        if env.get("OPSKIT_LIB_PATH"):
            updates["lib_path"] = [
                Path(p).expanduser() for p in env["OPSKIT_LIB_PATH"].split(os.pathsep) if p
            ]
        return replace(base, **updates)


DEF_SETTINGS = Settings()
