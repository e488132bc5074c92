# opskit/ssh/config.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional

from ..scope import ResourceScope


@dataclass
class ClientConfig:
    """Options written to the ``ssh -F`` file used by background sessions."""

    user: Optional[str] = None
    port: Optional[int] = None
    identity_file: Optional[str] = None
    connect_timeout: int = 10
    server_alive_interval: int = 10
    server_alive_count_max: int = 3
    known_hosts_file: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def options(self) -> Dict[str, str]:
        opts = {
            "BatchMode": "yes",
            "ExitOnForwardFailure": "yes",
            "StrictHostKeyChecking": "accept-new",
            "ConnectTimeout": str(self.connect_timeout),
            "ServerAliveInterval": str(self.server_alive_interval),
            "ServerAliveCountMax": str(self.server_alive_count_max),
        }
        if self.user:
            opts["User"] = self.user
        if self.port:
            opts["Port"] = str(self.port)
        if self.identity_file:
            opts["IdentityFile"] = self.identity_file
            opts["IdentitiesOnly"] = "yes"
        if self.known_hosts_file:
            opts["UserKnownHostsFile"] = self.known_hosts_file
        opts.update(self.extra)
        return opts

    def render(self) -> str:
        lines = ["Host *"]
        lines += [f"    {k} {v}" for k, v in self.options().items()]
        return "\n".join(lines) + "\n"


def write_config(scope: ResourceScope, config: ClientConfig | None = None) -> Path:
    config = config or ClientConfig()
    if config.known_hosts_file is None:
        # keep host keys learned by throwaway sessions out of ~/.ssh
        config = replace(config, known_hosts_file=str(scope.temp_file(prefix="known_hosts.", mode=0o600)))
    path = scope.temp_file(prefix="ssh_config.", mode=0o600)
    path.write_text(config.render(), encoding="utf-8")
    return path
