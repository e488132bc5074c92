# opskit/ssh/remote.py
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional

import paramiko

from ..errors import CommandError

log = logging.getLogger(__name__)


@dataclass
class Result:
    rc: int
    out: str
    err: str


@dataclass
class SSHClient:
    """
    paramiko client that authenticates through the running ssh-agent
    (SSH_AUTH_SOCK), optionally with an explicit key file as well.
    """

    host: str
    user: str
    port: int = 22
    key_path: Optional[str] = None
    timeout: int = 60

    def __post_init__(self) -> None:
        self._ssh: paramiko.SSHClient | None = None
        self._client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient

    def __enter__(self) -> "SSHClient":
        cli = self._client_factory()
        cli.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        log.debug("connecting to %s@%s:%s", self.user, self.host, self.port)
        cli.connect(
            hostname=self.host,
            port=self.port,
            username=self.user,
            key_filename=self.key_path,
            allow_agent=True,
            look_for_keys=False,
            timeout=self.timeout,
            banner_timeout=self.timeout,
            auth_timeout=self.timeout,
        )
        self._ssh = cli
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._ssh is not None:
                self._ssh.close()
        finally:
            self._ssh = None

    def _exec(self, cmd: str):
        assert self._ssh is not None, "SSH not connected"
        stdin, stdout, stderr = self._ssh.exec_command(cmd)
        rc = stdout.channel.recv_exit_status()
        out = stdout.read().decode("utf-8", "ignore")
        err = stderr.read().decode("utf-8", "ignore")
        return rc, out, err

    def stream(self, cmd: str, *, out: BinaryIO | None = None, err: BinaryIO | None = None) -> int:
        """Run ``cmd`` copying its output to local stdout/stderr as it arrives."""
        assert self._ssh is not None, "SSH not connected"
        out = out or sys.stdout.buffer
        err = err or sys.stderr.buffer
        chan = self._ssh.get_transport().open_session()
        chan.exec_command(cmd)
        while True:
            busy = False
            while chan.recv_ready():
                out.write(chan.recv(4096))
                busy = True
            while chan.recv_stderr_ready():
                err.write(chan.recv_stderr(4096))
                busy = True
            if chan.exit_status_ready() and not (chan.recv_ready() or chan.recv_stderr_ready()):
                break
            if not busy:
                time.sleep(0.05)
        out.flush()
        err.flush()
        rc = chan.recv_exit_status()
        chan.close()
        return rc


def run(ssh: SSHClient, cmd: str, *, check: bool = True) -> Result:
    rc, out, err = ssh._exec(cmd)
    if check and rc != 0:
        raise CommandError(cmd, rc, out, err)
    return Result(rc, out, err)
