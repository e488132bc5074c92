# opskit/ssh/tunnel.py
"""
Long-lived background ``ssh`` process, typically carrying -L/-R/-D forwards.

The remote side runs ``echo opskit-ready; read _``: the first stdout line
proves the connection (and, with ExitOnForwardFailure, every forward) is up,
and the blocking ``read`` keeps the session open until ``close`` writes a
newline to the process's stdin.
"""

from __future__ import annotations

import logging
import os
import selectors
import subprocess
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from ..errors import TunnelError
from ..scope import ResourceScope
from .config import ClientConfig, write_config

log = logging.getLogger(__name__)

READY = "opskit-ready"
REMOTE_COMMAND = f"echo {READY}; read _"


class State(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    CLOSED = "closed"


def _read_line(proc: subprocess.Popen, timeout: float) -> Optional[str]:
    """First stdout line of ``proc`` or None on EOF/timeout."""
    assert proc.stdout is not None
    fd = proc.stdout.fileno()
    buf = b""
    deadline = time.monotonic() + timeout
    sel = selectors.DefaultSelector()
    sel.register(fd, selectors.EVENT_READ)
    try:
        while b"\n" not in buf:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            if not sel.select(timeout=remaining):
                continue
            chunk = os.read(fd, 1024)
            if not chunk:
                return None
            buf += chunk
    finally:
        sel.close()
    return buf.split(b"\n", 1)[0].decode("utf-8", "replace").rstrip("\r")


class BackgroundSession:
    def __init__(
        self,
        scope: ResourceScope,
        *,
        ssh_command: Sequence[str] = ("ssh",),
        config: ClientConfig | None = None,
        handshake_timeout: float = 30,
    ) -> None:
        self.scope = scope
        self.ssh_command = list(ssh_command)
        self.config = config
        self.handshake_timeout = handshake_timeout
        self.state = State.NOT_STARTED
        self.config_path: Optional[Path] = None
        self._proc: Optional[subprocess.Popen] = None

    @property
    def pid(self) -> Optional[int]:
        return None if self._proc is None else self._proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return None if self._proc is None else self._proc.poll()

    def run(self, *args: str) -> "BackgroundSession":
        if self.state is State.RUNNING:
            raise TunnelError("background session already running; use a new BackgroundSession")

        self.config_path = write_config(self.scope, self.config)
        cmd = [*self.ssh_command, "-F", str(self.config_path), *args, REMOTE_COMMAND]
        log.debug("starting background session: %s", cmd)
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
        except FileNotFoundError as e:
            raise TunnelError(f"ssh not found: {self.ssh_command[0]}") from e

        line = _read_line(proc, self.handshake_timeout)
        if line != READY:
            log.error("handshake failed (got %r); terminating pid %s", line, proc.pid)
            self._reap(proc)
            raise TunnelError("failed to port forward")

        self._proc = proc
        self.state = State.RUNNING
        self.scope.trigger(self.close)
        log.info("background session up (pid %s)", proc.pid)
        return self

    def close(self, timeout: float | None = None) -> Optional[int]:
        """Signal the remote ``read`` and wait for the process to exit."""
        if self.state is not State.RUNNING or self._proc is None:
            return self.returncode
        proc = self._proc
        assert proc.stdin is not None
        try:
            proc.stdin.write(b"\n")
            proc.stdin.flush()
        except BrokenPipeError:
            log.debug("background session pid %s already closed its stdin", proc.pid)
        finally:
            try:
                proc.stdin.close()
            except BrokenPipeError:
                pass

        try:
            rc = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            log.warning("background session pid %s did not exit in %ss; killing", proc.pid, timeout)
            proc.kill()
            rc = proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()
        self.state = State.CLOSED
        log.info("background session closed (pid %s, rc=%s)", proc.pid, rc)
        return rc

    @staticmethod
    def _reap(proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
        for stream in (proc.stdin, proc.stdout):
            if stream is not None:
                stream.close()

    def __enter__(self) -> "BackgroundSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
