# opskit/errors.py
from __future__ import annotations


class OpsKitError(RuntimeError):
    """Base class for every error raised by the toolkit."""


class AgentError(OpsKitError):
    """ssh-agent could not be started, or the session is in the wrong state."""


class TunnelError(OpsKitError):
    """Background ssh session failed its readiness handshake."""


class StepError(OpsKitError):
    pass


class CommandError(OpsKitError):
    """A local command exited non-zero."""

    def __init__(self, cmd, rc: int, out: str = "", err: str = "") -> None:
        self.cmd = cmd
        self.rc = rc
        self.out = out
        self.err = err
        super().__init__(f"command failed rc={rc}: {cmd}\n{err or out}".rstrip())


class StackError(OpsKitError):
    """Stack outputs or key material could not be resolved."""


class LibraryNotFound(OpsKitError):
    pass


class ScriptNotFound(OpsKitError):
    pass
