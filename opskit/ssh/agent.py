# opskit/ssh/agent.py
"""
ssh-agent lifecycle bound to a ResourceScope.

    scope = init_scope()
    agent = AgentSession(scope)
    agent.begin()
    report = agent.add_keys(["~/.ssh/deploy.pem"])

``begin`` exports SSH_AUTH_SOCK / SSH_AGENT_PID into ``os.environ`` and
registers ``end`` with the scope, so the agent is killed and the variables
reverted at exit even if the caller never calls ``end`` itself.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

import paramiko

from ..errors import AgentError
from ..scope import ResourceScope

log = logging.getLogger(__name__)

AGENT_VARS = ("SSH_AUTH_SOCK", "SSH_AGENT_PID")
_ASSIGN_RE = re.compile(r"^(SSH_AUTH_SOCK|SSH_AGENT_PID)=([^;\s]+);", re.MULTILINE)


def parse_agent_output(text: str) -> Dict[str, str]:
    """Pull the ``NAME=value;`` assignments out of ``ssh-agent -s`` output."""
    return {m.group(1): m.group(2) for m in _ASSIGN_RE.finditer(text)}


@dataclass
class KeyResult:
    source: str
    ok: bool
    rc: Optional[int] = None
    error: Optional[str] = None


@dataclass
class KeyAddReport:
    results: List[KeyResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def added(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> List[KeyResult]:
        return [r for r in self.results if not r.ok]


class AgentSession:
    """One ssh-agent per process; ``begin`` while another is active is rejected."""

    _active: ClassVar[Optional["AgentSession"]] = None

    def __init__(
        self,
        scope: ResourceScope,
        *,
        agent_command: Sequence[str] = ("ssh-agent",),
        add_command: Sequence[str] = ("ssh-add",),
        timeout: float = 10,
    ) -> None:
        self.scope = scope
        self.agent_command = list(agent_command)
        self.add_command = list(add_command)
        self.timeout = timeout
        self.pid: Optional[int] = None
        self.patch: Dict[str, str] = {}
        self.private_dir: Optional[Path] = None
        self._saved: Dict[str, Optional[str]] = {}

    @property
    def active(self) -> bool:
        return AgentSession._active is self

    @property
    def env_file(self) -> Optional[Path]:
        return None if self.private_dir is None else self.private_dir / "agent.env"

    # ---------- lifecycle ----------
    def begin(self) -> "AgentSession":
        if AgentSession._active is not None:
            raise AgentError("an ssh-agent session is already active in this process")

        self.private_dir = self.scope.temp_dir(prefix="agent.", mode=0o700)
        sock = self.private_dir / "agent.sock"
        cmd = [*self.agent_command, "-s", "-a", str(sock)]
        log.debug("starting agent: %s", cmd)
        try:
            proc = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise AgentError(f"ssh-agent not found: {self.agent_command[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise AgentError(f"ssh-agent did not report readiness within {self.timeout}s") from e

        if proc.returncode != 0:
            raise AgentError(f"ssh-agent failed rc={proc.returncode}: {proc.stderr.strip()}")

        patch = parse_agent_output(proc.stdout)
        missing = [v for v in AGENT_VARS if v not in patch]
        if missing:
            # the agent may already have daemonised
            stray = patch.get("SSH_AGENT_PID", "")
            if stray.isdigit():
                try:
                    os.kill(int(stray), signal.SIGTERM)
                except ProcessLookupError:
                    log.debug("ssh-agent pid %s already gone", stray)
            raise AgentError(f"ssh-agent output missing {', '.join(missing)}")

        env_file = self.private_dir / "agent.env"
        env_file.write_text("".join(f"{k}={v}\n" for k, v in patch.items()), encoding="utf-8")
        env_file.chmod(0o600)

        self.patch = patch
        self.pid = int(patch["SSH_AGENT_PID"])
        self._saved = {k: os.environ.get(k) for k in patch}
        os.environ.update(patch)
        AgentSession._active = self
        self.scope.trigger(self.end)
        log.info("ssh-agent started (pid %s)", self.pid)
        return self

    def end(self) -> None:
        if not self.active:
            return
        for key, old in self._saved.items():
            if old is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old
        if self.pid is not None:
            try:
                os.kill(self.pid, signal.SIGTERM)
            except ProcessLookupError:
                log.debug("ssh-agent pid %s already gone", self.pid)
        if self.private_dir is not None:
            shutil.rmtree(self.private_dir, ignore_errors=True)
        log.info("ssh-agent stopped (pid %s)", self.pid)
        AgentSession._active = None
        self._saved = {}

    def __enter__(self) -> "AgentSession":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()

    # ---------- keys ----------
    def add_keys(self, paths: Iterable[str | os.PathLike[str]] = (), *, stdin: TextIO | None = None) -> KeyAddReport:
        """
        Register each key file with the agent through a single-use 0600
        scratch copy. With no paths, one key is read from ``stdin``.
        ssh-add diagnostics are discarded so key material never reaches logs.
        """
        if not self.active:
            raise AgentError("no active ssh-agent session")

        report = KeyAddReport()
        sources: List[Tuple[str, bytes]] = []
        paths = list(paths)
        if paths:
            for p in paths:
                path = Path(p).expanduser()
                try:
                    sources.append((str(path), path.read_bytes()))
                except OSError as e:
                    report.results.append(KeyResult(str(path), False, error=e.strerror or str(e)))
        else:
            stream = stdin if stdin is not None else sys.stdin
            sources.append(("<stdin>", stream.read().encode("utf-8")))

        for source, material in sources:
            report.results.append(self._add_one(source, material))
        log.info("added %d/%d key(s) to ssh-agent", report.added, len(report.results))
        return report

    def _add_one(self, source: str, material: bytes) -> KeyResult:
        scratch = self.scope.temp_file(prefix="key.", mode=0o600)
        try:
            scratch.write_bytes(material)
            proc = subprocess.run(
                [*self.add_command, str(scratch)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            log.warning("ssh-add timed out for %s", source)
            return KeyResult(source, False, error="timeout")
        except FileNotFoundError:
            return KeyResult(source, False, error=f"ssh-add not found: {self.add_command[0]}")
        finally:
            scratch.unlink(missing_ok=True)

        if proc.returncode != 0:
            log.warning("ssh-add rejected %s (rc=%s)", source, proc.returncode)
            return KeyResult(source, False, rc=proc.returncode, error="rejected")
        return KeyResult(source, True, rc=0)

    def identities(self) -> List[Tuple[str, str]]:
        """(key type, fingerprint) for every key the agent currently holds."""
        if not self.active:
            raise AgentError("no active ssh-agent session")
        agent = paramiko.Agent()
        try:
            return [(k.get_name(), k.fingerprint) for k in agent.get_keys()]
        finally:
            agent.close()
