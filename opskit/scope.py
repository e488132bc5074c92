# opskit/scope.py
"""
Process-wide cleanup registry plus a temporary-file arena.

Actions registered with ``trigger`` run last-first when the scope drains,
which happens once: at interpreter exit, on SIGTERM/SIGHUP/SIGINT, or when
``drain`` is called directly. Every path handed out by ``temp_file`` /
``temp_dir`` lives under one arena directory that is removed after the
actions have run.
"""

from __future__ import annotations

import atexit
import logging
import os
import shutil
import signal
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

log = logging.getLogger(__name__)

TMPDIR_ENV = "OPSKIT_TMPDIR"

_HANDLED_SIGNALS = ("SIGTERM", "SIGHUP", "SIGINT")


class ResourceScope:
    def __init__(self, *, prefix: str = "opskit.", base_dir: str | os.PathLike[str] | None = None) -> None:
        self._actions: List[Callable[[], Any]] = []
        self._prefix = prefix
        self._base_dir = base_dir
        self._arena: Optional[Path] = None
        self._drained = False
        self._installed = False
        self.failures: List[Tuple[Callable[[], Any], BaseException]] = []

    # ---------- registry ----------
    def trigger(self, action: Callable[[], Any]) -> None:
        self._actions.append(action)

    @property
    def drained(self) -> bool:
        return self._drained

    def drain(self) -> None:
        if self._drained:
            return
        self._drained = True
        # an exit request (signal, KeyboardInterrupt) raised inside an action
        # is held until every remaining action has run
        pending: Optional[BaseException] = None
        try:
            while self._actions:
                action = self._actions.pop()
                try:
                    action()
                except Exception as e:
                    log.warning("cleanup action %r failed: %s", action, e)
                    self.failures.append((action, e))
                except BaseException as e:
                    log.warning("cleanup action %r interrupted: %r", action, e)
                    if pending is None:
                        pending = e
        finally:
            self._remove_arena()
        if pending is not None:
            raise pending

    def install(self) -> "ResourceScope":
        """Hook ``drain`` into interpreter exit and termination signals."""
        if self._installed:
            return self
        self._installed = True
        atexit.register(self.drain)
        if threading.current_thread() is not threading.main_thread():
            log.debug("not in main thread; signal handlers not installed")
            return self
        for name in _HANDLED_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self._on_signal)
        return self

    def _on_signal(self, signum, frame) -> None:  # noqa: ARG002
        # during a drain this only interrupts the blocked action; drain
        # re-raises it once the rest have run
        log.debug("received signal %s; draining cleanup scope", signum)
        self.drain()
        raise SystemExit(128 + signum)

    # ---------- temp arena ----------
    @property
    def arena(self) -> Path:
        if self._arena is None:
            self._arena = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._base_dir))
            os.environ[TMPDIR_ENV] = str(self._arena)
            log.debug("temp arena: %s", self._arena)
        return self._arena

    def temp_file(self, *, mode: int | None = None, **opts: Any) -> Path:
        fd, name = tempfile.mkstemp(dir=self.arena, **opts)
        os.close(fd)
        path = Path(name)
        if mode is not None:
            path.chmod(mode)
        return path

    def temp_dir(self, *, mode: int | None = None, **opts: Any) -> Path:
        path = Path(tempfile.mkdtemp(dir=self.arena, **opts))
        if mode is not None:
            path.chmod(mode)
        return path

    def _remove_arena(self) -> None:
        if self._arena is None:
            return
        shutil.rmtree(self._arena, ignore_errors=True)
        if os.environ.get(TMPDIR_ENV) == str(self._arena):
            del os.environ[TMPDIR_ENV]
        log.debug("removed temp arena: %s", self._arena)
        self._arena = None

    def __enter__(self) -> "ResourceScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.drain()


_SCOPE: Optional[ResourceScope] = None


def init_scope() -> ResourceScope:
    """Create and install the process-wide scope (idempotent)."""
    global _SCOPE
    if _SCOPE is None or _SCOPE.drained:
        _SCOPE = ResourceScope().install()
    return _SCOPE


def current_scope() -> ResourceScope:
    return init_scope()


def detach_scope() -> None:
    """
    Forget the inherited process scope in a forked child.

    The parent's actions belong to the parent and must not run in the child,
    so its signal handlers are reset as well. A later ``init_scope`` in the
    child starts a fresh scope.
    """
    global _SCOPE
    _SCOPE = None
    for name in _HANDLED_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, signal.SIG_DFL)


def drain_scope() -> None:
    """Drain the process scope, if one was ever created."""
    if _SCOPE is not None:
        _SCOPE.drain()
