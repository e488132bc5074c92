# opskit/tap.py
"""
Minimal TAP (version 13) producer.

    register(check_ssh, "ssh reachable")
    register(check_disk)
    raise SystemExit(0 if run().ok else 1)

Each test runs in a forked child whose file descriptors 1 and 2 both point
at one capture file, so output from programs the test starts is caught too,
and changes to the environment, cwd or globals stay in the child. A test
fails when it raises, exits with a non-zero status, or returns a non-zero
integer; its captured output follows the result line as ``# `` comments.
Forking makes this POSIX only.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, List, TextIO, Tuple

from . import scope

log = logging.getLogger(__name__)

TAP_VERSION = 13


@dataclass
class TapResult:
    number: int
    ok: bool
    description: str = ""
    output: str = ""

    def line(self) -> str:
        status = "ok" if self.ok else "not ok"
        text = f"{status} {self.number}"
        if self.description:
            text += f" - {self.description}"
        return text


@dataclass
class TapReport:
    results: List[TapResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


def _exit_ok(code: Any) -> bool:
    if code is None:
        return True
    if isinstance(code, int):
        return code == 0
    # sys.exit("message") prints the message and exits 1
    print(code, file=sys.stderr)
    return False


def _call(func: Any) -> bool:
    try:
        if not callable(func):
            print(f"{func!r} is not callable")
            return False
        rv = func()
    except SystemExit as e:
        return _exit_ok(e.code)
    except Exception:
        traceback.print_exc()
        return False
    return not (isinstance(rv, int) and not isinstance(rv, bool) and rv != 0)


def _child(func: Any, fd: int) -> None:
    """Body of the forked test process. Never returns."""
    code = 1
    try:
        scope.detach_scope()
        os.dup2(fd, 1)
        os.dup2(fd, 2)
        # one line-buffered stream for both keeps their lines in order
        out = open(1, "w", buffering=1, encoding="utf-8", errors="replace", closefd=False)
        sys.stdout = sys.stderr = out
        try:
            code = 0 if _call(func) else 1
        finally:
            scope.drain_scope()
            out.flush()
    finally:
        os._exit(code)


def _invoke(func: Any) -> Tuple[bool, str]:
    with tempfile.TemporaryFile() as capture:
        for s in (sys.stdout, sys.stderr):
            if s is not None:
                s.flush()
        pid = os.fork()
        if pid == 0:
            _child(func, capture.fileno())
        _, status = os.waitpid(pid, 0)
        capture.seek(0)
        output = capture.read().decode("utf-8", errors="replace")
    return os.waitstatus_to_exitcode(status) == 0, output


class TestHarness:
    __test__ = False  # not a pytest test class

    def __init__(self) -> None:
        self._tests: List[Callable[[], Any]] = []
        self._descriptions: List[str] = []

    def register(self, func: Callable[[], Any], description: str = "") -> None:
        self._tests.append(func)
        self._descriptions.append(description or "")

    def __len__(self) -> int:
        return len(self._tests)

    def run(self, stream: TextIO | None = None) -> TapReport:
        stream = stream or sys.stdout
        report = TapReport()
        print(f"TAP version {TAP_VERSION}", file=stream)
        print(f"1..{len(self._tests)}", file=stream)
        for n, (func, desc) in enumerate(zip(self._tests, self._descriptions), start=1):
            log.debug("running test %d: %s", n, getattr(func, "__name__", func))
            ok, output = _invoke(func)
            result = TapResult(n, ok, desc, output)
            report.results.append(result)
            print(result.line(), file=stream)
            for line in output.splitlines():
                print(f"# {line}", file=stream)
            stream.flush()
        if report.failed:
            log.info("%d of %d test(s) failed", report.failed, len(report.results))
        return report


_DEFAULT = TestHarness()


def register(func: Callable[[], Any], description: str = "") -> None:
    _DEFAULT.register(func, description)


def run(stream: TextIO | None = None) -> TapReport:
    return _DEFAULT.run(stream)
