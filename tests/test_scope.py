import os
import signal
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from opskit.scope import TMPDIR_ENV, ResourceScope


def test_actions_run_last_registered_first(scope):
    calls = []
    scope.trigger(lambda: calls.append("a"))
    scope.trigger(lambda: calls.append("b"))
    scope.trigger(lambda: calls.append("c"))
    scope.drain()
    assert calls == ["c", "b", "a"]


def test_drain_runs_each_action_once(scope):
    calls = []
    scope.trigger(lambda: calls.append("x"))
    scope.drain()
    scope.drain()
    assert calls == ["x"]
    assert scope.drained


def test_failing_action_does_not_stop_drain(scope):
    calls = []

    def boom():
        raise OSError("disk gone")

    scope.trigger(lambda: calls.append("first"))
    scope.trigger(boom)
    scope.trigger(lambda: calls.append("last"))
    scope.drain()
    assert calls == ["last", "first"]
    assert len(scope.failures) == 1
    assert scope.failures[0][0] is boom


def test_temp_paths_are_unique_and_removed(scope):
    files = [scope.temp_file() for _ in range(20)]
    dirs = [scope.temp_dir() for _ in range(20)]
    paths = files + dirs
    assert len(set(paths)) == len(paths)
    assert all(p.parent == scope.arena for p in paths)
    assert all(p.is_file() for p in files)
    assert all(p.is_dir() for p in dirs)

    arena = scope.arena
    scope.drain()
    assert not arena.exists()
    assert not any(p.exists() for p in paths)


def test_arena_is_lazy_and_exported(tmp_path, monkeypatch):
    monkeypatch.delenv(TMPDIR_ENV, raising=False)
    s = ResourceScope(base_dir=tmp_path)
    assert TMPDIR_ENV not in os.environ
    arena = s.arena
    assert os.environ[TMPDIR_ENV] == str(arena)
    s.drain()
    assert TMPDIR_ENV not in os.environ


def test_temp_options_pass_through(scope):
    f = scope.temp_file(prefix="key.", suffix=".pem", mode=0o600)
    d = scope.temp_dir(prefix="agent.", mode=0o700)
    assert f.name.startswith("key.") and f.name.endswith(".pem")
    assert f.stat().st_mode & 0o777 == 0o600
    assert d.name.startswith("agent.")
    assert d.stat().st_mode & 0o777 == 0o700


def test_context_manager_drains(tmp_path):
    calls = []
    with ResourceScope(base_dir=tmp_path) as s:
        s.trigger(lambda: calls.append(1))
        arena = s.arena
    assert calls == [1]
    assert not arena.exists()


def test_signal_handler_drains_and_exits(scope):
    calls = []
    scope.trigger(lambda: calls.append("cleanup"))
    with pytest.raises(SystemExit) as exc:
        scope._on_signal(signal.SIGTERM, None)
    assert exc.value.code == 128 + signal.SIGTERM
    assert calls == ["cleanup"]


def test_signal_during_drain_still_runs_remaining_actions(tmp_path):
    s = ResourceScope(base_dir=tmp_path)
    arena = s.arena
    calls = []
    s.trigger(lambda: calls.append("a"))
    s.trigger(lambda: s._on_signal(signal.SIGTERM, None))
    s.trigger(lambda: calls.append("c"))
    with pytest.raises(SystemExit) as exc:
        s.drain()
    assert exc.value.code == 128 + signal.SIGTERM
    assert calls == ["c", "a"]
    assert not arena.exists()
    assert s.drained


def test_keyboard_interrupt_in_action_is_reraised_after_drain(scope):
    calls = []

    def interrupted():
        raise KeyboardInterrupt

    scope.trigger(lambda: calls.append("first"))
    scope.trigger(interrupted)
    with pytest.raises(KeyboardInterrupt):
        scope.drain()
    assert calls == ["first"]
    assert scope.failures == []


EXIT_SCRIPT = textwrap.dedent(
    """
    import sys, time
    from opskit.scope import init_scope

    marker, mode = sys.argv[1], sys.argv[2]

    def mark(tag):
        with open(marker, "a") as fh:
            fh.write(tag + "\\n")

    scope = init_scope()
    scope.trigger(lambda: mark("first"))
    scope.trigger(lambda: mark("second"))
    print(scope.arena, flush=True)
    if mode == "wait":
        time.sleep(30)
    """
)


def _spawn(tmp_path, mode):
    root = Path(__file__).resolve().parents[1]
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(root), env.get("PYTHONPATH")) if p)
    marker = tmp_path / "drained"
    proc = subprocess.Popen(
        [sys.executable, "-c", EXIT_SCRIPT, str(marker), mode],
        stdout=subprocess.PIPE,
        text=True,
        env=env,
    )
    arena = Path(proc.stdout.readline().strip())
    return proc, arena, marker


def test_normal_exit_drains_process_scope(tmp_path):
    proc, arena, marker = _spawn(tmp_path, "exit")
    assert proc.wait(timeout=30) == 0
    proc.stdout.close()
    assert marker.read_text() == "second\nfirst\n"
    assert not arena.exists()


def test_sigterm_drains_process_scope(tmp_path):
    proc, arena, marker = _spawn(tmp_path, "wait")
    assert arena.is_dir()
    proc.send_signal(signal.SIGTERM)
    assert proc.wait(timeout=30) == 128 + signal.SIGTERM
    proc.stdout.close()
    assert marker.read_text() == "second\nfirst\n"
    assert not arena.exists()
