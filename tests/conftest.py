import os
import sys
import textwrap
import time
from pathlib import Path

import pytest

from opskit.scope import ResourceScope

FAKE_AGENT = """
import subprocess, sys
args = sys.argv[1:]
sock = args[args.index("-a") + 1]
child = subprocess.Popen(
    [sys.executable, "-c", "import time; time.sleep(120)"],
    stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
    start_new_session=True,
)
print(f"SSH_AUTH_SOCK={sock}; export SSH_AUTH_SOCK;")
print(f"SSH_AGENT_PID={child.pid}; export SSH_AGENT_PID;")
print(f"echo Agent pid {child.pid};")
"""

FAKE_ADD = """
import os, sys
path = sys.argv[1]
with open(path) as fh:
    data = fh.read()
with open(os.environ["FAKE_ADD_LOG"], "a") as log:
    log.write(f"{path}\\t{oct(os.stat(path).st_mode & 0o777)}\\t{data.strip()}\\n")
sys.exit(1 if "bad" in data else 0)
"""

FAKE_SSH = """
import os, sys, time
log = os.environ.get("FAKE_SSH_LOG")
if log:
    with open(log, "w") as fh:
        fh.write("\\n".join(sys.argv[1:]))
pidfile = os.environ.get("FAKE_SSH_PIDFILE")
if pidfile:
    with open(pidfile, "w") as fh:
        fh.write(str(os.getpid()))
if os.environ.get("FAKE_SSH_MODE") == "hang":
    time.sleep(60)
print(os.environ.get("FAKE_SSH_GREETING", "opskit-ready"), flush=True)
sys.stdin.readline()
"""


def _script(tmp_path: Path, name: str, body: str) -> list:
    path = tmp_path / name
    path.write_text(textwrap.dedent(body))
    return [sys.executable, str(path)]


@pytest.fixture
def scope(tmp_path):
    s = ResourceScope(base_dir=tmp_path)
    yield s
    s.drain()


@pytest.fixture
def fake_agent(tmp_path):
    return _script(tmp_path, "fake_agent.py", FAKE_AGENT)


@pytest.fixture
def fake_add(tmp_path, monkeypatch):
    log = tmp_path / "ssh-add.log"
    monkeypatch.setenv("FAKE_ADD_LOG", str(log))
    return _script(tmp_path, "fake_add.py", FAKE_ADD), log


@pytest.fixture
def fake_ssh(tmp_path, monkeypatch):
    log = tmp_path / "ssh.argv"
    monkeypatch.setenv("FAKE_SSH_LOG", str(log))
    monkeypatch.setenv("FAKE_SSH_PIDFILE", str(tmp_path / "ssh.pid"))
    return _script(tmp_path, "fake_ssh.py", FAKE_SSH), log


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    # a killed child nobody has reaped yet still answers signal 0
    try:
        status = Path(f"/proc/{pid}/status").read_text()
    except OSError:
        return True
    return "\nState:\tZ" not in status


def wait_dead(pid: int, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            return True
        time.sleep(0.05)
    return False
