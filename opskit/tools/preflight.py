# opskit/tools/preflight.py
"""Report which external tools and credentials this machine can offer."""

from __future__ import annotations

import shutil
import subprocess
import sys
from typing import List, Optional

from ..config import Settings


def _check(cmd: List[str], name: str) -> bool:
    if shutil.which(cmd[0]) is None:
        print(f"[WARN] {name}: {cmd[0]} not found on PATH")
        return False
    try:
        out = subprocess.run(cmd, stdin=subprocess.DEVNULL, capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired) as e:
        print(f"[WARN] {name}: {e}")
        return False
    # ssh -V prints to stderr; ssh-agent/ssh-add have no version flag
    text = (out.stdout or out.stderr).strip().splitlines()
    print(f"[OK] {name}: {text[0] if text else shutil.which(cmd[0])}")
    return True


def main(argv: Optional[List[str]] = None, settings: Settings | None = None) -> int:  # noqa: ARG001
    settings = settings or Settings.from_env()
    print("== opskit preflight ==")
    print(f"Python: {sys.version.split()[0]}")

    ok = _check([settings.ssh_bin, "-V"], "ssh")
    ok = _check([settings.agent_bin, "-h"], "ssh-agent") and ok
    ok = _check([settings.add_bin, "-h"], "ssh-add") and ok

    if settings.stack:
        print(f"[OK] stack: {settings.stack} ({settings.region})")
    else:
        print("[WARN] OPSKIT_STACK not set; ssh_host needs --stack")

    try:
        import boto3

        ident = boto3.Session(region_name=settings.region).client("sts").get_caller_identity()
        print(f"[OK] AWS identity: {ident.get('Account')} / {ident.get('Arn')}")
    except Exception as e:
        print(f"[WARN] AWS credentials not verified via STS: {e}")

    print("\nPreflight complete.")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
