# opskit/cli.py
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .bootstrap import run_script
from .config import Settings
from .errors import OpsKitError
from .logging_setup import setup_logging

log = logging.getLogger(__name__)

# ---------------- version ----------------
try:
    from importlib.metadata import version as _pkg_version
    __VERSION__ = _pkg_version("opskit")
except Exception:
    __VERSION__ = "0.0.0+dev"


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="opskit", description="Operations toolkit: script runner, stack ssh, preflight")
    p.add_argument("--version", action="version", version=f"opskit {__VERSION__}")
    p.add_argument("--verbosity", "-v", action="count", default=1)
    p.add_argument("--log-file", default=None)

    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run a Python script with the cleanup scope initialised")
    run.add_argument("script", nargs="?", help="script file to execute")
    run.add_argument("args", nargs=argparse.REMAINDER, help="arguments passed to the script")

    # everything after "ssh" is handed to ssh_host unparsed
    sub.add_parser("ssh", help="SSH to host N of a stack (see ssh_host --help)", add_help=False)

    sub.add_parser("preflight", help="Check local tools and AWS credentials")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args, extra = parser.parse_known_args(argv)
    settings = Settings.from_env()

    if args.cmd == "ssh":
        from .tools.ssh_host import main as ssh_main

        return ssh_main(extra, settings=settings)
    if extra:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")

    if args.cmd == "preflight":
        from .tools.preflight import main as preflight_main

        return preflight_main(settings=settings)

    setup_logging(args.verbosity, args.log_file, settings=settings)
    try:
        run_script(args.script, args.args)
    except OpsKitError as e:
        log.error("%s", e)
        return 1
    except SystemExit as e:
        if e.code is None or isinstance(e.code, int):
            return e.code or 0
        print(e.code, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
