# opskit/tools/ssh_host.py
"""
ssh into host N of a CloudFormation stack.

    ssh_host.py 0 -- uptime
    ssh_host.py --stack web-prod 2          # interactive shell

The key pair's private key is pulled from SSM into a throwaway ssh-agent; the
exit status is the remote command's, or 1 when setup fails.
"""

from __future__ import annotations

import argparse
import io
import logging
import shlex
import subprocess
from typing import List, Optional

import paramiko

from ..config import Settings
from ..errors import OpsKitError
from ..logging_setup import setup_logging
from ..scope import init_scope
from ..ssh import AgentSession, ClientConfig, SSHClient, write_config
from .. import stack

log = logging.getLogger(__name__)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ssh_host", description="SSH to a host selected by index from stack outputs")
    p.add_argument("index", type=int, help="0-based index into the stack's Hosts output")
    p.add_argument("command", nargs=argparse.REMAINDER, help="remote command (interactive shell if omitted)")
    p.add_argument("--stack", default=settings.stack, help="stack name (default: $OPSKIT_STACK)")
    p.add_argument("--region", default=settings.region)
    p.add_argument("--user", default=None, help="login user (default: SshUser output, then $OPSKIT_SSH_USER)")
    p.add_argument("--port", type=int, default=22)
    p.add_argument("--verbosity", "-v", action="count", default=1)
    return p


def _command(words: List[str]) -> List[str]:
    if words and words[0] == "--":
        return words[1:]
    return words


def main(argv: Optional[List[str]] = None, settings: Settings | None = None) -> int:
    settings = settings or Settings.from_env()
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    setup_logging(args.verbosity, settings=settings)

    if not args.stack:
        parser.error("no stack given (use --stack or OPSKIT_STACK)")

    scope = init_scope()
    try:
        target, key = stack.resolve(args.stack, args.index, region=args.region)
    except IndexError as e:
        parser.error(str(e))
    except OpsKitError as e:
        log.error("%s", e)
        return 1

    user = args.user or target.user or settings.ssh_user
    command = _command(args.command)
    agent = AgentSession(
        scope,
        agent_command=shlex.split(settings.agent_bin),
        add_command=shlex.split(settings.add_bin),
        timeout=settings.agent_timeout,
    )
    try:
        with agent:
            if key:
                report = agent.add_keys(stdin=io.StringIO(key))
                if not report.ok:
                    log.error("ssh-add rejected the key for %s", target.key_pair_id)
                    return 1
            if not command:
                cfg = write_config(scope, ClientConfig(user=user, port=args.port, extra={"BatchMode": "no"}))
                return subprocess.call([*shlex.split(settings.ssh_bin), "-F", str(cfg), target.host])
            with SSHClient(target.host, user, port=args.port) as client:
                return client.stream(shlex.join(command))
    except OpsKitError as e:
        log.error("%s", e)
        return 1
    except (paramiko.SSHException, OSError) as e:
        log.error("ssh %s@%s failed: %s", user, target.host, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
