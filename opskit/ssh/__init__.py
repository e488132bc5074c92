# opskit/ssh/__init__.py
"""
SSH helpers: ssh-agent session, background (forwarding) sessions and a
paramiko client that authenticates through the agent.
"""

from .agent import AgentSession, KeyAddReport, KeyResult
from .config import ClientConfig, write_config
from .remote import SSHClient, run
from .tunnel import BackgroundSession

__all__ = [
    "AgentSession",
    "KeyAddReport",
    "KeyResult",
    "ClientConfig",
    "write_config",
    "SSHClient",
    "run",
    "BackgroundSession",
]
