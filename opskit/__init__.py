# opskit/__init__.py
"""
Operations toolkit: cleanup scope, SSH agent/tunnel sessions, ordered step
runner and a TAP test harness.
"""

from .errors import OpsKitError
from .scope import ResourceScope, current_scope, init_scope

__all__ = [
    "OpsKitError",
    "ResourceScope",
    "current_scope",
    "init_scope",
]
