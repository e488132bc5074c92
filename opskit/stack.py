# opskit/stack.py
"""
CloudFormation stack outputs -> SSH targets.

The stack is expected to export:
  Hosts        JSON list or comma separated list of public addresses
  KeyPairId    id of an AWS::EC2::KeyPair (private key lives in SSM at
               /ec2/keypair/<KeyPairId>)
  SshUser      optional login user
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from .errors import StackError

log = logging.getLogger(__name__)

HOSTS_OUTPUT = "Hosts"
KEYPAIR_OUTPUT = "KeyPairId"
USER_OUTPUT = "SshUser"


@dataclass
class Target:
    index: int
    host: str
    user: Optional[str]
    key_pair_id: Optional[str]


def stack_outputs(cfn, stack_name: str) -> Dict[str, str]:
    try:
        resp = cfn.describe_stacks(StackName=stack_name)
    except ClientError as e:
        raise StackError(f"cannot describe stack {stack_name}: {e}") from e
    stacks = resp.get("Stacks") or []
    if not stacks:
        raise StackError(f"stack not found: {stack_name}")
    return {o["OutputKey"]: o.get("OutputValue", "") for o in stacks[0].get("Outputs", []) or []}


def parse_hosts(value: str) -> List[str]:
    value = (value or "").strip()
    if not value:
        return []
    if value.startswith("["):
        try:
            hosts = json.loads(value)
        except json.JSONDecodeError as e:
            raise StackError(f"{HOSTS_OUTPUT} output is not valid JSON: {e}") from e
        return [str(h) for h in hosts if h]
    return [h.strip() for h in value.split(",") if h.strip()]


def select_target(outputs: Dict[str, str], index: int) -> Target:
    hosts = parse_hosts(outputs.get(HOSTS_OUTPUT, ""))
    if not hosts:
        raise StackError(f"stack has no {HOSTS_OUTPUT} output")
    if not 0 <= index < len(hosts):
        raise IndexError(f"host index {index} out of range (0..{len(hosts) - 1})")
    return Target(
        index=index,
        host=hosts[index],
        user=outputs.get(USER_OUTPUT) or None,
        key_pair_id=outputs.get(KEYPAIR_OUTPUT) or None,
    )


def fetch_private_key(ssm, key_pair_id: str) -> str:
    name = f"/ec2/keypair/{key_pair_id}"
    try:
        return ssm.get_parameter(Name=name, WithDecryption=True)["Parameter"]["Value"]
    except ClientError as e:
        raise StackError(f"cannot read key material {name}: {e}") from e


def resolve(stack_name: str, index: int, *, region: str, session: boto3.Session | None = None):
    """Return (Target, private key text or None) for host ``index`` of ``stack_name``."""
    session = session or boto3.Session(region_name=region)
    outputs = stack_outputs(session.client("cloudformation"), stack_name)
    target = select_target(outputs, index)
    log.info("stack %s host[%d] = %s", stack_name, index, target.host)
    key = None
    if target.key_pair_id:
        key = fetch_private_key(session.client("ssm"), target.key_pair_id)
    return target, key
