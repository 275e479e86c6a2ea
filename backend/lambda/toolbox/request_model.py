"""request_model.py - Typed request model.

A decoded request is either a ``BatchRequest`` (no command, ordered child
requests) or an ``OperationRequest`` carrying the parsed ``Command`` and the
parameter dataclass of the command's family. JSON keys are matched
case-insensitively; each field lists the keys it accepts.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from errors import RequestDecodeError

__all__ = [
    "BatchRequest",
    "Command",
    "ComputeParams",
    "CredentialParams",
    "DeployParams",
    "Family",
    "LocalExecParams",
    "OperationRequest",
    "PARAMS_BY_FAMILY",
    "StorageParams",
    "TaskParams",
    "decode_params",
]


class Family(str, enum.Enum):
    COMPUTE = "ec2"
    TASKS = "ecs"
    STORAGE = "s3"
    DEPLOY = "lambda"
    CREDENTIALS = "sts"
    LOCAL_EXEC = "exec"


@dataclass(frozen=True)
class Command:
    family: Family
    verb: str
    args: Tuple[str, ...] = ()
    raw: str = ""


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _as_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise RequestDecodeError(f"{key}: expected string, got {type(value).__name__}")
    return value


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RequestDecodeError(f"{key}: expected integer, got {type(value).__name__}")
    return value


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise RequestDecodeError(f"{key}: expected boolean, got {type(value).__name__}")
    return value


def _as_str_list(key: str, value: Any) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise RequestDecodeError(f"{key}: expected list of strings")
    return list(value)


def _as_str_map(key: str, value: Any) -> Dict[str, str]:
    if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
        raise RequestDecodeError(f"{key}: expected object of strings")
    return {str(k): v for k, v in value.items()}


_COERCE: Dict[str, Callable[[str, Any], Any]] = {
    "str": _as_str,
    "int": _as_int,
    "bool": _as_bool,
    "strs": _as_str_list,
    "map": _as_str_map,
}


def _f(kind: str, *keys: str):
    meta = {"kind": kind, "keys": keys}
    if kind == "strs":
        return field(default_factory=list, metadata=meta)
    return field(default=None, metadata=meta)


# ---------------------------------------------------------------------------
# Per-family parameters
# ---------------------------------------------------------------------------


@dataclass
class ComputeParams:
    instance_id: Optional[str] = _f("str", "instanceid")
    instance_ids: List[str] = _f("strs", "instanceids")
    vpc_id: Optional[str] = _f("str", "vpcid")
    subnet_id: Optional[str] = _f("str", "subnetid")
    associate_public_ip: Optional[bool] = _f("bool", "associatepublicip")
    image_id: Optional[str] = _f("str", "imageid")
    instance_type: Optional[str] = _f("str", "instancetype")
    key_name: Optional[str] = _f("str", "keyname")
    security_group_ids: List[str] = _f("strs", "securitygroupids")
    availability_zone: Optional[str] = _f("str", "availabilityzone", "az")
    volume_id: Optional[str] = _f("str", "volumeid")
    device: Optional[str] = _f("str", "device")
    user_data_file: Optional[str] = _f("str", "userdatafile")
    name: Optional[str] = _f("str", "name")
    owner: Optional[str] = _f("str", "owner")
    tags: Optional[Dict[str, str]] = _f("map", "tags")
    volume_size: Optional[int] = _f("int", "volumesize")
    profile_arn: Optional[str] = _f("str", "profilearn")
    arch: Optional[str] = _f("str", "arch")
    distro: Optional[str] = _f("str", "distro")
    count: Optional[int] = _f("int", "count")
    nics: List[str] = _f("strs", "nics")
    force: Optional[bool] = _f("bool", "force")


@dataclass
class TaskParams:
    arn: Optional[str] = _f("str", "arn")
    arns: List[str] = _f("strs", "arns")
    family: Optional[str] = _f("str", "family")
    exec_role: Optional[str] = _f("str", "execrole")
    task_role: Optional[str] = _f("str", "taskrole")
    cpu: Optional[str] = _f("str", "cpu")
    memory: Optional[str] = _f("str", "memory")
    image: Optional[str] = _f("str", "image")
    name: Optional[str] = _f("str", "name")
    cluster: Optional[str] = _f("str", "cluster")
    group: Optional[str] = _f("str", "group")
    count: Optional[int] = _f("int", "count")
    subnet_id: Optional[str] = _f("str", "subnetid")
    security_group_ids: List[str] = _f("strs", "securitygroupids")
    associate_public_ip: Optional[bool] = _f("bool", "associatepublicip")
    exec_command: List[str] = _f("strs", "execcommand")
    tags: Optional[Dict[str, str]] = _f("map", "tags")

    def target_arns(self) -> List[str]:
        if self.arns:
            return list(self.arns)
        if self.arn:
            return [self.arn]
        return []


@dataclass
class StorageParams:
    destination: Optional[str] = _f("str", "destination")
    sources: List[str] = _f("strs", "sources")


@dataclass
class DeployParams:
    function: Optional[str] = _f("str", "function")
    zipfile: Optional[str] = _f("str", "zipfile")


@dataclass
class CredentialParams:
    arn: Optional[str] = _f("str", "arn")


@dataclass
class LocalExecParams:
    destination: Optional[str] = _f("str", "destination")
    sources: List[str] = _f("strs", "sources")
    zipfile: Optional[str] = _f("str", "zipfile")
    exec_command: List[str] = _f("strs", "execcommand")


FamilyParams = Union[ComputeParams, TaskParams, StorageParams, DeployParams, CredentialParams, LocalExecParams]

PARAMS_BY_FAMILY: Dict[Family, Type[Any]] = {
    Family.COMPUTE: ComputeParams,
    Family.TASKS: TaskParams,
    Family.STORAGE: StorageParams,
    Family.DEPLOY: DeployParams,
    Family.CREDENTIALS: CredentialParams,
    Family.LOCAL_EXEC: LocalExecParams,
}


@dataclass
class OperationRequest:
    command: Command
    params: FamilyParams


@dataclass
class BatchRequest:
    requests: List[Any] = field(default_factory=list)


def decode_params(family: Family, payload: Dict[str, Any]) -> FamilyParams:
    """Build the family's parameter dataclass from a raw request mapping."""
    cls = PARAMS_BY_FAMILY[family]
    lowered = {str(k).lower(): v for k, v in payload.items()}
    values: Dict[str, Any] = {}
    for f in fields(cls):
        coerce = _COERCE[f.metadata["kind"]]
        for key in f.metadata["keys"]:
            raw = lowered.get(key)
            if raw is None:
                continue
            values[f.name] = coerce(key, raw)
            break
    return cls(**values)
