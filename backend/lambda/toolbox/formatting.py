"""formatting.py - One-line renderings of AWS resource records for the session log."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

__all__ = [
    "ec2_image_string",
    "ec2_instance_name",
    "ec2_instance_string",
    "ec2_nic_string",
    "ec2_security_group_string",
    "ec2_state_change_string",
    "ec2_subnet_string",
    "ec2_volume_string",
    "ec2_vpc_string",
    "ecs_task_lines",
    "ecs_taskdef_string",
    "to_json",
]


def _tags(record: Dict[str, Any]) -> Dict[str, str]:
    return {t.get("Key", ""): t.get("Value", "") for t in record.get("Tags") or []}


def _name(record: Dict[str, Any]) -> str:
    return _tags(record).get("Name", "")


def ec2_instance_name(instance: Dict[str, Any]) -> str:
    return _name(instance)


def ec2_instance_string(instance: Dict[str, Any]) -> str:
    """``id:name:type:state:publicip:[k:v,...]`` with non-Name tags sorted by key."""
    tags = _tags(instance)
    name = tags.pop("Name", "")
    vals = ",".join(f"{k}:{tags[k]}" for k in sorted(tags))
    return "%s:%s:%s:%s:%s:[%s]" % (
        instance.get("InstanceId", ""),
        name,
        instance.get("InstanceType", ""),
        (instance.get("State") or {}).get("Name", ""),
        instance.get("PublicIpAddress", ""),
        vals,
    )


def ec2_state_change_string(change: Dict[str, Any]) -> str:
    prev = (change.get("PreviousState") or {}).get("Name", "")
    cur = (change.get("CurrentState") or {}).get("Name", "")
    return f"{change.get('InstanceId', '')}: {prev} -> {cur}"


def ec2_vpc_string(vpc: Dict[str, Any]) -> str:
    line = "%s:%s:%s:%s" % (vpc.get("VpcId", ""), _name(vpc), vpc.get("CidrBlock", ""), vpc.get("State", ""))
    if vpc.get("IsDefault"):
        line += ":default"
    return line


def ec2_subnet_string(subnet: Dict[str, Any]) -> str:
    return "%s:%s:%s:%s:%s:%s" % (
        subnet.get("SubnetId", ""),
        _name(subnet),
        subnet.get("VpcId", ""),
        subnet.get("AvailabilityZone", ""),
        subnet.get("CidrBlock", ""),
        subnet.get("AvailableIpAddressCount", ""),
    )


def ec2_security_group_string(sg: Dict[str, Any]) -> str:
    return "%s:%s:%s:%s" % (
        sg.get("GroupId", ""),
        sg.get("GroupName", ""),
        sg.get("VpcId", ""),
        sg.get("Description", ""),
    )


def ec2_nic_string(nic: Dict[str, Any]) -> str:
    association = nic.get("Association") or {}
    attachment = nic.get("Attachment") or {}
    return "%s:%s:%s:%s:%s:%s" % (
        nic.get("NetworkInterfaceId", ""),
        nic.get("SubnetId", ""),
        nic.get("PrivateIpAddress", ""),
        association.get("PublicIp", ""),
        nic.get("Status", ""),
        attachment.get("InstanceId", ""),
    )


def ec2_volume_string(vol: Dict[str, Any]) -> str:
    attached = ",".join(a.get("InstanceId", "") for a in vol.get("Attachments") or [])
    return "%s:%s:%sGiB:%s:%s:[%s]" % (
        vol.get("VolumeId", ""),
        _name(vol),
        vol.get("Size", ""),
        vol.get("State", ""),
        vol.get("AvailabilityZone", ""),
        attached,
    )


def ec2_image_string(image: Dict[str, Any]) -> str:
    return "%s:%s:%s:%s" % (
        image.get("ImageId", ""),
        image.get("Name", ""),
        image.get("Architecture", ""),
        image.get("CreationDate", ""),
    )


def ecs_taskdef_string(taskdef: Dict[str, Any]) -> str:
    return f"{taskdef.get('family', '')}:{taskdef.get('revision', '')}"


def ecs_task_lines(task: Dict[str, Any]) -> List[str]:
    lines = [
        str(task.get("taskArn", "")),
        f" def: {task.get('taskDefinitionArn', '')}",
        f" status: {task.get('lastStatus', '')}",
        f" group: {task.get('group', '')}",
    ]
    for attachment in task.get("attachments") or []:
        for kv in attachment.get("details") or []:
            lines.append(f"  {kv.get('name', '')}: {kv.get('value', '')}")
    return lines


def to_json(value: Any, default: Optional[Any] = str) -> str:
    return json.dumps(value, default=default, sort_keys=True)
