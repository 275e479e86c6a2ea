"""compute.py - EC2 gateway.

Thin 1:1 wrappers over the EC2 control plane. Every method returns plain
boto3 records and raises ``GatewayError`` (named after the API operation)
when the call fails.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from aws_clients import _aws_call, _get_ec2
from errors import GatewayError

__all__ = [
    "EC2Gateway",
    "InstanceSpec",
]

_DEFAULT_ROOT_DEVICE = "/dev/xvda"

# distro -> (owner, name pattern); {arch} is the distro's own architecture label
_DISTRO_IMAGES = {
    "amazon": ("amazon", "al2023-ami-2023.*-kernel-*-{arch}"),
    "ubuntu": ("099720109477", "ubuntu/images/hvm-ssd*/ubuntu-*-22.04-{arch}-server-*"),
    "debian": ("136693071363", "debian-12-{arch}-*"),
}
_DEB_ARCH = {"x86_64": "amd64", "arm64": "arm64"}


@dataclass
class InstanceSpec:
    image_id: str
    instance_type: Optional[str] = None
    security_group_ids: List[str] = field(default_factory=list)
    key_name: Optional[str] = None
    user_data: Optional[bytes] = None
    subnet_id: Optional[str] = None
    associate_public_ip: Optional[bool] = None
    volume_size: int = 8
    profile_arn: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)


def _tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


def _vpc_filter(vpc_id: Optional[str]) -> Dict[str, Any]:
    if not vpc_id:
        return {}
    return {"Filters": [{"Name": "vpc-id", "Values": [vpc_id]}]}


class EC2Gateway:
    def __init__(self, client=None) -> None:
        self.client = client or _get_ec2()

    # -- listing ---------------------------------------------------------

    def describe_vpcs(self) -> List[Dict[str, Any]]:
        with _aws_call("DescribeVpcs"):
            return list(self.client.describe_vpcs().get("Vpcs") or [])

    def describe_subnets(self, vpc_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with _aws_call("DescribeSubnets"):
            resp = self.client.describe_subnets(**_vpc_filter(vpc_id))
        return list(resp.get("Subnets") or [])

    def describe_security_groups(self, vpc_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with _aws_call("DescribeSecurityGroups"):
            resp = self.client.describe_security_groups(**_vpc_filter(vpc_id))
        return list(resp.get("SecurityGroups") or [])

    def describe_network_interfaces(
        self, nic_ids: Optional[List[str]] = None, vpc_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = _vpc_filter(vpc_id)
        if nic_ids:
            kwargs["NetworkInterfaceIds"] = list(nic_ids)
        with _aws_call("DescribeNetworkInterfaces"):
            resp = self.client.describe_network_interfaces(**kwargs)
        return list(resp.get("NetworkInterfaces") or [])

    def describe_volumes(self) -> List[Dict[str, Any]]:
        with _aws_call("DescribeVolumes"):
            return list(self.client.describe_volumes().get("Volumes") or [])

    def describe_instances(
        self, instance_ids: Optional[List[str]] = None, vpc_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = _vpc_filter(vpc_id)
        if instance_ids:
            kwargs["InstanceIds"] = list(instance_ids)
        instances: List[Dict[str, Any]] = []
        with _aws_call("DescribeInstances"):
            paginator = self.client.get_paginator("describe_instances")
            for page in paginator.paginate(**kwargs):
                for reservation in page.get("Reservations") or []:
                    instances.extend(reservation.get("Instances") or [])
        return instances

    # -- images ----------------------------------------------------------

    def get_image(self, name: str, owner: str, arch: str) -> Dict[str, Any]:
        """Newest available image matching ``name`` (wildcards allowed) for ``arch``."""
        with _aws_call("DescribeImages"):
            resp = self.client.describe_images(
                Owners=[owner],
                Filters=[
                    {"Name": "name", "Values": [name]},
                    {"Name": "architecture", "Values": [arch]},
                    {"Name": "state", "Values": ["available"]},
                ],
            )
        images = sorted(resp.get("Images") or [], key=lambda i: i.get("CreationDate", ""), reverse=True)
        if not images:
            raise GatewayError("GetImage", message=f"no image {name} owned by {owner} for {arch}")
        return images[0]

    def get_distro_image(self, distro: str, arch: str) -> Dict[str, Any]:
        if distro not in _DISTRO_IMAGES:
            raise GatewayError("GetImage", message=f"unknown distro {distro}")
        owner, pattern = _DISTRO_IMAGES[distro]
        label = arch if distro == "amazon" else _DEB_ARCH.get(arch, arch)
        return self.get_image(pattern.format(arch=label), owner, arch)

    def _root_device_name(self, image_id: str) -> str:
        with _aws_call("DescribeImages"):
            images = self.client.describe_images(ImageIds=[image_id]).get("Images") or []
        if images and images[0].get("RootDeviceName"):
            return images[0]["RootDeviceName"]
        return _DEFAULT_ROOT_DEVICE

    # -- launch ----------------------------------------------------------

    def _launch_params(self, spec: InstanceSpec) -> Dict[str, Any]:
        params: Dict[str, Any] = {"ImageId": spec.image_id}
        if spec.instance_type:
            params["InstanceType"] = spec.instance_type
        if spec.key_name:
            params["KeyName"] = spec.key_name
        if spec.subnet_id and spec.associate_public_ip is not None:
            nic: Dict[str, Any] = {
                "DeviceIndex": 0,
                "SubnetId": spec.subnet_id,
                "AssociatePublicIpAddress": spec.associate_public_ip,
            }
            if spec.security_group_ids:
                nic["Groups"] = list(spec.security_group_ids)
            params["NetworkInterfaces"] = [nic]
        else:
            if spec.subnet_id:
                params["SubnetId"] = spec.subnet_id
            if spec.security_group_ids:
                params["SecurityGroupIds"] = list(spec.security_group_ids)
        if spec.profile_arn:
            params["IamInstanceProfile"] = {"Arn": spec.profile_arn}
        params["BlockDeviceMappings"] = [
            {
                "DeviceName": self._root_device_name(spec.image_id),
                "Ebs": {"VolumeSize": spec.volume_size, "VolumeType": "gp3", "DeleteOnTermination": True},
            }
        ]
        return params

    def run_instances(self, count: int, spec: InstanceSpec) -> List[Dict[str, Any]]:
        params = self._launch_params(spec)
        if spec.user_data is not None:
            # RunInstances base64-encodes UserData bytes itself
            params["UserData"] = spec.user_data
        if spec.tags:
            params["TagSpecifications"] = [
                {"ResourceType": "instance", "Tags": _tag_list(spec.tags)},
                {"ResourceType": "volume", "Tags": _tag_list(spec.tags)},
            ]
        with _aws_call("RunInstances"):
            resp = self.client.run_instances(MinCount=count, MaxCount=count, **params)
        return list(resp.get("Instances") or [])

    def request_spot_instances(self, count: int, spec: InstanceSpec) -> List[Dict[str, Any]]:
        launch = self._launch_params(spec)
        if spec.user_data is not None:
            launch["UserData"] = base64.b64encode(spec.user_data).decode("ascii")
        with _aws_call("RequestSpotInstances"):
            resp = self.client.request_spot_instances(
                InstanceCount=count,
                Type="one-time",
                LaunchSpecification=launch,
            )
        return list(resp.get("SpotInstanceRequests") or [])

    def describe_spot_instance_requests(self, request_ids: List[str]) -> List[Dict[str, Any]]:
        with _aws_call("DescribeSpotInstanceRequests"):
            resp = self.client.describe_spot_instance_requests(SpotInstanceRequestIds=list(request_ids))
        return list(resp.get("SpotInstanceRequests") or [])

    # -- lifecycle -------------------------------------------------------

    def start_instances(self, instance_ids: List[str]) -> List[Dict[str, Any]]:
        with _aws_call("StartInstances"):
            resp = self.client.start_instances(InstanceIds=list(instance_ids))
        return list(resp.get("StartingInstances") or [])

    def stop_instances(self, instance_ids: List[str], force: Optional[bool] = None) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"InstanceIds": list(instance_ids)}
        if force is not None:
            kwargs["Force"] = force
        with _aws_call("StopInstances"):
            resp = self.client.stop_instances(**kwargs)
        return list(resp.get("StoppingInstances") or [])

    def terminate_instances(self, instance_ids: List[str]) -> List[Dict[str, Any]]:
        with _aws_call("TerminateInstances"):
            resp = self.client.terminate_instances(InstanceIds=list(instance_ids))
        return list(resp.get("TerminatingInstances") or [])

    def create_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        with _aws_call("CreateTags"):
            self.client.create_tags(Resources=list(resource_ids), Tags=_tag_list(tags))

    def modify_instance_type(self, instance_id: str, instance_type: str) -> None:
        with _aws_call("ModifyInstanceAttribute"):
            self.client.modify_instance_attribute(
                InstanceId=instance_id, InstanceType={"Value": instance_type}
            )

    # -- volumes ---------------------------------------------------------

    def create_volume(self, availability_zone: str, size: int) -> str:
        with _aws_call("CreateVolume"):
            resp = self.client.create_volume(AvailabilityZone=availability_zone, Size=size, VolumeType="gp3")
        return str(resp.get("VolumeId") or "")

    def delete_volume(self, volume_id: str) -> None:
        with _aws_call("DeleteVolume"):
            self.client.delete_volume(VolumeId=volume_id)

    def attach_volume(self, volume_id: str, instance_id: str, device: str) -> None:
        with _aws_call("AttachVolume"):
            self.client.attach_volume(VolumeId=volume_id, InstanceId=instance_id, Device=device)

    def detach_volume(self, volume_id: str) -> None:
        with _aws_call("DetachVolume"):
            self.client.detach_volume(VolumeId=volume_id)
