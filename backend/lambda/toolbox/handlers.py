"""handlers.py - Per-family verb tables.

Each handler owns the verbs of one family and talks to exactly one gateway.
Handlers validate the fields they need, raise ``MissingFieldError`` /
``GatewayError`` on failure, and write their results to the session log.
"""
from __future__ import annotations

import shlex
import time
from typing import Callable, Dict, List, Optional

from compute import EC2Gateway, InstanceSpec
from config import (
    DEFAULT_ARCH,
    DEFAULT_DEVICE,
    DEFAULT_DISTRO,
    DEFAULT_VOLUME_SIZE_GIB,
    LAUNCH_MARKER_TAG,
    MAX_TASK_COUNT,
    SPOT_MARKER_TAG,
)
from credentials import assume_role
from deploy import update_function_code
from errors import GatewayError, MissingFieldError
from formatting import (
    ec2_image_string,
    ec2_instance_name,
    ec2_instance_string,
    ec2_nic_string,
    ec2_security_group_string,
    ec2_state_change_string,
    ec2_subnet_string,
    ec2_volume_string,
    ec2_vpc_string,
    ecs_task_lines,
    ecs_taskdef_string,
    to_json,
)
from local_exec import concat_files, list_files, run_command, unzip
from poller import FulfillmentOutcome, FulfillmentPoller
from request_model import (
    Command,
    ComputeParams,
    CredentialParams,
    DeployParams,
    Family,
    LocalExecParams,
    StorageParams,
    TaskParams,
)
from session import Session
from tasks import ECSGateway

__all__ = [
    "ComputeHandler",
    "CredentialsHandler",
    "DeployHandler",
    "FamilyHandler",
    "LocalExecHandler",
    "StorageHandler",
    "TasksHandler",
]

Verb = Callable[[Command, object], None]


class FamilyHandler:
    family: Family

    def __init__(self, session: Session) -> None:
        self.session = session
        self.verbs: Dict[str, Verb] = {}

    def logf(self, fmt: str, *args) -> None:
        self.session.logf(fmt, *args)


# ---------------------------------------------------------------------------
# ec2
# ---------------------------------------------------------------------------


def _instance_ids(params: ComputeParams, verb: str) -> List[str]:
    ids = list(params.instance_ids)
    if params.instance_id:
        ids.append(params.instance_id)
    if not ids:
        raise MissingFieldError(f"{verb}: no instance ids")
    return ids


class ComputeHandler(FamilyHandler):
    family = Family.COMPUTE

    def __init__(
        self,
        session: Session,
        gateway: Optional[EC2Gateway] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(session)
        self._gateway = gateway
        self._sleep = sleep
        self.verbs = {
            "vpcs": self.vpcs,
            "subnets": self.subnets,
            "sgs": self.security_groups,
            "nics": self.nics,
            "vols": self.volumes,
            "images": self.images,
            "describe": self.instances,
            "instances": self.instances,
            "spotrequest": self.spot_request,
            "run": self.run,
            "start": self.start,
            "stop": self.stop,
            "terminate": self.terminate,
            "rename": self.rename,
            "createvolume": self.create_volume,
            "deletevolume": self.delete_volume,
            "attachvolume": self.attach_volume,
            "detachvolume": self.detach_volume,
            "change": self.change,
        }

    @property
    def gateway(self) -> EC2Gateway:
        if self._gateway is None:
            self._gateway = EC2Gateway()
        return self._gateway

    def _log_vpc(self, params: ComputeParams) -> Optional[str]:
        if params.vpc_id:
            self.logf("VpcId: %s", params.vpc_id)
        return params.vpc_id or None

    def vpcs(self, command: Command, params: ComputeParams) -> None:
        for vpc in self.gateway.describe_vpcs():
            self.logf("%s", ec2_vpc_string(vpc))

    def subnets(self, command: Command, params: ComputeParams) -> None:
        vpc_id = self._log_vpc(params)
        for subnet in self.gateway.describe_subnets(vpc_id):
            self.logf("%s", ec2_subnet_string(subnet))

    def security_groups(self, command: Command, params: ComputeParams) -> None:
        vpc_id = self._log_vpc(params)
        for sg in self.gateway.describe_security_groups(vpc_id):
            self.logf("%s", ec2_security_group_string(sg))

    def nics(self, command: Command, params: ComputeParams) -> None:
        vpc_id = self._log_vpc(params)
        for nic in self.gateway.describe_network_interfaces(params.nics, vpc_id):
            self.logf("%s", ec2_nic_string(nic))

    def volumes(self, command: Command, params: ComputeParams) -> None:
        for vol in self.gateway.describe_volumes():
            self.logf("%s", ec2_volume_string(vol))

    def images(self, command: Command, params: ComputeParams) -> None:
        arch = params.arch or DEFAULT_ARCH
        if params.name and params.owner:
            image = self.gateway.get_image(params.name, params.owner, arch)
        else:
            image = self.gateway.get_distro_image(params.distro or DEFAULT_DISTRO, arch)
        self.logf("%s", ec2_image_string(image))

    def instances(self, command: Command, params: ComputeParams) -> None:
        vpc_id = self._log_vpc(params)
        for instance in self.gateway.describe_instances(vpc_id=vpc_id):
            self.logf("%s", ec2_instance_string(instance))

    def _instance_spec(self, params: ComputeParams) -> InstanceSpec:
        if not params.image_id:
            raise MissingFieldError("no imageid")
        if not params.name:
            raise MissingFieldError("no name")
        user_data = None
        if params.user_data_file:
            try:
                user_data = self.session.get_file(params.user_data_file)
            except GatewayError as exc:
                raise GatewayError("UserDataFile", exc) from exc
        tags = {LAUNCH_MARKER_TAG[0]: LAUNCH_MARKER_TAG[1], "Name": params.name}
        tags.update(self.session.config.default_tags)
        tags.update(params.tags or {})
        return InstanceSpec(
            image_id=params.image_id,
            instance_type=params.instance_type,
            security_group_ids=list(params.security_group_ids),
            key_name=params.key_name,
            user_data=user_data,
            subnet_id=params.subnet_id,
            associate_public_ip=params.associate_public_ip,
            volume_size=params.volume_size or DEFAULT_VOLUME_SIZE_GIB,
            profile_arn=params.profile_arn,
            tags=tags,
        )

    @staticmethod
    def _count(params: ComputeParams) -> int:
        count = 1 if params.count is None else params.count
        if count < 1:
            raise MissingFieldError("count must be positive")
        return count

    def run(self, command: Command, params: ComputeParams) -> None:
        spec = self._instance_spec(params)
        for instance in self.gateway.run_instances(self._count(params), spec):
            self.logf("%s", ec2_instance_string(instance))

    def spot_request(self, command: Command, params: ComputeParams) -> None:
        spec = self._instance_spec(params)
        requests = self.gateway.request_spot_instances(self._count(params), spec)
        request_ids = []
        for sir in requests:
            rid = sir.get("SpotInstanceRequestId", "")
            self.logf("id=%s", rid)
            request_ids.append(rid)
        if not request_ids:
            self.logf("no spot requests returned")
            return

        config = self.session.config
        poller = FulfillmentPoller(
            self.gateway.describe_spot_instance_requests,
            interval_seconds=config.spot_poll_interval_seconds,
            max_attempts=config.spot_poll_max_attempts,
            sleep=self._sleep,
        )
        result = poller.wait(request_ids, self.logf)
        if result.outcome is not FulfillmentOutcome.FULFILLED:
            return

        tags = dict(spec.tags)
        tags[SPOT_MARKER_TAG[0]] = SPOT_MARKER_TAG[1]
        self.gateway.create_tags(result.instance_ids, tags)
        for instance in self.gateway.describe_instances(instance_ids=result.instance_ids):
            self.logf("%s", ec2_instance_string(instance))

    def start(self, command: Command, params: ComputeParams) -> None:
        for change in self.gateway.start_instances(_instance_ids(params, "start")):
            self.logf("%s", ec2_state_change_string(change))

    def stop(self, command: Command, params: ComputeParams) -> None:
        for change in self.gateway.stop_instances(_instance_ids(params, "stop"), params.force):
            self.logf("%s", ec2_state_change_string(change))

    def terminate(self, command: Command, params: ComputeParams) -> None:
        for change in self.gateway.terminate_instances(_instance_ids(params, "terminate")):
            self.logf("%s", ec2_state_change_string(change))

    def rename(self, command: Command, params: ComputeParams) -> None:
        if not params.instance_id:
            raise MissingFieldError("no instanceid")
        if not params.name:
            raise MissingFieldError("no name")
        instances = self.gateway.describe_instances(instance_ids=[params.instance_id])
        if not instances:
            raise MissingFieldError(f"{params.instance_id} is not found")
        if len(instances) > 1:
            raise MissingFieldError("multiple instances")
        previous = ec2_instance_name(instances[0])
        self.gateway.create_tags([params.instance_id], {"Name": params.name})
        self.logf("%s: rename %s to %s", params.instance_id, previous, params.name)

    def create_volume(self, command: Command, params: ComputeParams) -> None:
        if not params.availability_zone:
            raise MissingFieldError("no az")
        if params.volume_size is None:
            raise MissingFieldError("no size")
        volume_id = self.gateway.create_volume(params.availability_zone, params.volume_size)
        self.logf("Volume %s has been created", volume_id)
        if params.name:
            self.gateway.create_tags([volume_id], {"Name": params.name})

    def delete_volume(self, command: Command, params: ComputeParams) -> None:
        if not params.volume_id:
            raise MissingFieldError("no volumeid")
        self.gateway.delete_volume(params.volume_id)
        self.logf("Volume %s has been deleted", params.volume_id)

    def attach_volume(self, command: Command, params: ComputeParams) -> None:
        if not params.volume_id:
            raise MissingFieldError("no volumeid")
        if not params.instance_id:
            raise MissingFieldError("no instanceid")
        device = params.device or DEFAULT_DEVICE
        self.gateway.attach_volume(params.volume_id, params.instance_id, device)
        self.logf("Volume %s attached to %s as %s", params.volume_id, params.instance_id, device)

    def detach_volume(self, command: Command, params: ComputeParams) -> None:
        if not params.volume_id:
            raise MissingFieldError("no volumeid")
        self.gateway.detach_volume(params.volume_id)
        self.logf("Volume %s detached", params.volume_id)

    def change(self, command: Command, params: ComputeParams) -> None:
        if not command.args:
            raise MissingFieldError("need change attributename")
        if command.args[0] != "type":
            raise MissingFieldError("support only type")
        if not params.instance_id:
            raise MissingFieldError("no instanceid")
        if not params.instance_type:
            raise MissingFieldError("no instancetype")
        self.gateway.modify_instance_type(params.instance_id, params.instance_type)
        self.logf("instance type has been modified")


# ---------------------------------------------------------------------------
# ecs
# ---------------------------------------------------------------------------


class TasksHandler(FamilyHandler):
    family = Family.TASKS

    def __init__(self, session: Session, gateway: Optional[ECSGateway] = None) -> None:
        super().__init__(session)
        self._gateway = gateway
        self.verbs = {
            "clusters": self.clusters,
            "taskdefs": self.taskdefs,
            "taskdef": self.taskdef,
            "regtaskdef": self.register_taskdef,
            "deregtaskdef": self.deregister_taskdef,
            "tasks": self.tasks,
            "tasksraw": self.tasks,
            "runtask": self.run_task,
            "stoptask": self.stop_task,
            "exec": self.exec,
            "tag": self.tag,
        }

    @property
    def gateway(self) -> ECSGateway:
        if self._gateway is None:
            self._gateway = ECSGateway()
        return self._gateway

    def _arns(self, params: TaskParams) -> List[str]:
        arns = params.target_arns()
        if not arns:
            raise MissingFieldError("need arn")
        return arns

    def clusters(self, command: Command, params: TaskParams) -> None:
        # DescribeClusters needs names or ARNs, so list first
        self.logf("list clusters")
        arns = self.gateway.list_clusters()
        for arn in arns:
            self.logf("%s", arn)
        self.logf("describe clusters")
        for cluster in self.gateway.describe_clusters(arns):
            self.logf("%s", cluster.get("clusterName", ""))

    def taskdefs(self, command: Command, params: TaskParams) -> None:
        for arn in self.gateway.list_task_definitions():
            self.logf("%s", arn)

    def taskdef(self, command: Command, params: TaskParams) -> None:
        family = params.family
        if not family:
            if not params.arn:
                raise MissingFieldError("need family or arn")
            self.logf("please use family")
            family = params.arn
        taskdef = self.gateway.describe_task_definition(family)
        if not taskdef:
            raise GatewayError("DescribeTaskDefinition", message="no task definition returned")
        self.logf("%s", ecs_taskdef_string(taskdef))
        self.logf("taskdef: %s", to_json(taskdef))

    def register_taskdef(self, command: Command, params: TaskParams) -> None:
        for value, message in (
            (params.family, "need family"),
            (params.exec_role, "need execrole"),
            (params.cpu, "need cpu"),
            (params.memory, "need memory"),
        ):
            if not value:
                raise MissingFieldError(message)
        taskdef = self.gateway.register_task_definition(
            params.family,
            params.cpu,
            params.memory,
            params.exec_role,
            params.name or "ubuntu",
            params.image or "ubuntu:latest",
        )
        self.logf("registered %s", ecs_taskdef_string(taskdef))

    def deregister_taskdef(self, command: Command, params: TaskParams) -> None:
        if not params.family:
            raise MissingFieldError("need family")
        taskdef = self.gateway.deregister_task_definition(params.family)
        self.logf("deregistered %s", ecs_taskdef_string(taskdef))

    def tasks(self, command: Command, params: TaskParams) -> None:
        if not params.cluster:
            raise MissingFieldError("need cluster")
        task_arns = self.gateway.list_tasks(params.cluster)
        if not task_arns:
            self.logf("no tasks")
            return
        tasks = self.gateway.describe_tasks(task_arns, params.cluster)
        for task in tasks:
            self.session.log_lines(ecs_task_lines(task))
        if command.verb == "tasksraw":
            self.logf("raw: %s", to_json(tasks))

    def run_task(self, command: Command, params: TaskParams) -> None:
        count = 1 if params.count is None else params.count
        if count >= MAX_TASK_COUNT:
            raise MissingFieldError("count too large")
        if count < 1:
            raise MissingFieldError("count must be positive")
        for value, message in (
            (params.arn, "need arn"),
            (params.name, "need name"),
            (params.cluster, "need cluster"),
            (params.subnet_id, "need subnetid"),
            (params.security_group_ids, "need securitygroupids"),
            (params.exec_command, "need execcommand"),
        ):
            if not value:
                raise MissingFieldError(message)
        taskdef = self.gateway.describe_task_definition(params.arn)
        if not taskdef:
            raise GatewayError("DescribeTaskDefinition", message="no task definition returned")
        spot = bool(command.args) and command.args[0] == "spot"
        tasks = self.gateway.run_task(
            taskdef,
            spot=spot,
            count=count,
            container_name=params.name,
            cluster=params.cluster,
            subnet_id=params.subnet_id,
            assign_public_ip=True if params.associate_public_ip is None else params.associate_public_ip,
            security_group_ids=params.security_group_ids,
            command=params.exec_command,
            group=params.group,
            task_role=params.task_role,
            cpu=params.cpu,
            memory=params.memory,
        )
        if params.tags:
            self.logf("TagResource: %s", to_json(params.tags))
            for task in tasks:
                arn = task.get("taskArn", "")
                try:
                    self.gateway.tag_resource(arn, params.tags)
                except GatewayError as exc:
                    self.logf("task:%s %s", arn, exc)
        for task in tasks:
            self.logf("starting %s", task.get("taskArn", ""))

    def stop_task(self, command: Command, params: TaskParams) -> None:
        if not params.cluster:
            raise MissingFieldError("need cluster")
        for arn in self._arns(params):
            try:
                task = self.gateway.stop_task(arn, params.cluster)
            except GatewayError as exc:
                self.logf("%s", exc)
                continue
            self.logf("stopping %s", task.get("taskArn", arn))

    def exec(self, command: Command, params: TaskParams) -> None:
        if not params.cluster:
            raise MissingFieldError("need cluster")
        if not params.exec_command:
            raise MissingFieldError("need execcommand")
        cmd = shlex.join(params.exec_command)
        for arn in self._arns(params):
            self.logf("exec %s on %s", cmd, arn)
            try:
                resp = self.gateway.execute_command(arn, params.cluster, cmd)
            except GatewayError as exc:
                self.logf("%s", exc)
                continue
            session_id = (resp.get("session") or {}).get("sessionId")
            if session_id:
                self.logf("session %s", session_id)

    def tag(self, command: Command, params: TaskParams) -> None:
        if not params.tags:
            raise MissingFieldError("need tags")
        for arn in self._arns(params):
            self.logf("tags %s on %s", to_json(params.tags), arn)
            try:
                self.gateway.tag_resource(arn, params.tags)
            except GatewayError as exc:
                self.logf("%s", exc)


# ---------------------------------------------------------------------------
# s3
# ---------------------------------------------------------------------------


def _need_destination_and_sources(params) -> None:
    if not params.destination or not params.sources:
        raise MissingFieldError("need destination and sources")


class StorageHandler(FamilyHandler):
    family = Family.STORAGE

    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.verbs = {
            "concat": self.concat,
            "store": self.store,
            "decode": self.decode,
        }

    def concat(self, command: Command, params: StorageParams) -> None:
        _need_destination_and_sources(params)
        self.session.require_bucket().concat_objects(params.destination, params.sources)
        self.logf("concat ok")

    def store(self, command: Command, params: StorageParams) -> None:
        _need_destination_and_sources(params)
        bucket = self.session.require_bucket()
        bucket.store_object(params.destination, params.sources, self.session.config.scratch_dir)
        self.logf("stored")

    def decode(self, command: Command, params: StorageParams) -> None:
        _need_destination_and_sources(params)
        self.session.require_bucket().base64_decode_object(params.destination, params.sources[0])
        self.logf("decode ok")


# ---------------------------------------------------------------------------
# lambda
# ---------------------------------------------------------------------------


class DeployHandler(FamilyHandler):
    family = Family.DEPLOY

    def __init__(self, session: Session, client=None) -> None:
        super().__init__(session)
        self._client = client
        self.verbs = {"update": self.update}

    def update(self, command: Command, params: DeployParams) -> None:
        if not params.function or not params.zipfile:
            raise MissingFieldError("need function and zipfile")
        bucket_name = self.session.config.bucket_name
        if not bucket_name:
            raise MissingFieldError("no bucket")
        update_function_code(params.function, bucket_name, params.zipfile, client=self._client)
        self.logf("update ok")


# ---------------------------------------------------------------------------
# sts
# ---------------------------------------------------------------------------


class CredentialsHandler(FamilyHandler):
    family = Family.CREDENTIALS

    def __init__(self, session: Session, client=None) -> None:
        super().__init__(session)
        self._client = client
        self.verbs = {"switch": self.switch}

    def switch(self, command: Command, params: CredentialParams) -> None:
        if not params.arn:
            raise MissingFieldError("need arn")
        config = self.session.config
        cred = assume_role(
            params.arn,
            config.assume_role_session_name,
            config.assume_role_duration_seconds,
            client=self._client,
        )
        self.logf(
            "%s %s %s",
            cred.get("AccessKeyId", ""),
            cred.get("SecretAccessKey", ""),
            cred.get("SessionToken", ""),
        )


# ---------------------------------------------------------------------------
# exec
# ---------------------------------------------------------------------------


class LocalExecHandler(FamilyHandler):
    family = Family.LOCAL_EXEC

    def __init__(self, session: Session) -> None:
        super().__init__(session)
        self.verbs = {
            "unzip": self.unzip,
            "files": self.files,
            "concat": self.concat,
            "run": self.run,
        }

    def _dir(self, params: LocalExecParams) -> str:
        return params.destination or self.session.config.scratch_dir

    def unzip(self, command: Command, params: LocalExecParams) -> None:
        if not params.zipfile:
            raise MissingFieldError("no zipfile")
        archive = self.session.require_bucket().get(params.zipfile)
        unzip(archive, self._dir(params))
        self.logf("Unzip: ok")

    def files(self, command: Command, params: LocalExecParams) -> None:
        lines = list_files(self._dir(params), timeout=self.session.config.exec_timeout_seconds)
        self.session.log_lines(lines)

    def concat(self, command: Command, params: LocalExecParams) -> None:
        _need_destination_and_sources(params)
        concat_files(params.destination, params.sources, self.session.config.scratch_dir)
        self.logf("concat ok")

    def run(self, command: Command, params: LocalExecParams) -> None:
        if not params.exec_command:
            raise MissingFieldError("no execcommand")
        lines = run_command(params.exec_command, timeout=self.session.config.exec_timeout_seconds)
        self.session.log_lines(lines)
