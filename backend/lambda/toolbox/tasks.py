"""tasks.py - ECS gateway (clusters, task definitions, Fargate tasks)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from aws_clients import _aws_call, _get_ecs

__all__ = ["ECSGateway"]


def _ecs_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"key": k, "value": v} for k, v in tags.items()]


class ECSGateway:
    def __init__(self, client=None) -> None:
        self.client = client or _get_ecs()

    def list_clusters(self) -> List[str]:
        arns: List[str] = []
        with _aws_call("ListClusters"):
            for page in self.client.get_paginator("list_clusters").paginate():
                arns.extend(page.get("clusterArns") or [])
        return arns

    def describe_clusters(self, arns: List[str]) -> List[Dict[str, Any]]:
        with _aws_call("DescribeClusters"):
            resp = self.client.describe_clusters(clusters=list(arns))
        return list(resp.get("clusters") or [])

    def list_task_definitions(self) -> List[str]:
        arns: List[str] = []
        with _aws_call("ListTaskDefinitions"):
            for page in self.client.get_paginator("list_task_definitions").paginate():
                arns.extend(page.get("taskDefinitionArns") or [])
        return arns

    def describe_task_definition(self, family_or_arn: str) -> Optional[Dict[str, Any]]:
        with _aws_call("DescribeTaskDefinition"):
            resp = self.client.describe_task_definition(taskDefinition=family_or_arn)
        return resp.get("taskDefinition")

    def register_task_definition(
        self,
        family: str,
        cpu: str,
        memory: str,
        exec_role: str,
        container_name: str,
        container_image: str,
    ) -> Dict[str, Any]:
        with _aws_call("RegisterTaskDefinition"):
            resp = self.client.register_task_definition(
                family=family,
                cpu=cpu,
                memory=memory,
                executionRoleArn=exec_role,
                networkMode="awsvpc",
                requiresCompatibilities=["FARGATE"],
                containerDefinitions=[
                    {"name": container_name, "image": container_image, "essential": True},
                ],
            )
        return resp.get("taskDefinition") or {}

    def deregister_task_definition(self, family_revision: str) -> Dict[str, Any]:
        with _aws_call("DeregisterTaskDefinition"):
            resp = self.client.deregister_task_definition(taskDefinition=family_revision)
        return resp.get("taskDefinition") or {}

    def list_tasks(self, cluster: str) -> List[str]:
        arns: List[str] = []
        with _aws_call("ListTasks"):
            for page in self.client.get_paginator("list_tasks").paginate(cluster=cluster):
                arns.extend(page.get("taskArns") or [])
        return arns

    def describe_tasks(self, task_arns: List[str], cluster: str) -> List[Dict[str, Any]]:
        tasks: List[Dict[str, Any]] = []
        # DescribeTasks accepts at most 100 tasks per call
        with _aws_call("DescribeTasks"):
            for i in range(0, len(task_arns), 100):
                resp = self.client.describe_tasks(cluster=cluster, tasks=task_arns[i : i + 100])
                tasks.extend(resp.get("tasks") or [])
        return tasks

    def run_task(
        self,
        taskdef: Dict[str, Any],
        *,
        spot: bool,
        count: int,
        container_name: str,
        cluster: str,
        subnet_id: str,
        assign_public_ip: bool,
        security_group_ids: List[str],
        command: List[str],
        group: Optional[str] = None,
        task_role: Optional[str] = None,
        cpu: Optional[str] = None,
        memory: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        overrides: Dict[str, Any] = {
            "containerOverrides": [{"name": container_name, "command": list(command)}],
        }
        if task_role:
            overrides["taskRoleArn"] = task_role
        if cpu:
            overrides["cpu"] = cpu
        if memory:
            overrides["memory"] = memory
        kwargs: Dict[str, Any] = {
            "cluster": cluster,
            "taskDefinition": taskdef.get("taskDefinitionArn") or taskdef.get("family"),
            "count": count,
            "enableExecuteCommand": True,
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "subnets": [subnet_id],
                    "securityGroups": list(security_group_ids),
                    "assignPublicIp": "ENABLED" if assign_public_ip else "DISABLED",
                }
            },
            "overrides": overrides,
        }
        if spot:
            kwargs["capacityProviderStrategy"] = [{"capacityProvider": "FARGATE_SPOT", "weight": 1}]
        else:
            kwargs["launchType"] = "FARGATE"
        if group:
            kwargs["group"] = group
        with _aws_call("RunTask"):
            resp = self.client.run_task(**kwargs)
        return list(resp.get("tasks") or [])

    def stop_task(self, task_arn: str, cluster: str) -> Dict[str, Any]:
        with _aws_call("StopTask"):
            resp = self.client.stop_task(cluster=cluster, task=task_arn)
        return resp.get("task") or {}

    def execute_command(self, task_arn: str, cluster: str, command: str) -> Dict[str, Any]:
        with _aws_call("ExecuteCommand"):
            return self.client.execute_command(
                cluster=cluster, task=task_arn, command=command, interactive=True
            )

    def tag_resource(self, arn: str, tags: Dict[str, str]) -> None:
        with _aws_call("TagResource"):
            self.client.tag_resource(resourceArn=arn, tags=_ecs_tags(tags))
