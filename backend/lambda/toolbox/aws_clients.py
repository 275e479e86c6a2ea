"""aws_clients.py - Singleton AWS service clients (EC2, ECS, S3, Lambda, STS).

Clients are created on first use and cached for the lifetime of the
execution environment.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config import AWS_REGION
from errors import GatewayError

__all__ = [
    "_aws_call",
    "_get_ec2",
    "_get_ecs",
    "_get_lambda",
    "_get_s3",
    "_get_sts",
]

# ---------------------------------------------------------------------------
# AWS client singletons
# ---------------------------------------------------------------------------

_ec2 = None
_ecs = None
_s3 = None
_lambda = None
_sts = None


def _get_ec2(region: Optional[str] = None):
    global _ec2
    if _ec2 is None:
        _ec2 = boto3.client(
            "ec2",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ec2


def _get_ecs(region: Optional[str] = None):
    global _ecs
    if _ecs is None:
        _ecs = boto3.client(
            "ecs",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ecs


def _get_s3(region: Optional[str] = None):
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _s3


def _get_lambda(region: Optional[str] = None):
    global _lambda
    if _lambda is None:
        _lambda = boto3.client(
            "lambda",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _lambda


def _get_sts(region: Optional[str] = None):
    global _sts
    if _sts is None:
        _sts = boto3.client(
            "sts",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _sts


@contextmanager
def _aws_call(operation: str) -> Iterator[None]:
    """Re-raise botocore failures as ``GatewayError`` tagged with the API operation."""
    try:
        yield
    except (BotoCoreError, ClientError) as exc:
        raise GatewayError(operation, exc) from exc
