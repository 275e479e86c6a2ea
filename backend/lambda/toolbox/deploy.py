"""deploy.py - Lambda function code deployment from a bucket object."""
from __future__ import annotations

from aws_clients import _aws_call, _get_lambda
from config import logger

__all__ = ["update_function_code"]


def update_function_code(function_name: str, bucket: str, key: str, client=None) -> str:
    client = client or _get_lambda()
    with _aws_call("UpdateFunctionCode"):
        resp = client.update_function_code(FunctionName=function_name, S3Bucket=bucket, S3Key=key)
    updated = str(resp.get("FunctionName") or function_name)
    logger.info("[INFO] UpdateFunctionCode: %s", updated)
    return updated
